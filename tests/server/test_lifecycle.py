"""Tests for feeding lifecycle events into the tracker."""

import pytest as _pytest

import heimdall.agents as agents
import heimdall.hooks as hooks
import heimdall.server as server

Event = hooks.HookEventType


@_pytest.fixture
def recorder(tracker: agents.AgentTracker) -> server.LifecycleRecorder:
    return server.LifecycleRecorder(tracker)


def _parent_of(tracker: agents.AgentTracker, session_id: str) -> str | None:
    node = tracker.get(session_id)
    assert node is not None
    return node.parent_session_id


class TestSessions:
    """Tests for root session events."""

    def test_session_start_registers_root(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1", "cwd": "/repo"})

        node = tracker.get("s1")
        assert node is not None
        assert node.agent_name == "Main Session"
        assert node.metadata == {"working_directory": "/repo"}
        assert recorder.stacks.current("/repo") == "s1"

    def test_repeated_session_start(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1", "cwd": "/repo"})
        recorder.record(Event.SESSION_START, {"session_id": "s1", "cwd": "/repo"})
        assert len(tracker.tree("s1")) == 1
        assert len(recorder.stacks) == 1

    def test_session_end(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1", "cwd": "/repo"})
        recorder.record(Event.SESSION_END, {"session_id": "s1", "cwd": "/repo"})

        node = tracker.get("s1")
        assert node is not None
        assert node.status is agents.AgentStatus.COMPLETED
        assert recorder.stacks.current("/repo") is None

    def test_post_tool_use_counts(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1"})
        recorder.record(Event.POST_TOOL_USE, {"session_id": "s1", "tool_name": "Read"})
        recorder.record(Event.POST_TOOL_USE, {"session_id": "unknown", "tool_name": "Read"})

        node = tracker.get("s1")
        assert node is not None
        assert node.tool_calls == 1

    def test_events_without_session_ignored(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"cwd": "/repo"})
        recorder.record(Event.STOP, {"session_id": "s1"})
        assert tracker.running_agents() == []


class TestSubagents:
    """Tests for sub-agent parent resolution."""

    def test_parent_from_session_id(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1"})
        recorder.record(
            Event.SUBAGENT_START,
            {"session_id": "s1", "agent_id": "a1", "agent_type": "Explore"},
        )

        node = tracker.get("a1")
        assert node is not None
        assert node.parent_session_id == "s1"
        assert node.agent_name == "Explore"
        assert node.metadata == {"agent_type": "Explore", "session_id": "s1"}

    def test_explicit_parent_wins(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1", "cwd": "/repo"})
        recorder.record(Event.SUBAGENT_START, {"session_id": "s1", "agent_id": "a1"})
        recorder.record(
            Event.SUBAGENT_START,
            {
                "session_id": "s1",
                "cwd": "/repo",
                "agent_id": "a2",
                "parentSessionId": "a1",
            },
        )
        assert _parent_of(tracker, "a2") == "a1"

    def test_parent_from_directory_stack(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1", "cwd": "/repo"})
        recorder.record(Event.SUBAGENT_START, {"cwd": "/repo", "agent_id": "a1"})
        assert _parent_of(tracker, "a1") == "s1"

    def test_task_call_pushes_session(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1"})
        recorder.record(
            Event.PRE_TOOL_USE,
            {"session_id": "s1", "cwd": "/repo", "tool_name": "Task"},
        )
        recorder.record(Event.SUBAGENT_START, {"cwd": "/repo", "agent_id": "a1"})
        assert _parent_of(tracker, "a1") == "s1"

    def test_no_parent_registers_root(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SUBAGENT_START, {"session_id": "ghost", "agent_id": "a1"})

        node = tracker.get("a1")
        assert node is not None
        assert node.is_root
        assert node.agent_name == "Subagent-a1"

    def test_agent_is_not_its_own_parent(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "a1"})
        recorder.record(
            Event.SUBAGENT_START,
            {"session_id": "a1", "agent_id": "a1", "agent_name": "Loop"},
        )
        assert len(tracker.tree("a1")) == 1

    def test_missing_agent_id(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1"})
        recorder.record(Event.SUBAGENT_START, {"session_id": "s1"})
        assert tracker.children("s1") == []

    def test_subagent_stop(
        self,
        recorder: server.LifecycleRecorder,
        tracker: agents.AgentTracker,
    ) -> None:
        recorder.record(Event.SESSION_START, {"session_id": "s1"})
        recorder.record(Event.SUBAGENT_START, {"session_id": "s1", "agent_id": "a1"})
        recorder.record(Event.SUBAGENT_STOP, {"session_id": "s1", "agent_id": "a1"})

        node = tracker.get("a1")
        assert node is not None
        assert node.status is agents.AgentStatus.COMPLETED


class TestSessionStacks:
    """Tests for per-directory session stacks."""

    def test_push_pop(self) -> None:
        stacks = server.SessionStacks()
        stacks.push("/repo", "s1")
        stacks.push("/repo", "s2")
        stacks.push("/repo", "s1")
        assert stacks.current("/repo") == "s2"
        assert len(stacks) == 2

        stacks.pop("/repo", "s2")
        assert stacks.current("/repo") == "s1"
        stacks.pop("/repo", "s1")
        assert stacks.current("/repo") is None
        assert len(stacks) == 0

    def test_directories_are_separate(self) -> None:
        stacks = server.SessionStacks()
        stacks.push("/a", "s1")
        stacks.push("/b", "s2")
        assert stacks.current("/a") == "s1"
        assert stacks.current("/b") == "s2"

    def test_no_directory(self) -> None:
        stacks = server.SessionStacks()
        stacks.push(None, "s1")
        stacks.pop(None, "s1")
        assert stacks.current(None) is None
        assert len(stacks) == 0
