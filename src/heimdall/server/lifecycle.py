"""
Feed agent lifecycle events from the ingress into the agent tracker.

Hook commands see every event; the tracker only cares about session and
sub-agent boundaries, plus tool calls for its counters.
"""

from __future__ import annotations

import logging as _logging
import threading as _threading

import heimdall.agents as agents
import heimdall.constants as constants
import heimdall.errors as errors
import heimdall.hooks.events as events
import heimdall.server.payload as payload_module
import heimdall.server.sessions as sessions

_logger = _logging.getLogger(__name__)

_TASK_TOOL = "Task"


class LifecycleRecorder:
    """
    Translates inbound events into tracker calls.

    Usage:
        recorder = LifecycleRecorder(tracker)
        recorder.record(HookEventType.SESSION_START, {"session_id": "s1", "cwd": "/repo"})
    """

    def __init__(
        self,
        tracker: agents.AgentTracker,
        stacks: sessions.SessionStacks | None = None,
    ) -> None:
        self._tracker = tracker
        self._stacks = stacks or sessions.SessionStacks()
        self._lock = _threading.Lock()

    @property
    def stacks(self) -> sessions.SessionStacks:
        return self._stacks

    def record(
        self,
        event_type: events.HookEventType,
        payload: payload_module.Payload,
    ) -> None:
        """Apply one event. Safe to call from worker threads; calls are serialized."""
        with self._lock:
            self._record(event_type, payload)

    def _record(
        self,
        event_type: events.HookEventType,
        payload: payload_module.Payload,
    ) -> None:
        session_id = payload_module.get_str(payload, "session_id")
        directory = payload_module.working_directory(payload)

        if event_type is events.HookEventType.SESSION_START:
            if session_id:
                self._on_session_start(session_id, directory)
        elif event_type is events.HookEventType.SESSION_END:
            if session_id:
                self._tracker.stop(session_id, success=True)
                self._stacks.pop(directory, session_id)
        elif event_type is events.HookEventType.PRE_TOOL_USE:
            tool_name = payload_module.get_str(payload, "tool_name")
            if session_id and tool_name == _TASK_TOOL:
                self._stacks.push(directory, session_id)
        elif event_type is events.HookEventType.POST_TOOL_USE:
            if session_id:
                self._tracker.record_tool_call(session_id)
        elif event_type is events.HookEventType.SUBAGENT_START:
            self._on_subagent_start(payload, session_id, directory)
        elif event_type is events.HookEventType.SUBAGENT_STOP:
            agent_id = payload_module.get_str(payload, "agent_id")
            if agent_id:
                success = payload_module.get_bool(payload, "success", True)
                self._tracker.stop(agent_id, success=success)

    def _on_session_start(self, session_id: str, directory: str | None) -> None:
        if self._tracker.get(session_id) is None:
            metadata = {"working_directory": directory} if directory else None
            self._tracker.start(session_id, constants.ROOT_AGENT_NAME, metadata=metadata)
        self._stacks.push(directory, session_id)

    def resolve_parent(
        self,
        payload: payload_module.Payload,
        session_id: str | None,
        directory: str | None,
        agent_id: str,
    ) -> str | None:
        """
        Pick the tracked session that spawned a sub-agent.

        Tries an explicit parent_session_id, then the top of the working
        directory's session stack, then the event's own session id.
        """
        candidates = [
            payload_module.get_str(payload, "parent_session_id"),
            self._stacks.current(directory),
            session_id,
        ]
        for candidate in candidates:
            if candidate and candidate != agent_id and self._tracker.get(candidate) is not None:
                return candidate
        return None

    def _on_subagent_start(
        self,
        payload: payload_module.Payload,
        session_id: str | None,
        directory: str | None,
    ) -> None:
        agent_id = payload_module.get_str(payload, "agent_id")
        if not agent_id:
            _logger.warning("SubagentStart without agent_id ignored")
            return

        agent_type = payload_module.get_str(payload, "agent_type")
        agent_name = (
            payload_module.get_str(payload, "agent_name") or agent_type or f"Subagent-{agent_id}"
        )
        metadata = {k: v for k, v in (("agent_type", agent_type), ("session_id", session_id)) if v}

        parent = self.resolve_parent(payload, session_id, directory, agent_id)
        if parent is None:
            _logger.info("No tracked parent for sub-agent %s; registering as root", agent_id)
        try:
            self._tracker.start(agent_id, agent_name, parent, metadata=metadata)
        except errors.AgentNotFoundError:
            # Parent vanished between resolution and registration
            self._tracker.start(agent_id, agent_name, metadata=metadata)
