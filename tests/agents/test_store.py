"""Tests for agent stores."""

import json as _json
import pathlib as _pathlib

import pytest as _pytest

import heimdall.agents as agents
import heimdall.errors as errors


def _node(session_id: str, parent: str | None = None, root: str | None = None) -> agents.AgentNode:
    return agents.AgentNode(
        id=0,
        session_id=session_id,
        agent_name=f"agent-{session_id}",
        parent_session_id=parent,
        root_session_id=root or session_id,
        depth=0 if parent is None else 1,
    )


class TestInMemoryAgentStore:
    """Tests for the in-memory store."""

    def test_add_assigns_increasing_ids(self) -> None:
        store = agents.InMemoryAgentStore()
        first = store.add(_node("a"))
        second = store.add(_node("b"))
        assert first.id == 1
        assert second.id == 2

    def test_duplicate_add(self) -> None:
        store = agents.InMemoryAgentStore()
        store.add(_node("a"))
        with _pytest.raises(errors.StoreError):
            store.add(_node("a"))

    def test_reads_are_copies(self) -> None:
        store = agents.InMemoryAgentStore()
        store.add(_node("a"))

        node = store.get("a")
        assert node is not None
        node.tool_calls = 99

        stored = store.get("a")
        assert stored is not None
        assert stored.tool_calls == 0

    def test_save_unknown(self) -> None:
        store = agents.InMemoryAgentStore()
        with _pytest.raises(errors.StoreError):
            store.save(_node("ghost"))

    def test_children_and_tree(self) -> None:
        store = agents.InMemoryAgentStore()
        store.add(_node("root"))
        store.add(_node("c1", parent="root", root="root"))
        store.add(_node("c2", parent="root", root="root"))
        store.add(_node("other"))

        assert [n.session_id for n in store.children_of("root")] == ["c1", "c2"]
        assert [n.session_id for n in store.by_root("root")] == ["root", "c1", "c2"]

    def test_delete_many(self) -> None:
        store = agents.InMemoryAgentStore()
        store.add(_node("a"))
        store.add(_node("b"))
        assert store.delete_many(["a", "missing"]) == 1
        assert [n.session_id for n in store.all()] == ["b"]


class TestJsonAgentStore:
    """Tests for the JSON file store."""

    def test_round_trip(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "agents.json"
        store = agents.JsonAgentStore(path)
        node = store.add(_node("a"))
        node.status = agents.AgentStatus.COMPLETED
        node.spent_budget_usd = 1.25
        node.metadata = {"agent_type": "Explore"}
        store.save(node)
        metrics = agents.AgentMetrics(agent_name="agent-a", total_sessions=1, success_count=1)
        store.save_metrics(metrics)

        reloaded = agents.JsonAgentStore(path)
        loaded = reloaded.get("a")

        assert loaded is not None
        assert loaded.status is agents.AgentStatus.COMPLETED
        assert loaded.spent_budget_usd == 1.25
        assert loaded.metadata == {"agent_type": "Explore"}
        assert loaded.started_at == node.started_at
        reloaded_metrics = reloaded.get_metrics("agent-a")
        assert reloaded_metrics is not None
        assert reloaded_metrics.success_count == 1

    def test_ids_continue_after_reload(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "agents.json"
        store = agents.JsonAgentStore(path)
        store.add(_node("a"))
        store.add(_node("b"))
        store.delete_many(["b"])

        reloaded = agents.JsonAgentStore(path)
        assert reloaded.add(_node("c")).id == 3

    def test_file_format(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "nested" / "agents.json"
        store = agents.JsonAgentStore(path)
        store.add(_node("a"))

        document = _json.loads(path.read_text())
        assert document["version"] == 1
        assert document["nodes"][0]["session_id"] == "a"
        assert document["nodes"][0]["status"] == "running"

    def test_missing_file_is_empty(self, tmp_path: _pathlib.Path) -> None:
        store = agents.JsonAgentStore(tmp_path / "absent.json")
        assert store.all() == []
        assert not (tmp_path / "absent.json").exists()

    def test_corrupt_file(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "agents.json"
        path.write_text("{not json")
        with _pytest.raises(errors.StoreError, match="Corrupt"):
            agents.JsonAgentStore(path)

    def test_tracker_state_survives_restart(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "agents.json"
        tracker = agents.AgentTracker(agents.JsonAgentStore(path))
        tracker.start("s1", "root")
        tracker.start("s2", "worker", "s1")
        tracker.allocate_budget("s1", 10)
        tracker.allocate_budget("s2", 4, from_parent=True)

        restarted = agents.AgentTracker(agents.JsonAgentStore(path))
        parent = restarted.get("s1")
        assert parent is not None
        assert parent.available_budget_usd == 6
        assert [n.session_id for n in restarted.children("s1")] == ["s2"]

    def test_lock_file_beside_store(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "agents.json"
        agents.JsonAgentStore(path).add(_node("a"))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["agents.json", "agents.json.lock"]


class TestSharedAgentFile:
    """The server and a CLI command working on one agents file."""

    def test_cleanup_elsewhere_is_not_undone(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "agents.json"
        server = agents.AgentTracker(agents.JsonAgentStore(path))
        server.start("old", "root")
        server.stop("old", success=True)
        server.start("live", "root")

        cli = agents.JsonAgentStore(path)
        assert cli.delete_many(["old"]) == 1

        server.record_tool_call("live")

        remaining = agents.JsonAgentStore(path)
        assert [n.session_id for n in remaining.all()] == ["live"]
        live = remaining.get("live")
        assert live is not None
        assert live.tool_calls == 1

    def test_reads_see_nodes_added_elsewhere(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "agents.json"
        reader = agents.JsonAgentStore(path)
        agents.JsonAgentStore(path).add(_node("a"))

        assert [n.session_id for n in reader.all()] == ["a"]
