"""
Agent store - persistence for agent nodes and per-name metrics.

The tracker is the only writer. Stores hand out copies, so a node
returned from a read can't change stored state until it is saved.

- InMemoryAgentStore: process-local
- JsonAgentStore: the whole table in one JSON file, rewritten atomically
"""

from __future__ import annotations

import abc as _abc
import contextlib as _contextlib
import copy as _copy
import dataclasses as _dataclasses
import json as _json
import logging as _logging
import pathlib as _pathlib
import typing as _typing

import heimdall.agents.node as node_module
import heimdall.constants as constants
import heimdall.errors as errors
import heimdall.utils as utils

_logger = _logging.getLogger(__name__)


class AgentStore(_abc.ABC):
    """Table of agent nodes keyed by session id."""

    @_abc.abstractmethod
    def get(self, session_id: str) -> node_module.AgentNode | None:
        ...

    @_abc.abstractmethod
    def add(self, node: node_module.AgentNode) -> node_module.AgentNode:
        """
        Insert a new node, assigning its id.

        Raises:
            StoreError: If a node with the same session id exists.
        """
        ...

    @_abc.abstractmethod
    def save(self, node: node_module.AgentNode) -> None:
        """Write back a node previously returned by get() or add()."""
        ...

    @_abc.abstractmethod
    def all(self) -> list[node_module.AgentNode]:
        """Every node, in insertion order."""
        ...

    @_abc.abstractmethod
    def delete_many(self, session_ids: _typing.Iterable[str]) -> int:
        """Delete nodes. Returns how many existed."""
        ...

    @_abc.abstractmethod
    def get_metrics(self, agent_name: str) -> node_module.AgentMetrics | None:
        ...

    @_abc.abstractmethod
    def save_metrics(self, metrics: node_module.AgentMetrics) -> None:
        ...

    @_abc.abstractmethod
    def all_metrics(self) -> list[node_module.AgentMetrics]:
        ...

    def by_root(self, root_session_id: str) -> list[node_module.AgentNode]:
        """Nodes of one tree, shallowest first, then by start time."""
        nodes = [n for n in self.all() if n.root_session_id == root_session_id]
        return sorted(nodes, key=lambda n: (n.depth, n.started_at, n.id))

    def children_of(self, session_id: str) -> list[node_module.AgentNode]:
        """Direct children of a node, by start time."""
        nodes = [n for n in self.all() if n.parent_session_id == session_id]
        return sorted(nodes, key=lambda n: (n.started_at, n.id))


class InMemoryAgentStore(AgentStore):
    """Agent store backed by dicts."""

    def __init__(self) -> None:
        self._nodes: dict[str, node_module.AgentNode] = {}
        self._metrics: dict[str, node_module.AgentMetrics] = {}
        self._next_id = 1

    # Hooks for subclasses that persist; no-ops in memory.
    def _refresh(self, force: bool = False) -> None:
        pass

    def _persist(self) -> None:
        pass

    def _exclusive(self) -> _typing.ContextManager[None]:
        return _contextlib.nullcontext()

    @_contextlib.contextmanager
    def _mutation(self) -> _typing.Iterator[None]:
        with self._exclusive():
            self._refresh(force=True)
            yield

    def get(self, session_id: str) -> node_module.AgentNode | None:
        self._refresh()
        node = self._nodes.get(session_id)
        return _copy.deepcopy(node) if node is not None else None

    def add(self, node: node_module.AgentNode) -> node_module.AgentNode:
        with self._mutation():
            if node.session_id in self._nodes:
                raise errors.StoreError(f"Agent already exists: {node.session_id}")
            stored = _dataclasses.replace(node, id=self._next_id)
            self._next_id += 1
            self._nodes[stored.session_id] = stored
            self._persist()
            return _copy.deepcopy(stored)

    def save(self, node: node_module.AgentNode) -> None:
        with self._mutation():
            if node.session_id not in self._nodes:
                raise errors.StoreError(f"Agent not stored: {node.session_id}")
            self._nodes[node.session_id] = _copy.deepcopy(node)
            self._persist()

    def all(self) -> list[node_module.AgentNode]:
        self._refresh()
        return [_copy.deepcopy(n) for n in self._nodes.values()]

    def delete_many(self, session_ids: _typing.Iterable[str]) -> int:
        with self._mutation():
            removed = 0
            for session_id in session_ids:
                if self._nodes.pop(session_id, None) is not None:
                    removed += 1
            if removed:
                self._persist()
            return removed

    def get_metrics(self, agent_name: str) -> node_module.AgentMetrics | None:
        self._refresh()
        metrics = self._metrics.get(agent_name)
        return _copy.copy(metrics) if metrics is not None else None

    def save_metrics(self, metrics: node_module.AgentMetrics) -> None:
        with self._mutation():
            self._metrics[metrics.agent_name] = _copy.copy(metrics)
            self._persist()

    def all_metrics(self) -> list[node_module.AgentMetrics]:
        self._refresh()
        return [_copy.copy(m) for m in self._metrics.values()]


class JsonAgentStore(InMemoryAgentStore):
    """
    Agent store persisted to a JSON file.

    The server and `heimdall agents cleanup` may run at the same time.
    Reads reload the file when it changed on disk; writes reload, apply and
    rewrite it under an exclusive lock on "<name>.lock". File format:

    ```json
    {"version": 1, "next_id": 4, "nodes": [...], "metrics": [...]}
    ```
    """

    def __init__(
        self,
        path: _pathlib.Path,
        *,
        lock_timeout: float = constants.DEFAULT_LOCK_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__()
        self._path = path
        self._lock_timeout = lock_timeout
        self._signature: utils.FileSignature | None = None
        self._refresh()

    @property
    def path(self) -> _pathlib.Path:
        return self._path

    @_contextlib.contextmanager
    def _exclusive(self) -> _typing.Iterator[None]:
        try:
            with utils.exclusive_lock(self._path, self._lock_timeout):
                yield
        except TimeoutError as e:
            raise errors.StoreError(str(e)) from e

    def _refresh(self, force: bool = False) -> None:
        signature = utils.file_signature(self._path)
        if signature == self._signature and not force:
            return

        if signature is None:
            self._nodes = {}
            self._metrics = {}
            self._next_id = 1
        else:
            self._load()
        self._signature = signature

    def _load(self) -> None:
        try:
            data = _json.loads(self._path.read_text(encoding="utf-8") or "{}")
            nodes = [node_module.AgentNode.from_dict(n) for n in data.get("nodes", [])]
            metrics = [
                node_module.AgentMetrics.from_dict(m) for m in data.get("metrics", [])
            ]
        except OSError as e:
            raise errors.StoreError(f"Cannot read agent store {self._path}: {e}") from e
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise errors.StoreError(f"Corrupt agent store {self._path}: {e}") from e

        self._nodes = {n.session_id: n for n in nodes}
        self._metrics = {m.agent_name: m for m in metrics}
        highest = max((n.id for n in nodes), default=0)
        self._next_id = max(int(data.get("next_id", 1)), highest + 1)
        _logger.debug("Loaded %d agent nodes from %s", len(nodes), self._path)

    def _persist(self) -> None:
        document = {
            "version": 1,
            "next_id": self._next_id,
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "metrics": [_dataclasses.asdict(m) for m in self._metrics.values()],
        }
        try:
            utils.atomic_write_text(self._path, _json.dumps(document, indent=2))
        except OSError as e:
            raise errors.StoreError(f"Cannot write agent store {self._path}: {e}") from e
        self._signature = utils.file_signature(self._path)
