"""
Agent hierarchy records.

- AgentNode: one tracked agent instance (a root session or a sub-agent)
- TreeNode: display projection of a node and its children
- HierarchySummary: aggregate counts and budget for one tree
- AgentMetrics: per-agent-name performance totals across finished runs
"""

from __future__ import annotations

import dataclasses as _dataclasses
import datetime as _datetime
import enum as _enum
import typing as _typing


def utcnow() -> _datetime.datetime:
    return _datetime.datetime.now(_datetime.UTC)


def _parse_time(value: str | None) -> _datetime.datetime | None:
    if value is None:
        return None
    return _datetime.datetime.fromisoformat(value)


class AgentStatus(_enum.Enum):
    """Lifecycle state of an agent. Everything but RUNNING is final."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self is not AgentStatus.RUNNING


@_dataclasses.dataclass
class AgentNode:
    """
    One tracked agent instance.

    Budget model: allocated_budget_usd is the node's own ceiling. Budget
    granted onward to children is tracked in granted_budget_usd and never
    changes the allocation itself, so what the node can still spend or
    grant is allocated - spent - granted.

    Attributes:
        id: Store-assigned integer id
        session_id: Unique session identifier of the agent
        agent_name: Display name ("Main Session" for roots)
        parent_session_id: Parent's session id, None for roots
        root_session_id: Session id of the tree's root
        depth: 0 for roots, parent depth + 1 otherwise
        status: Lifecycle state
        allocated_budget_usd: Spending ceiling (0 = no budget)
        spent_budget_usd: Recorded spend
        granted_budget_usd: Sum of budget granted to children
        tool_calls: Number of recorded tool calls
        tokens_used: Number of recorded tokens
        started_at: Registration time
        completed_at: When the node reached a final state
        metadata: Free-form extra data from the start event
    """

    id: int
    session_id: str
    agent_name: str
    parent_session_id: str | None
    root_session_id: str
    depth: int = 0
    status: AgentStatus = AgentStatus.RUNNING
    allocated_budget_usd: float = 0.0
    spent_budget_usd: float = 0.0
    granted_budget_usd: float = 0.0
    tool_calls: int = 0
    tokens_used: int = 0
    started_at: _datetime.datetime = _dataclasses.field(default_factory=utcnow)
    completed_at: _datetime.datetime | None = None
    metadata: dict[str, _typing.Any] = _dataclasses.field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent_session_id is None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def available_budget_usd(self) -> float:
        """Budget left to spend or grant. May go negative after overspend."""
        return self.allocated_budget_usd - self.spent_budget_usd - self.granted_budget_usd

    @property
    def remaining_budget_usd(self) -> float:
        """Budget left for display, never below zero."""
        return max(0.0, self.available_budget_usd)

    def duration_ms(self, now: _datetime.datetime | None = None) -> int:
        """Run time so far, or total run time once finished."""
        end = self.completed_at or now or utcnow()
        return max(0, int((end - self.started_at).total_seconds() * 1000))

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "agent_name": self.agent_name,
            "parent_session_id": self.parent_session_id,
            "root_session_id": self.root_session_id,
            "depth": self.depth,
            "status": self.status.value,
            "allocated_budget_usd": self.allocated_budget_usd,
            "spent_budget_usd": self.spent_budget_usd,
            "granted_budget_usd": self.granted_budget_usd,
            "tool_calls": self.tool_calls,
            "tokens_used": self.tokens_used,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, _typing.Any]) -> AgentNode:
        """Create from dict (as written by to_dict)."""
        return cls(
            id=int(data["id"]),
            session_id=data["session_id"],
            agent_name=data["agent_name"],
            parent_session_id=data.get("parent_session_id"),
            root_session_id=data["root_session_id"],
            depth=int(data.get("depth", 0)),
            status=AgentStatus(data.get("status", "running")),
            allocated_budget_usd=float(data.get("allocated_budget_usd", 0.0)),
            spent_budget_usd=float(data.get("spent_budget_usd", 0.0)),
            granted_budget_usd=float(data.get("granted_budget_usd", 0.0)),
            tool_calls=int(data.get("tool_calls", 0)),
            tokens_used=int(data.get("tokens_used", 0)),
            started_at=_parse_time(data.get("started_at")) or utcnow(),
            completed_at=_parse_time(data.get("completed_at")),
            metadata=dict(data.get("metadata") or {}),
        )


@_dataclasses.dataclass
class TreeNode:
    """Display projection of an agent and its descendants."""

    id: int
    session_id: str
    agent_name: str
    depth: int
    status: AgentStatus
    duration_ms: int
    budget_allocated: float
    budget_spent: float
    budget_remaining: float
    tool_calls: int
    tokens_used: int
    children: list[TreeNode] = _dataclasses.field(default_factory=list)

    @classmethod
    def from_agent(
        cls,
        node: AgentNode,
        now: _datetime.datetime | None = None,
    ) -> TreeNode:
        return cls(
            id=node.id,
            session_id=node.session_id,
            agent_name=node.agent_name,
            depth=node.depth,
            status=node.status,
            duration_ms=node.duration_ms(now),
            budget_allocated=node.allocated_budget_usd,
            budget_spent=node.spent_budget_usd,
            budget_remaining=node.remaining_budget_usd,
            tool_calls=node.tool_calls,
            tokens_used=node.tokens_used,
        )

    def walk(self, indent: int = 0) -> _typing.Iterator[tuple[TreeNode, int]]:
        """Pre-order traversal yielding (node, indent)."""
        yield self, indent
        for child in self.children:
            yield from child.walk(indent + 1)

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to JSON-serializable dict, children included."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "agent_name": self.agent_name,
            "depth": self.depth,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "budget_allocated": self.budget_allocated,
            "budget_spent": self.budget_spent,
            "budget_remaining": self.budget_remaining,
            "tool_calls": self.tool_calls,
            "tokens_used": self.tokens_used,
            "children": [child.to_dict() for child in self.children],
        }


@_dataclasses.dataclass
class HierarchySummary:
    """Aggregate view of one agent tree."""

    root_session_id: str
    total_nodes: int = 0
    max_depth: int = 0
    total_budget: float = 0.0
    total_spend: float = 0.0
    running_count: int = 0
    completed_count: int = 0
    failed_count: int = 0
    terminated_count: int = 0

    def to_dict(self) -> dict[str, _typing.Any]:
        return _dataclasses.asdict(self)


@_dataclasses.dataclass
class AgentMetrics:
    """
    Performance totals for one agent name.

    Only runs that finished as completed or failed are counted.
    """

    agent_name: str
    total_sessions: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: int = 0
    total_tool_calls: int = 0
    total_tokens_used: int = 0
    total_cost_usd: float = 0.0

    def _average(self, total: float) -> float:
        return total / self.total_sessions if self.total_sessions else 0.0

    @property
    def avg_duration_ms(self) -> float:
        return self._average(self.total_duration_ms)

    @property
    def avg_tool_calls(self) -> float:
        return self._average(self.total_tool_calls)

    @property
    def avg_tokens_used(self) -> float:
        return self._average(self.total_tokens_used)

    @property
    def avg_cost_usd(self) -> float:
        return self._average(self.total_cost_usd)

    @property
    def success_rate(self) -> float:
        return self._average(self.success_count)

    def record(self, node: AgentNode, success: bool) -> None:
        """Fold one finished run into the totals."""
        self.total_sessions += 1
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1
        self.total_duration_ms += node.duration_ms()
        self.total_tool_calls += node.tool_calls
        self.total_tokens_used += node.tokens_used
        self.total_cost_usd += node.spent_budget_usd

    def to_dict(self) -> dict[str, _typing.Any]:
        """Totals plus derived averages."""
        return {
            **_dataclasses.asdict(self),
            "avg_duration_ms": self.avg_duration_ms,
            "avg_tool_calls": self.avg_tool_calls,
            "avg_tokens_used": self.avg_tokens_used,
            "avg_cost_usd": self.avg_cost_usd,
            "success_rate": self.success_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, _typing.Any]) -> AgentMetrics:
        fields = {f.name for f in _dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in fields})
