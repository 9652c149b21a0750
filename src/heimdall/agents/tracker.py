"""
Agent hierarchy tracker - owns the tree of spawned agents.

The tracker is the only component that mutates agent state. All
operations take a single lock, so concurrent lifecycle events for the
same node are serialized.

Late or duplicate lifecycle events are expected from an external
process, so operations on unknown sessions return None/False instead of
raising. Terminal nodes (completed, failed, terminated) accept no further
transitions or budget changes.
"""

from __future__ import annotations

import datetime as _datetime
import logging as _logging
import threading as _threading
import typing as _typing

import heimdall.agents.node as node_module
import heimdall.agents.store as store
import heimdall.constants as constants
import heimdall.errors as errors
import heimdall.notifications as notifications

_logger = _logging.getLogger(__name__)

AgentNode = node_module.AgentNode
AgentStatus = node_module.AgentStatus


class AgentTracker:
    """
    Registers agents, links them into trees, and accounts budget and usage.

    Usage:
        tracker = AgentTracker(InMemoryAgentStore())
        tracker.start("s1", "orchestrator")
        tracker.start("s2", "worker", parent_session_id="s1")
        tracker.allocate_budget("s1", 10.0)
        tracker.allocate_budget("s2", 4.0, from_parent=True)
        tracker.visualize("s1")
    """

    def __init__(
        self,
        agent_store: store.AgentStore | None = None,
        notifier: notifications.Notifier | None = None,
    ) -> None:
        self._store = agent_store or store.InMemoryAgentStore()
        self._notifier = notifier or notifications.Notifier()
        self._lock = _threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        session_id: str,
        agent_name: str,
        parent_session_id: str | None = None,
        metadata: dict[str, _typing.Any] | None = None,
    ) -> AgentNode:
        """
        Register an agent.

        A repeated start for a known session returns the existing node.

        Args:
            session_id: The new agent's session id.
            agent_name: Display name.
            parent_session_id: Parent agent, None for a root.
            metadata: Extra data to keep with the node.

        Returns:
            The registered node.

        Raises:
            AgentNotFoundError: If parent_session_id is not tracked.
        """
        with self._lock:
            existing = self._store.get(session_id)
            if existing is not None:
                _logger.debug("Agent %s already registered", session_id)
                return existing

            if parent_session_id is not None:
                parent = self._store.get(parent_session_id)
                if parent is None:
                    raise errors.AgentNotFoundError(parent_session_id)
                root_session_id = parent.root_session_id
                depth = parent.depth + 1
            else:
                root_session_id = session_id
                depth = 0

            node = self._store.add(
                AgentNode(
                    id=0,
                    session_id=session_id,
                    agent_name=agent_name,
                    parent_session_id=parent_session_id,
                    root_session_id=root_session_id,
                    depth=depth,
                    metadata=dict(metadata or {}),
                )
            )

        _logger.info(
            "Agent started: %s (%s), parent=%s", agent_name, session_id, parent_session_id
        )
        self._notifier.publish(notifications.AGENT_STARTED, node)
        self._publish_tree("add", node)
        return node

    def stop(self, session_id: str, success: bool) -> AgentNode | None:
        """
        Mark an agent completed or failed.

        Returns:
            The node, or None if the session is unknown. A node that is
            already terminal is returned unchanged.
        """
        with self._lock:
            node = self._store.get(session_id)
            if node is None:
                _logger.debug("Stop for unknown agent %s ignored", session_id)
                return None
            if node.is_terminal:
                _logger.info(
                    "Stop for agent %s ignored; already %s", session_id, node.status.value
                )
                return node

            node.status = AgentStatus.COMPLETED if success else AgentStatus.FAILED
            node.completed_at = node_module.utcnow()
            self._store.save(node)
            self._record_metrics(node, success)

        _logger.info("Agent stopped: %s (success=%s)", session_id, success)
        self._notifier.publish(
            notifications.AGENT_STOPPED, {"session_id": session_id, "success": success}
        )
        self._publish_tree("update", node)
        return node

    def terminate(self, session_id: str) -> AgentNode | None:
        """
        Terminate an agent and all of its descendants.

        Every descendant reaches its final state before this node does.
        Nodes that already finished keep their status.

        Returns:
            The node, or None if the session is unknown.
        """
        with self._lock:
            node = self._store.get(session_id)
            if node is None:
                _logger.debug("Terminate for unknown agent %s ignored", session_id)
                return None

            for child in self._store.children_of(session_id):
                self.terminate(child.session_id)

            node = self._store.get(session_id)
            if node is None or node.is_terminal:
                return node

            node.status = AgentStatus.TERMINATED
            node.completed_at = node_module.utcnow()
            self._store.save(node)

        _logger.info("Agent terminated: %s", session_id)
        self._notifier.publish(notifications.AGENT_TERMINATED, {"session_id": session_id})
        self._publish_tree("update", node)
        return node

    def set_metadata(self, session_id: str, metadata: dict[str, _typing.Any]) -> bool:
        """Replace an agent's metadata. False if the session is unknown."""
        with self._lock:
            node = self._store.get(session_id)
            if node is None:
                return False
            node.metadata = dict(metadata)
            self._store.save(node)
            return True

    # ------------------------------------------------------------------
    # Budget and usage
    # ------------------------------------------------------------------

    def allocate_budget(
        self,
        session_id: str,
        amount_usd: float,
        from_parent: bool = False,
    ) -> bool:
        """
        Give an agent a budget.

        With from_parent, the amount is granted out of the parent's
        available budget (allocated - spent - granted) and added to the
        child's allocation. The parent's own allocation is not changed.
        Without it, the amount is set directly as the node's allocation.

        Returns:
            False (and nothing changes) if the session is unknown or
            terminal, the amount is negative, from_parent is used on a
            root, or the parent cannot cover the amount.
        """
        if amount_usd < 0:
            return False

        with self._lock:
            node = self._store.get(session_id)
            if node is None:
                _logger.debug("Budget for unknown agent %s ignored", session_id)
                return False
            if node.is_terminal:
                _logger.debug("Budget for finished agent %s ignored", session_id)
                return False

            if from_parent:
                if node.parent_session_id is None:
                    return False
                parent = self._store.get(node.parent_session_id)
                if parent is None or parent.is_terminal:
                    return False
                if parent.allocated_budget_usd <= 0:
                    return False
                if amount_usd > parent.available_budget_usd:
                    return False
                parent.granted_budget_usd += amount_usd
                node.allocated_budget_usd += amount_usd
                self._store.save(parent)
                self._store.save(node)
            else:
                node.allocated_budget_usd = amount_usd
                self._store.save(node)

        self._notifier.publish(
            notifications.AGENT_BUDGET_ALLOCATED,
            {"session_id": session_id, "amount": amount_usd, "from_parent": from_parent},
        )
        return True

    def record_cost(self, session_id: str, amount_usd: float) -> AgentNode | None:
        """
        Add spend to an agent.

        Publishes agent:budget-exceeded once spend reaches a positive
        allocation. The agent is not stopped.

        Returns:
            The updated node, or None if unknown or terminal.
        """
        if amount_usd < 0:
            _logger.debug("Negative cost %s for %s ignored", amount_usd, session_id)
            return None

        with self._lock:
            node = self._mutable(session_id)
            if node is None:
                return None
            node.spent_budget_usd += amount_usd
            self._store.save(node)

        self._notifier.publish(
            notifications.AGENT_COST_RECORDED,
            {"session_id": session_id, "cost": amount_usd},
        )
        if node.allocated_budget_usd > 0 and node.spent_budget_usd >= node.allocated_budget_usd:
            _logger.warning(
                "Agent %s reached its budget: spent %.4f of %.4f USD",
                session_id,
                node.spent_budget_usd,
                node.allocated_budget_usd,
            )
            self._notifier.publish(
                notifications.AGENT_BUDGET_EXCEEDED, {"session_id": session_id}
            )
        return node

    def record_tool_call(self, session_id: str) -> bool:
        with self._lock:
            node = self._mutable(session_id)
            if node is None:
                return False
            node.tool_calls += 1
            self._store.save(node)
            return True

    def record_tokens(self, session_id: str, tokens: int) -> bool:
        with self._lock:
            node = self._mutable(session_id)
            if node is None or tokens < 0:
                return False
            node.tokens_used += tokens
            self._store.save(node)
            return True

    def _mutable(self, session_id: str) -> AgentNode | None:
        node = self._store.get(session_id)
        if node is None:
            _logger.debug("Update for unknown agent %s ignored", session_id)
            return None
        if node.is_terminal:
            _logger.debug("Update for finished agent %s ignored", session_id)
            return None
        return node

    def _record_metrics(self, node: AgentNode, success: bool) -> None:
        metrics = self._store.get_metrics(node.agent_name)
        if metrics is None:
            metrics = node_module.AgentMetrics(agent_name=node.agent_name)
        metrics.record(node, success)
        self._store.save_metrics(metrics)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> AgentNode | None:
        return self._store.get(session_id)

    def tree(self, root_session_id: str) -> list[AgentNode]:
        """Every node of a tree, shallowest first."""
        return self._store.by_root(root_session_id)

    def children(self, session_id: str) -> list[AgentNode]:
        return self._store.children_of(session_id)

    def running_agents(self, root_session_id: str | None = None) -> list[AgentNode]:
        """Running nodes, optionally limited to one tree, by start time."""
        nodes = [
            n
            for n in self._store.all()
            if n.status is AgentStatus.RUNNING
            and (root_session_id is None or n.root_session_id == root_session_id)
        ]
        return sorted(nodes, key=lambda n: (n.started_at, n.id))

    def summary(self, root_session_id: str) -> node_module.HierarchySummary:
        """
        Aggregate counts and budget for one tree.

        total_budget counts only budget that entered the tree, so a
        grant from parent to child is not counted twice.
        """
        nodes = self._store.by_root(root_session_id)
        members = {n.session_id for n in nodes}
        result = node_module.HierarchySummary(root_session_id=root_session_id)
        for n in nodes:
            result.total_nodes += 1
            result.max_depth = max(result.max_depth, n.depth)
            result.total_spend += n.spent_budget_usd
            if n.parent_session_id not in members:
                result.total_budget += n.allocated_budget_usd
            if n.status is AgentStatus.RUNNING:
                result.running_count += 1
            elif n.status is AgentStatus.COMPLETED:
                result.completed_count += 1
            elif n.status is AgentStatus.FAILED:
                result.failed_count += 1
            else:
                result.terminated_count += 1
        return result

    def visualize(self, root_session_id: str) -> node_module.TreeNode | None:
        """
        Build the display tree for a root.

        Nodes whose parent is missing from the tree are left out.

        Returns:
            The root's TreeNode, or None if the root is unknown.
        """
        nodes = self._store.by_root(root_session_id)
        now = node_module.utcnow()
        projected = {n.session_id: node_module.TreeNode.from_agent(n, now) for n in nodes}

        root: node_module.TreeNode | None = None
        for n in nodes:
            tree_node = projected[n.session_id]
            if n.session_id == root_session_id:
                root = tree_node
                continue
            parent = projected.get(n.parent_session_id) if n.parent_session_id else None
            if parent is None:
                _logger.debug("Dropping orphaned agent %s from tree", n.session_id)
                continue
            parent.children.append(tree_node)
        return root

    def flat_tree(self, root_session_id: str) -> list[tuple[node_module.TreeNode, int]]:
        """Pre-order list of (node, indent) for list-style display."""
        root = self.visualize(root_session_id)
        if root is None:
            return []
        return list(root.walk())

    def metrics(self, agent_name: str) -> node_module.AgentMetrics | None:
        return self._store.get_metrics(agent_name)

    def all_metrics(self) -> list[node_module.AgentMetrics]:
        """Metrics for every agent name, most used first."""
        return sorted(
            self._store.all_metrics(),
            key=lambda m: m.total_sessions,
            reverse=True,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup(
        self,
        max_age_hours: float = constants.DEFAULT_CLEANUP_MAX_AGE_HOURS,
    ) -> int:
        """
        Delete old finished trees.

        A tree is removed when every node is terminal and its most recent
        completion is older than max_age_hours.

        Returns:
            Number of nodes removed.
        """
        threshold = node_module.utcnow() - _datetime.timedelta(hours=max_age_hours)

        with self._lock:
            trees: dict[str, list[AgentNode]] = {}
            for n in self._store.all():
                trees.setdefault(n.root_session_id, []).append(n)

            doomed: list[str] = []
            for nodes in trees.values():
                if not all(n.is_terminal for n in nodes):
                    continue
                finished = [n.completed_at for n in nodes if n.completed_at is not None]
                if finished and max(finished) < threshold:
                    doomed.extend(n.session_id for n in nodes)

            removed = self._store.delete_many(doomed)

        if removed:
            _logger.info("Cleaned up %d old agent tree nodes", removed)
        return removed

    def _publish_tree(self, action: str, node: AgentNode) -> None:
        # Only build the tree for listeners
        listeners = self._notifier.subscriber_count(
            notifications.AGENT_TREE_UPDATED
        ) + self._notifier.subscriber_count()
        if not listeners:
            return
        self._notifier.publish(
            notifications.AGENT_TREE_UPDATED,
            {
                "action": action,
                "node": node,
                "tree": self.visualize(node.root_session_id),
            },
        )
