"""
Agent hierarchy tracking for Heimdall.

Tracks the tree of sub-agents the external CLI spawns: parent/child links,
budget grants, spend and usage accounting, and cascading termination.
"""

from heimdall.agents.node import (
    AgentMetrics,
    AgentNode,
    AgentStatus,
    HierarchySummary,
    TreeNode,
)
from heimdall.agents.store import AgentStore, InMemoryAgentStore, JsonAgentStore
from heimdall.agents.tracker import AgentTracker

__all__ = [
    "AgentMetrics",
    "AgentNode",
    "AgentStatus",
    "AgentStore",
    "AgentTracker",
    "HierarchySummary",
    "InMemoryAgentStore",
    "JsonAgentStore",
    "TreeNode",
]
