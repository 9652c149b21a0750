"""
Outbound notification channel.

The dispatcher and the agent tracker publish what happened here instead of
calling into any UI code. Subscribers are plain callables; a subscriber that
raises is logged and skipped so one broken listener cannot break a dispatch.
"""

from __future__ import annotations

import collections as _collections
import logging as _logging
import typing as _typing

_logger = _logging.getLogger(__name__)

Subscriber = _typing.Callable[[str, _typing.Any], None]

# Topics
HOOK_EXECUTED = "hook:executed"
HOOK_PROCESSED = "hook:processed"
HOOK_CREATED = "hook:created"
HOOK_UPDATED = "hook:updated"
HOOK_DELETED = "hook:deleted"
HOOK_TOGGLED = "hook:toggled"
AGENT_STARTED = "agent:started"
AGENT_STOPPED = "agent:stopped"
AGENT_TERMINATED = "agent:terminated"
AGENT_BUDGET_ALLOCATED = "agent:budget-allocated"
AGENT_COST_RECORDED = "agent:cost-recorded"
AGENT_BUDGET_EXCEEDED = "agent:budget-exceeded"
AGENT_TREE_UPDATED = "agent:tree-updated"


class Notifier:
    """
    Synchronous publish/subscribe channel.

    Usage:
        notifier = Notifier()
        unsubscribe = notifier.subscribe("hook:executed", on_executed)
        notifier.publish("hook:executed", result)
        unsubscribe()

    Subscribing with topic None receives every topic.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = _collections.defaultdict(list)
        self._wildcard: list[Subscriber] = []

    def subscribe(
        self,
        topic: str | None,
        callback: Subscriber,
    ) -> _typing.Callable[[], None]:
        """Register a callback. Returns a function that removes it again."""
        target = self._wildcard if topic is None else self._subscribers[topic]
        target.append(callback)

        def _unsubscribe() -> None:
            if callback in target:
                target.remove(callback)

        return _unsubscribe

    def publish(self, topic: str, payload: _typing.Any = None) -> None:
        """Deliver payload to every subscriber of topic, then to wildcards."""
        for callback in [*self._subscribers.get(topic, []), *self._wildcard]:
            try:
                callback(topic, payload)
            except Exception:
                _logger.exception("Subscriber for %s failed", topic)

    def subscriber_count(self, topic: str | None = None) -> int:
        """Number of subscribers for a topic (None = wildcard subscribers)."""
        if topic is None:
            return len(self._wildcard)
        return len(self._subscribers.get(topic, []))
