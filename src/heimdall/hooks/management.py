"""
Rule management - user-facing CRUD over the rule store.

Every change is published on the notifier so listeners (a UI, the
settings synchronizer) can react without polling the store.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import heimdall.errors as errors
import heimdall.hooks.events as events
import heimdall.hooks.rules as rules
import heimdall.hooks.store as store
import heimdall.notifications as notifications

_logger = _logging.getLogger(__name__)


class RuleManager:
    """CRUD operations on hook rules with change notifications."""

    def __init__(
        self,
        rule_store: store.RuleStore,
        notifier: notifications.Notifier | None = None,
    ) -> None:
        self._store = rule_store
        self._notifier = notifier or notifications.Notifier()

    def list(
        self,
        event_type: events.HookEventType | None = None,
        scope: rules.RuleScope | None = None,
        project_path: str | None = None,
    ) -> list[rules.HookRule]:
        """List rules, optionally filtered by event type and scope."""
        result = self._store.list_all(scope=scope, project_path=project_path)
        if event_type is not None:
            result = [r for r in result if r.event_type is event_type]
        return result

    def get(self, rule_id: int) -> rules.HookRule | None:
        return self._store.get(rule_id)

    def create(self, data: rules.HookRuleCreate) -> rules.HookRule:
        """Create a rule and publish hook:created."""
        rule = self._store.create(data)
        _logger.info("Created hook rule %d (%s)", rule.id, rule.name)
        self._notifier.publish(notifications.HOOK_CREATED, rule)
        return rule

    def update(self, rule_id: int, changes: dict[str, _typing.Any]) -> rules.HookRule:
        """
        Update a rule and publish hook:updated.

        Raises:
            RuleNotFoundError: If the rule does not exist.
            ValueError: If the changes are invalid.
        """
        rule = self._store.update(rule_id, changes)
        self._notifier.publish(notifications.HOOK_UPDATED, rule)
        return rule

    def delete(self, rule_id: int) -> bool:
        """Delete a rule. Unknown ids are a no-op returning False."""
        deleted = self._store.delete(rule_id)
        if deleted:
            _logger.info("Deleted hook rule %d", rule_id)
            self._notifier.publish(notifications.HOOK_DELETED, rule_id)
        return deleted

    def set_enabled(self, rule_id: int, enabled: bool) -> rules.HookRule:
        """
        Enable or disable a rule and publish hook:toggled.

        Raises:
            RuleNotFoundError: If the rule does not exist.
        """
        if self._store.get(rule_id) is None:
            raise errors.RuleNotFoundError(rule_id)
        rule = self._store.update(rule_id, {"enabled": enabled})
        self._notifier.publish(notifications.HOOK_TOGGLED, rule)
        return rule
