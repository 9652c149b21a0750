"""
Rule store - persistence for hook rules.

The dispatcher only needs list_enabled() and record_execution(); the
rule manager uses the CRUD operations. Two implementations are provided:
- InMemoryRuleStore: process-local, used by tests and embedders
- YamlRuleStore: rules.yaml on disk, rewritten atomically on every change

Both keep insertion order, which is the dispatch order.
"""

from __future__ import annotations

import abc as _abc
import contextlib as _contextlib
import datetime as _datetime
import logging as _logging
import pathlib as _pathlib
import threading as _threading
import typing as _typing

import pydantic as _pydantic
import yaml as _yaml

import heimdall.constants as constants
import heimdall.errors as errors
import heimdall.hooks.events as events
import heimdall.hooks.rules as rules
import heimdall.utils as utils

_logger = _logging.getLogger(__name__)


class RuleStore(_abc.ABC):
    """Narrow repository interface consumed by the dispatcher and manager."""

    @_abc.abstractmethod
    def list_enabled(
        self,
        event_type: events.HookEventType,
        project_path: str | None = None,
    ) -> list[rules.HookRule]:
        """
        Enabled rules for an event, in insertion order.

        User-scoped rules always apply; project-scoped rules only when
        project_path matches theirs.
        """
        ...

    @_abc.abstractmethod
    def list_all(
        self,
        scope: rules.RuleScope | None = None,
        project_path: str | None = None,
    ) -> list[rules.HookRule]:
        """All rules, optionally filtered by scope (and project for project scope)."""
        ...

    @_abc.abstractmethod
    def get(self, rule_id: int) -> rules.HookRule | None:
        """Get a rule by id, or None."""
        ...

    @_abc.abstractmethod
    def create(self, data: rules.HookRuleCreate) -> rules.HookRule:
        """Persist a new rule and return it with its assigned id."""
        ...

    @_abc.abstractmethod
    def update(self, rule_id: int, changes: dict[str, _typing.Any]) -> rules.HookRule:
        """
        Apply changes to a rule.

        Raises:
            RuleNotFoundError: If the rule does not exist.
            ValueError: If a change is not an updatable field or fails validation.
        """
        ...

    @_abc.abstractmethod
    def delete(self, rule_id: int) -> bool:
        """Delete a rule. Returns False if it did not exist."""
        ...

    @_abc.abstractmethod
    def record_execution(self, rule_id: int, outcome: events.ExecutionOutcome) -> None:
        """Bump the execution count and record the outcome. Unknown ids are ignored."""
        ...


def _apply_update(
    rule: rules.HookRule,
    changes: dict[str, _typing.Any],
) -> rules.HookRule:
    """Validate changes against the rule model and return the updated rule."""
    unknown = set(changes) - rules.UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    data = rule.model_dump()
    data.update(changes)
    data["updated_at"] = _datetime.datetime.now(_datetime.UTC)
    try:
        return rules.HookRule.model_validate(data)
    except _pydantic.ValidationError as e:
        raise ValueError(f"Invalid rule update: {e}") from e


def _record(rule: rules.HookRule, outcome: events.ExecutionOutcome) -> rules.HookRule:
    now = _datetime.datetime.now(_datetime.UTC)
    return rule.model_copy(
        update={
            "execution_count": rule.execution_count + 1,
            "last_executed_at": now,
            "last_result": outcome,
            "updated_at": now,
        }
    )


class InMemoryRuleStore(RuleStore):
    """
    Rule store backed by a dict.

    Mutations are serialized with a lock so concurrent dispatches recording
    the same rule never lose an increment.
    """

    def __init__(self, initial: _typing.Iterable[rules.HookRuleCreate] = ()) -> None:
        self._rules: dict[int, rules.HookRule] = {}
        self._next_id = 1
        self._lock = _threading.RLock()
        for data in initial:
            self.create(data)

    # Hooks for subclasses that persist; no-ops in memory.
    def _refresh(self, force: bool = False) -> None:
        pass

    def _persist(self) -> None:
        pass

    def _exclusive(self) -> _typing.ContextManager[None]:
        return _contextlib.nullcontext()

    @_contextlib.contextmanager
    def _mutation(self) -> _typing.Iterator[None]:
        """Hold both locks and start from the latest persisted state."""
        with self._lock, self._exclusive():
            self._refresh(force=True)
            yield

    def list_enabled(
        self,
        event_type: events.HookEventType,
        project_path: str | None = None,
    ) -> list[rules.HookRule]:
        with self._lock:
            self._refresh()
            return [
                rule
                for rule in self._rules.values()
                if rule.enabled
                and rule.event_type is event_type
                and rule.applies_to_project(project_path)
            ]

    def list_all(
        self,
        scope: rules.RuleScope | None = None,
        project_path: str | None = None,
    ) -> list[rules.HookRule]:
        with self._lock:
            self._refresh()
            result = list(self._rules.values())
        if scope is not None:
            result = [r for r in result if r.scope == scope]
            if scope == "project" and project_path:
                result = [r for r in result if r.project_path == project_path]
        return result

    def get(self, rule_id: int) -> rules.HookRule | None:
        with self._lock:
            self._refresh()
            return self._rules.get(rule_id)

    def create(self, data: rules.HookRuleCreate) -> rules.HookRule:
        with self._mutation():
            rule = rules.HookRule(id=self._next_id, **data.model_dump())
            self._rules[rule.id] = rule
            self._next_id += 1
            self._persist()
            return rule

    def update(self, rule_id: int, changes: dict[str, _typing.Any]) -> rules.HookRule:
        with self._mutation():
            existing = self._rules.get(rule_id)
            if existing is None:
                raise errors.RuleNotFoundError(rule_id)
            updated = _apply_update(existing, changes)
            self._rules[rule_id] = updated
            self._persist()
            return updated

    def delete(self, rule_id: int) -> bool:
        with self._mutation():
            if self._rules.pop(rule_id, None) is None:
                return False
            self._persist()
            return True

    def record_execution(self, rule_id: int, outcome: events.ExecutionOutcome) -> None:
        with self._mutation():
            existing = self._rules.get(rule_id)
            if existing is None:
                _logger.debug("Execution recorded for unknown rule %s", rule_id)
                return
            self._rules[rule_id] = _record(existing, outcome)
            self._persist()


class YamlRuleStore(InMemoryRuleStore):
    """
    Rule store persisted to a YAML file.

    Several processes share the file: `heimdall serve` records executions
    while `heimdall hooks ...` edits rules. Every read first reloads the
    file if it was replaced since this store last saw it, and every
    mutation reloads, applies and rewrites (temp file + rename) while
    holding an exclusive lock on "rules.yaml.lock". File format:

    ```yaml
    version: 1
    next_id: 3
    rules:
      - id: 1
        name: ...
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
        """File this store persists to."""
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
            if self._signature is not None:
                _logger.info("Rules file %s was removed; starting empty", self._path)
            self._rules = {}
            self._next_id = 1
        else:
            self._load()
        self._signature = signature

    def _load(self) -> None:
        try:
            content = self._path.read_text(encoding="utf-8")
            data = _yaml.safe_load(content) or {}
        except OSError as e:
            raise errors.StoreError(f"Cannot read rules file {self._path}: {e}") from e
        except _yaml.YAMLError as e:
            raise errors.StoreError(f"Invalid YAML in {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise errors.StoreError(f"Rules file {self._path} must be a mapping")

        try:
            loaded = [rules.HookRule.model_validate(r) for r in data.get("rules") or []]
        except _pydantic.ValidationError as e:
            raise errors.StoreError(f"Invalid rule in {self._path}: {e}") from e

        self._rules = {rule.id: rule for rule in loaded}
        highest = max(self._rules, default=0)
        self._next_id = max(int(data.get("next_id", 1)), highest + 1)
        _logger.debug("Loaded %d rules from %s", len(self._rules), self._path)

    def _persist(self) -> None:
        document = {
            "version": 1,
            "next_id": self._next_id,
            "rules": [rule.model_dump(mode="json") for rule in self._rules.values()],
        }
        text = _yaml.safe_dump(document, sort_keys=False, allow_unicode=True)

        try:
            utils.atomic_write_text(self._path, text)
        except OSError as e:
            raise errors.StoreError(f"Cannot write rules file {self._path}: {e}") from e
        self._signature = utils.file_signature(self._path)
