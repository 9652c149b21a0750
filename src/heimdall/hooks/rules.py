"""
Hook rule records.

A rule binds an event type and a matcher to a shell command:

```yaml
- id: 1
  name: block-rm
  event_type: PreToolUse
  matcher: Bash(*rm -rf*)
  command: echo "refusing" >&2; exit 2
  timeout_ms: 5000
  scope: user
```

Rules are created by the user, mutated on every execution (count,
timestamp, result) and deleted explicitly.
"""

from __future__ import annotations

import datetime as _datetime
import typing as _typing

import pydantic as _pydantic

import heimdall.constants as constants
import heimdall.hooks.events as events

RuleScope = _typing.Literal["user", "project"]


def _utcnow() -> _datetime.datetime:
    return _datetime.datetime.now(_datetime.UTC)


class HookRuleCreate(_pydantic.BaseModel):
    """
    User-supplied fields of a rule.

    Generated fields (id, counters, timestamps) live on HookRule.
    """

    model_config = _pydantic.ConfigDict(extra="forbid")

    name: str
    """Human-readable rule name."""

    event_type: events.HookEventType
    """Event this rule reacts to."""

    matcher: str = "*"
    """"*", a bare tool name, or ToolName(argPattern)."""

    command: str
    """Shell command to run. Interpreted by the platform shell."""

    timeout_ms: int = constants.DEFAULT_HOOK_TIMEOUT_MS
    """Kill the command after this many milliseconds."""

    enabled: bool = True
    """Disabled rules are never loaded for dispatch."""

    scope: RuleScope = "user"
    """User rules apply everywhere; project rules only under project_path."""

    project_path: str | None = None
    """Project directory for project-scoped rules."""

    @_pydantic.field_validator("timeout_ms")
    @classmethod
    def _validate_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("timeout_ms must be positive")
        return value

    @_pydantic.field_validator("command")
    @classmethod
    def _validate_command(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be empty")
        return value

    @_pydantic.model_validator(mode="after")
    def _validate_scope(self) -> HookRuleCreate:
        if self.scope == "project" and not self.project_path:
            raise ValueError("project-scoped rules must specify 'project_path'")
        return self


class HookRule(HookRuleCreate):
    """A persisted rule, including its execution bookkeeping."""

    id: int
    """Store-assigned identifier."""

    execution_count: int = 0
    """Number of completed executions."""

    last_executed_at: _datetime.datetime | None = None
    """When the rule last ran."""

    last_result: events.ExecutionOutcome | None = None
    """Outcome bucket of the last run."""

    created_at: _datetime.datetime = _pydantic.Field(default_factory=_utcnow)
    updated_at: _datetime.datetime = _pydantic.Field(default_factory=_utcnow)

    def applies_to_project(self, project_path: str | None) -> bool:
        """Whether this rule should be loaded for an event in project_path."""
        if self.scope == "user":
            return True
        return project_path is not None and self.project_path == project_path


# Fields a caller may change through an update.
UPDATABLE_FIELDS = frozenset(HookRuleCreate.model_fields)
