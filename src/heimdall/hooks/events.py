"""
Hook event types, execution context, and result dataclasses.

These define the core data structures for hook dispatch:
- HookEventType: The twelve lifecycle/tool events the external CLI emits
- HookCategory: Which response shape the CLI expects for an event
- HookExecutionContext: What one inbound event tells us
- HookExecutionResult: What running one rule's command produced
- ExecutionOutcome: The bucket a run is recorded under in the rule store
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import json as _json
import re as _re
import time as _time
import typing as _typing

import heimdall.constants as constants


class HookCategory(_enum.Enum):
    """
    Response shape family for an event.

    The external CLI expects a different JSON schema per category.
    """

    PRE_TOOL_USE = "PreToolUse"
    """{hookEventName, permissionDecision, permissionDecisionReason?, updatedInput?}"""

    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    """{hookEventName, additionalContext} (always present, may be empty)."""

    POST_TOOL_USE = "PostToolUse"
    """{hookEventName, additionalContext?}"""

    STOP = "Stop"
    """{continue, stopReason?, additionalContext?}"""


class HookEventType(_enum.Enum):
    """
    Lifecycle and tool events emitted by the external CLI.

    Values are the CLI's own event names.
    """

    PRE_TOOL_USE = "PreToolUse"
    """Before a tool runs. Can deny and rewrite input."""

    POST_TOOL_USE = "PostToolUse"
    """After a tool completes successfully."""

    POST_TOOL_USE_FAILURE = "PostToolUseFailure"
    """After a tool fails."""

    SESSION_START = "SessionStart"
    """A new top-level session begins."""

    SESSION_END = "SessionEnd"
    """A top-level session ends."""

    STOP = "Stop"
    """The agent finished responding."""

    PERMISSION_REQUEST = "PermissionRequest"
    """The CLI is about to ask the user for permission."""

    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    """The user submitted a prompt."""

    SUBAGENT_START = "SubagentStart"
    """A sub-agent was spawned."""

    SUBAGENT_STOP = "SubagentStop"
    """A sub-agent finished."""

    PRE_COMPACT = "PreCompact"
    """Before context compaction."""

    NOTIFICATION = "Notification"
    """The CLI emitted a user notification."""

    @property
    def category(self) -> HookCategory:
        """Response shape the CLI expects for this event."""
        if self is HookEventType.PRE_TOOL_USE:
            return HookCategory.PRE_TOOL_USE
        if self is HookEventType.USER_PROMPT_SUBMIT:
            return HookCategory.USER_PROMPT_SUBMIT
        if self is HookEventType.POST_TOOL_USE:
            return HookCategory.POST_TOOL_USE
        return HookCategory.STOP

    @property
    def kebab_name(self) -> str:
        """Event name as used in URLs, e.g. "pre-tool-use"."""
        return _re.sub(r"(?<!^)([A-Z])", r"-\1", self.value).lower()

    @property
    def is_agent_lifecycle(self) -> bool:
        """Whether the agent tracker cares about this event."""
        return self in {
            HookEventType.SESSION_START,
            HookEventType.SESSION_END,
            HookEventType.SUBAGENT_START,
            HookEventType.SUBAGENT_STOP,
        }

    @classmethod
    def from_kebab(cls, name: str) -> HookEventType:
        """
        Look up an event by its kebab-case name.

        Raises:
            ValueError: If no event has that name.
        """
        for event in cls:
            if event.kebab_name == name:
                return event
        raise ValueError(f"Unknown hook event: {name}")


class ExecutionOutcome(_enum.Enum):
    """How a rule execution is summarized in the rule store."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    """Also used for spawn failures: anything without an exit code."""


@_dataclasses.dataclass
class HookExecutionContext:
    """
    Context for one inbound event.

    Fields not relevant to an event are None. Never persisted as a whole.

    Attributes:
        event_type: The event that arrived
        tool_name: Tool name (tool events only)
        tool_input: Tool input (tool events only)
        tool_result: Serialized tool result (post tool events)
        session_id: Session the event belongs to
        project_path: Working directory of the session
        timestamp_ms: When the event was produced (epoch milliseconds)
    """

    event_type: HookEventType
    tool_name: str | None = None
    tool_input: dict[str, _typing.Any] | None = None
    tool_result: str | None = None
    session_id: str | None = None
    project_path: str | None = None
    timestamp_ms: int = _dataclasses.field(default_factory=lambda: int(_time.time() * 1000))

    def serialized_tool_input(self) -> str | None:
        """Tool input as the JSON text matchers and commands see."""
        if self.tool_input is None:
            return None
        return _json.dumps(self.tool_input)

    def to_env_vars(self) -> dict[str, str]:
        """
        Flatten the context into environment variables for hook commands.

        Every variable is always present; absent fields become "".
        """
        return {
            constants.ENV_HOOK_EVENT: self.event_type.value,
            constants.ENV_HOOK_TOOL: self.tool_name or "",
            constants.ENV_HOOK_INPUT: self.serialized_tool_input() or "",
            constants.ENV_HOOK_RESULT: self.tool_result or "",
            constants.ENV_SESSION_ID: self.session_id or "",
            constants.ENV_PROJECT_PATH: self.project_path or "",
            constants.ENV_TIMESTAMP: str(self.timestamp_ms),
        }

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to JSON-serializable dict."""
        result: dict[str, _typing.Any] = {
            "event_type": self.event_type.value,
            "timestamp_ms": self.timestamp_ms,
        }
        if self.tool_name is not None:
            result["tool_name"] = self.tool_name
        if self.tool_input is not None:
            result["tool_input"] = self.tool_input
        if self.tool_result is not None:
            result["tool_result"] = self.tool_result
        if self.session_id is not None:
            result["session_id"] = self.session_id
        if self.project_path is not None:
            result["project_path"] = self.project_path
        return result


@_dataclasses.dataclass
class HookExecutionResult:
    """
    Result of running one rule's command.

    Attributes:
        rule_id: Id of the rule that ran
        rule_name: Name of the rule that ran
        success: True iff the command exited 0
        exit_code: Process exit code, None on timeout or spawn failure
        stdout: Captured standard output
        stderr: Captured standard error (plus timeout/error markers)
        duration_ms: Wall time from spawn to resolution
        should_block: True iff the command exited with code 2
    """

    rule_id: int
    rule_name: str
    success: bool
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    should_block: bool

    @property
    def outcome(self) -> ExecutionOutcome:
        """Bucket for the rule store's last_result field."""
        if self.success:
            return ExecutionOutcome.SUCCESS
        if self.exit_code is None:
            return ExecutionOutcome.TIMEOUT
        return ExecutionOutcome.FAILURE

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to JSON-serializable dict."""
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "success": self.success,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "should_block": self.should_block,
        }
