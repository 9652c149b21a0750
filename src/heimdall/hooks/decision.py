"""
Decision aggregation and response shaping for the external CLI.

A dispatch produces a list of per-rule results. build_decision() folds
them into one HookDecision, which is what the ingress answers with.
format_cli_response() turns a decision into the JSON the external CLI
expects for the event's category, plus the process exit code.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import json as _json
import typing as _typing

import heimdall.constants as constants
import heimdall.hooks.events as events

DecisionKind = _typing.Literal["allow", "block", "deny"]

# Events whose block verdict is reported as a permission denial
_DENY_EVENTS = frozenset(
    {
        events.HookEventType.PRE_TOOL_USE,
        events.HookEventType.PERMISSION_REQUEST,
    }
)


@_dataclasses.dataclass
class HookDecision:
    """
    Aggregated verdict for one event.

    Attributes:
        decision: "allow", "block" or "deny"
        message: Reason shown to the user (block reason or hook message)
        inject_context: Extra context for the agent
        modified_input: Replacement tool input (PreToolUse only)
    """

    decision: DecisionKind = "allow"
    message: str | None = None
    inject_context: str | None = None
    modified_input: dict[str, _typing.Any] | None = None

    @property
    def blocked(self) -> bool:
        return self.decision in ("block", "deny")

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to the ingress response body."""
        result: dict[str, _typing.Any] = {"decision": self.decision}
        if self.message is not None:
            result["message"] = self.message
        if self.inject_context is not None:
            result["inject_context"] = self.inject_context
        if self.modified_input is not None:
            result["modified_input"] = self.modified_input
        return result

    @classmethod
    def from_dict(cls, data: dict[str, _typing.Any]) -> HookDecision:
        """
        Read a decision from an ingress response body.

        Unknown decision values are treated as "allow".
        """
        decision = data.get("decision")
        if decision not in ("allow", "block", "deny"):
            decision = "allow"

        message = data.get("message")
        inject = data.get("inject_context")
        modified = data.get("modified_input")
        return cls(
            decision=decision,
            message=message if isinstance(message, str) else None,
            inject_context=inject if isinstance(inject, str) else None,
            modified_input=modified if isinstance(modified, dict) else None,
        )


def _block_message(result: events.HookExecutionResult) -> str:
    stderr = result.stderr.strip()
    if stderr:
        return stderr
    stdout = result.stdout.strip()
    if stdout:
        return stdout
    return f"Blocked by hook '{result.rule_name}'"


def _apply_output(decision: HookDecision, stdout: str) -> None:
    """Merge what a successful command printed into the decision."""
    text = stdout.strip()
    if not text:
        return

    try:
        data = _json.loads(text)
    except ValueError:
        data = None

    if not isinstance(data, dict):
        decision.inject_context = text
        return

    context = data.get("inject_context", data.get("additionalContext"))
    if isinstance(context, str):
        decision.inject_context = context

    modified = data.get("modified_input", data.get("updatedInput"))
    if isinstance(modified, dict):
        decision.modified_input = modified

    message = data.get("message")
    if isinstance(message, str):
        decision.message = message


def build_decision(
    event_type: events.HookEventType,
    results: list[events.HookExecutionResult],
) -> HookDecision:
    """
    Fold a dispatch's results into a single decision.

    A blocking result wins outright and discards any merged output.
    Otherwise the output of successful commands is merged in order, the
    last value of each field winning.

    Args:
        event_type: The dispatched event.
        results: Results in execution order.

    Returns:
        The aggregated decision.
    """
    decision = HookDecision()

    for result in results:
        if result.should_block:
            return HookDecision(
                decision="deny" if event_type in _DENY_EVENTS else "block",
                message=_block_message(result),
            )

        if result.success:
            _apply_output(decision, result.stdout)

    return decision


def allow_response(event_type: events.HookEventType) -> dict[str, _typing.Any]:
    """The fail-open answer for an event's category."""
    category = event_type.category
    if category is events.HookCategory.PRE_TOOL_USE:
        return {"hookEventName": event_type.value, "permissionDecision": "allow"}
    if category is events.HookCategory.USER_PROMPT_SUBMIT:
        return {"hookEventName": event_type.value, "additionalContext": ""}
    if category is events.HookCategory.POST_TOOL_USE:
        return {"hookEventName": event_type.value}
    return {"continue": True}


def format_cli_response(
    event_type: events.HookEventType,
    decision: HookDecision,
) -> tuple[dict[str, _typing.Any], int]:
    """
    Shape a decision for the external CLI.

    Returns:
        (payload, exit_code) where exit_code is 2 if blocked, else 0.
    """
    blocked = decision.blocked
    category = event_type.category
    payload: dict[str, _typing.Any]

    if category is events.HookCategory.PRE_TOOL_USE:
        payload = {
            "hookEventName": event_type.value,
            "permissionDecision": "deny" if blocked else "allow",
        }
        if decision.message:
            payload["permissionDecisionReason"] = decision.message
        if decision.modified_input is not None:
            payload["updatedInput"] = decision.modified_input
    elif category is events.HookCategory.USER_PROMPT_SUBMIT:
        payload = {
            "hookEventName": event_type.value,
            "additionalContext": decision.inject_context or "",
        }
    elif category is events.HookCategory.POST_TOOL_USE:
        payload = {"hookEventName": event_type.value}
        if decision.inject_context:
            payload["additionalContext"] = decision.inject_context
    else:
        payload = {"continue": not blocked}
        if blocked and decision.message:
            payload["stopReason"] = decision.message
        if decision.inject_context:
            payload["additionalContext"] = decision.inject_context

    return payload, constants.BLOCK_EXIT_CODE if blocked else 0
