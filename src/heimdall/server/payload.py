"""
Inbound event payload helpers.

The forwarder posts whatever JSON the external CLI produced, plus
hook_event_name and timestamp. Keys arrive in snake_case from the CLI,
but camelCase is accepted too.
"""

from __future__ import annotations

import json as _json
import re as _re
import typing as _typing

import heimdall.hooks.events as events

Payload = dict[str, _typing.Any]


def _camel(name: str) -> str:
    return _re.sub(r"_([a-z])", lambda m: m.group(1).upper(), name)


def get_value(payload: Payload, *names: str) -> _typing.Any:
    """
    First non-None value among names, trying each in snake and camel case.

    Example:
        get_value({"toolName": "Bash"}, "tool_name")  # "Bash"
    """
    for name in names:
        for key in (name, _camel(name)):
            value = payload.get(key)
            if value is not None:
                return value
    return None


def get_str(payload: Payload, *names: str) -> str | None:
    value = get_value(payload, *names)
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def get_bool(payload: Payload, name: str, default: bool) -> bool:
    value = get_value(payload, name)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "")
    return default


def working_directory(payload: Payload) -> str | None:
    return get_str(payload, "working_directory", "cwd")


def build_context(
    event_type: events.HookEventType,
    payload: Payload,
) -> events.HookExecutionContext:
    """Turn a posted payload into the dispatch context."""
    tool_input = get_value(payload, "tool_input")
    if tool_input is not None and not isinstance(tool_input, dict):
        tool_input = {"value": tool_input}

    tool_result = get_value(payload, "tool_response", "tool_result")
    if tool_result is not None and not isinstance(tool_result, str):
        tool_result = _json.dumps(tool_result)

    context = events.HookExecutionContext(
        event_type=event_type,
        tool_name=get_str(payload, "tool_name"),
        tool_input=tool_input,
        tool_result=tool_result,
        session_id=get_str(payload, "session_id"),
        project_path=working_directory(payload),
    )

    timestamp = get_value(payload, "timestamp")
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        context.timestamp_ms = int(timestamp)
    return context
