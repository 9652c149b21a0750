"""
Forwarder - the command the external CLI runs for every hook event.

Reads the event JSON from stdin, posts it to the local ingress, and turns
the ingress decision into the response shape the external CLI expects.

Every failure path answers with the category's allow response and exit
code 0. A broken or absent ingress must never block the external CLI.
"""

from __future__ import annotations

import json as _json
import logging as _logging
import time as _time
import typing as _typing

import httpx as _httpx

import heimdall.constants as constants
import heimdall.hooks.decision as decision
import heimdall.hooks.events as events

_logger = _logging.getLogger(__name__)


def parse_event_name(name: str) -> events.HookEventType:
    """
    Accept an event as "PreToolUse" or "pre-tool-use".

    Raises:
        ValueError: If the name is not a known event.
    """
    try:
        return events.HookEventType(name)
    except ValueError:
        return events.HookEventType.from_kebab(name)


def build_payload(
    event_type: events.HookEventType,
    raw_stdin: str,
) -> dict[str, _typing.Any]:
    """
    Build the body posted to the ingress.

    Invalid or non-object stdin is treated as an empty object.
    """
    data: _typing.Any = {}
    if raw_stdin.strip():
        try:
            data = _json.loads(raw_stdin)
        except ValueError as e:
            _logger.warning("Ignoring invalid hook input JSON: %s", e)
            data = {}
    if not isinstance(data, dict):
        data = {}

    return {
        "hook_event_name": event_type.value,
        **data,
        "timestamp": int(_time.time() * 1000),
    }


def forward_event(
    event_type: events.HookEventType,
    raw_stdin: str,
    base_url: str,
    timeout: float = constants.DEFAULT_FORWARD_TIMEOUT_SECONDS,
    *,
    transport: _httpx.BaseTransport | None = None,
) -> tuple[dict[str, _typing.Any], int]:
    """
    Post one event to the ingress and shape its answer.

    Args:
        event_type: Event being forwarded.
        raw_stdin: JSON the external CLI wrote to our stdin.
        base_url: Ingress address, e.g. "http://127.0.0.1:23847".
        timeout: Give up (and allow) after this many seconds.
        transport: Optional httpx transport (for tests).

    Returns:
        (payload, exit_code) to print and exit with.
    """
    payload = build_payload(event_type, raw_stdin)
    url = f"{base_url.rstrip('/')}{constants.HOOKS_API_PREFIX}/{event_type.kebab_name}"

    try:
        with _httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.post(url, json=payload)
            response.raise_for_status()
            body = response.json()
    except _httpx.HTTPError as e:
        _logger.warning("Hook ingress unavailable, allowing %s: %s", event_type.value, e)
        return decision.allow_response(event_type), 0
    except ValueError as e:
        _logger.warning("Invalid ingress response, allowing %s: %s", event_type.value, e)
        return decision.allow_response(event_type), 0

    if not isinstance(body, dict):
        return decision.allow_response(event_type), 0

    return decision.format_cli_response(event_type, decision.HookDecision.from_dict(body))
