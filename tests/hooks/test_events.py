"""Tests for hook event types and execution records."""

import json as _json

import pytest as _pytest

import heimdall.hooks.events as events


class TestHookEventType:
    """Tests for HookEventType."""

    def test_twelve_events(self) -> None:
        assert len(events.HookEventType) == 12

    @_pytest.mark.parametrize(
        ("event", "kebab"),
        [
            (events.HookEventType.PRE_TOOL_USE, "pre-tool-use"),
            (events.HookEventType.POST_TOOL_USE_FAILURE, "post-tool-use-failure"),
            (events.HookEventType.SESSION_START, "session-start"),
            (events.HookEventType.USER_PROMPT_SUBMIT, "user-prompt-submit"),
            (events.HookEventType.STOP, "stop"),
        ],
    )
    def test_kebab_round_trip(self, event: events.HookEventType, kebab: str) -> None:
        """Kebab names are used in ingress URLs."""
        assert event.kebab_name == kebab
        assert events.HookEventType.from_kebab(kebab) is event

    def test_from_kebab_unknown(self) -> None:
        with _pytest.raises(ValueError, match="Unknown hook event"):
            events.HookEventType.from_kebab("pre-tool-abuse")

    @_pytest.mark.parametrize(
        ("event", "category"),
        [
            (events.HookEventType.PRE_TOOL_USE, events.HookCategory.PRE_TOOL_USE),
            (events.HookEventType.USER_PROMPT_SUBMIT, events.HookCategory.USER_PROMPT_SUBMIT),
            (events.HookEventType.POST_TOOL_USE, events.HookCategory.POST_TOOL_USE),
            (events.HookEventType.POST_TOOL_USE_FAILURE, events.HookCategory.STOP),
            (events.HookEventType.SUBAGENT_STOP, events.HookCategory.STOP),
            (events.HookEventType.NOTIFICATION, events.HookCategory.STOP),
        ],
    )
    def test_category(self, event: events.HookEventType, category: events.HookCategory) -> None:
        assert event.category is category


class TestHookExecutionContext:
    """Tests for HookExecutionContext."""

    def test_env_vars_for_tool_event(self) -> None:
        context = events.HookExecutionContext(
            event_type=events.HookEventType.PRE_TOOL_USE,
            tool_name="Bash",
            tool_input={"command": "ls"},
            session_id="s1",
            project_path="/repo",
            timestamp_ms=1234,
        )
        env = context.to_env_vars()
        assert env["HEIMDALL_HOOK_EVENT"] == "PreToolUse"
        assert env["HEIMDALL_HOOK_TOOL"] == "Bash"
        assert _json.loads(env["HEIMDALL_HOOK_INPUT"]) == {"command": "ls"}
        assert env["HEIMDALL_SESSION_ID"] == "s1"
        assert env["HEIMDALL_PROJECT_PATH"] == "/repo"
        assert env["HEIMDALL_TIMESTAMP"] == "1234"

    def test_env_vars_missing_fields_are_empty(self) -> None:
        """Absent fields are exported as empty strings, never omitted."""
        env = events.HookExecutionContext(event_type=events.HookEventType.STOP).to_env_vars()
        assert env["HEIMDALL_HOOK_TOOL"] == ""
        assert env["HEIMDALL_HOOK_INPUT"] == ""
        assert env["HEIMDALL_HOOK_RESULT"] == ""
        assert env["HEIMDALL_SESSION_ID"] == ""
        assert all(isinstance(v, str) for v in env.values())

    def test_to_dict_omits_absent_fields(self) -> None:
        data = events.HookExecutionContext(
            event_type=events.HookEventType.STOP, timestamp_ms=5
        ).to_dict()
        assert data == {"event_type": "Stop", "timestamp_ms": 5}


class TestHookExecutionResult:
    """Tests for the outcome bucket of a result."""

    def _result(self, exit_code: int | None) -> events.HookExecutionResult:
        return events.HookExecutionResult(
            rule_id=1,
            rule_name="r",
            success=exit_code == 0,
            exit_code=exit_code,
            stdout="",
            stderr="",
            duration_ms=1,
            should_block=exit_code == 2,
        )

    def test_outcomes(self) -> None:
        assert self._result(0).outcome is events.ExecutionOutcome.SUCCESS
        assert self._result(1).outcome is events.ExecutionOutcome.FAILURE
        assert self._result(2).outcome is events.ExecutionOutcome.FAILURE
        assert self._result(None).outcome is events.ExecutionOutcome.TIMEOUT

    def test_to_dict(self) -> None:
        data = self._result(2).to_dict()
        assert data["should_block"] is True
        assert data["exit_code"] == 2
        assert data["rule_name"] == "r"
