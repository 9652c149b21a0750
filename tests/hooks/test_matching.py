"""Tests for hook matcher patterns."""

import pytest as _pytest

import heimdall.hooks.events as events
import heimdall.hooks.matching as matching
import heimdall.hooks.rules as rules


def _input(**values: str) -> str:
    return events.HookExecutionContext(
        event_type=events.HookEventType.PRE_TOOL_USE,
        tool_input=values,
    ).serialized_tool_input()  # type: ignore[return-value]


class TestCompileMatcher:
    """Tests for parsing matcher strings into tagged matchers."""

    @_pytest.mark.parametrize("pattern", ["*", "", "   ", None])
    def test_wildcards_compile_to_any(self, pattern: str | None) -> None:
        """Empty, blank and "*" patterns match everything."""
        assert matching.compile_matcher(pattern).kind is matching.MatcherKind.ANY

    def test_bare_tool_name(self) -> None:
        """A bare name is a tool-only matcher."""
        compiled = matching.compile_matcher("Bash")
        assert compiled.kind is matching.MatcherKind.TOOL_ONLY
        assert compiled.tool == "Bash"

    def test_tool_with_wildcard_args(self) -> None:
        """Tool(*) places no constraint on the arguments."""
        compiled = matching.compile_matcher("Bash(*)")
        assert compiled.kind is matching.MatcherKind.TOOL_AND_ARGS
        assert compiled.tool == "Bash"
        assert compiled.arg_regex is None

    def test_tool_with_arg_pattern(self) -> None:
        """Tool(pattern) keeps a compiled argument pattern."""
        compiled = matching.compile_matcher("Edit(*src/*)")
        assert compiled.kind is matching.MatcherKind.TOOL_AND_ARGS
        assert compiled.tool == "Edit"
        assert compiled.arg_regex is not None

    @_pytest.mark.parametrize("pattern", ["Bash(", "Bash)", "Ba(sh"])
    def test_unbalanced_parentheses_are_invalid(self, pattern: str) -> None:
        """Malformed patterns compile instead of raising."""
        assert matching.compile_matcher(pattern).kind is matching.MatcherKind.INVALID

    def test_compiled_matchers_are_cached(self) -> None:
        """The same string is parsed once."""
        assert matching.compile_matcher("Read(*.py)") is matching.compile_matcher("Read(*.py)")


class TestCompiledMatcher:
    """Tests for matching tool invocations."""

    def test_tool_only_is_exact_and_case_sensitive(self) -> None:
        compiled = matching.compile_matcher("Bash")
        assert compiled.matches("Bash", None) is True
        assert compiled.matches("bash", None) is False
        assert compiled.matches("BashOutput", None) is False

    def test_tool_wildcard_args_match_any_input(self) -> None:
        compiled = matching.compile_matcher("Bash(*)")
        assert compiled.matches("Bash", _input(command="ls")) is True
        assert compiled.matches("Bash", None) is True
        assert compiled.matches("Read", _input(file_path="x")) is False

    def test_arg_pattern_searches_serialized_input(self) -> None:
        """The argument pattern is matched against the JSON input text."""
        compiled = matching.compile_matcher("Bash(*rm -rf*)")
        assert compiled.matches("Bash", _input(command="sudo rm -rf /tmp")) is True
        assert compiled.matches("Bash", _input(command="rm file.txt")) is False

    def test_arg_pattern_is_unanchored(self) -> None:
        """A pattern without "*" still matches inside the input."""
        compiled = matching.compile_matcher("Edit(src/)")
        assert compiled.matches("Edit", _input(file_path="src/main.py")) is True
        assert compiled.matches("Edit", _input(file_path="lib/main.py")) is False

    def test_regex_characters_are_literal(self) -> None:
        """Only "*" is special in argument patterns."""
        compiled = matching.compile_matcher("Bash(a.c)")
        assert compiled.matches("Bash", _input(command="abc")) is False
        assert compiled.matches("Bash", _input(command="a.c")) is True

    def test_any_tool_with_arg_pattern(self) -> None:
        """*(pattern) applies to every tool."""
        compiled = matching.compile_matcher("*(secret*)")
        assert compiled.matches("Read", _input(file_path="secret.txt")) is True
        assert compiled.matches("Bash", _input(command="cat secret")) is True
        assert compiled.matches("Bash", _input(command="ls")) is False

    def test_arg_pattern_without_input_does_not_match(self) -> None:
        compiled = matching.compile_matcher("Bash(*ls*)")
        assert compiled.matches("Bash", None) is False

    def test_invalid_matcher_never_matches_tools(self) -> None:
        compiled = matching.compile_matcher("Bash(")
        assert compiled.matches("Bash", _input(command="ls")) is False

    @_pytest.mark.parametrize("pattern", ["Bash", "Bash(*)", "Bash(*rm*)", "Bash("])
    def test_events_without_tool_always_match(self, pattern: str) -> None:
        """Non-tool events have nothing to filter on."""
        assert matching.compile_matcher(pattern).matches(None, None) is True


class TestMatchesRule:
    """Tests for matches(rule, context)."""

    def _rule(self, matcher: str) -> rules.HookRule:
        return rules.HookRule(
            id=1,
            name="r",
            event_type=events.HookEventType.PRE_TOOL_USE,
            matcher=matcher,
            command="true",
        )

    def test_rule_matches_context(self) -> None:
        context = events.HookExecutionContext(
            event_type=events.HookEventType.PRE_TOOL_USE,
            tool_name="Bash",
            tool_input={"command": "git push --force"},
        )
        assert matching.matches(self._rule("Bash(*--force*)"), context) is True
        assert matching.matches(self._rule("Bash(*--dry-run*)"), context) is False
        assert matching.matches(self._rule("Write"), context) is False

    def test_session_event_matches_tool_rule(self) -> None:
        context = events.HookExecutionContext(event_type=events.HookEventType.SESSION_START)
        assert matching.matches(self._rule("Bash(*)"), context) is True
