"""
Matcher pattern language for hook rules.

A rule's matcher selects which tool invocations it applies to:
- "*" or "": every event
- "Bash": events whose tool is exactly Bash (case-sensitive)
- "Bash(*)": every Bash call
- "Edit(*src/*)": Edit calls whose serialized input matches the glob-like
  argument pattern, where "*" matches anything and every other character is
  literal
- "*(rm -rf*)": any tool whose serialized input matches

Events without a tool (SessionStart, Stop, ...) match every rule.

Matcher strings are parsed once into a CompiledMatcher and cached, so
dispatch never re-parses a pattern.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import functools as _functools
import re as _re
import typing as _typing

if _typing.TYPE_CHECKING:
    import heimdall.hooks.events as events
    import heimdall.hooks.rules as rules

_TOOL_PATTERN = _re.compile(r"^(\w+|\*)\((.*)\)$", _re.DOTALL)


class MatcherKind(_enum.Enum):
    """Parsed shape of a matcher string."""

    ANY = "any"
    """Matches everything."""

    TOOL_ONLY = "tool_only"
    """Bare tool name, exact match."""

    TOOL_AND_ARGS = "tool_and_args"
    """Tool(argPattern)."""

    INVALID = "invalid"
    """Unparseable pattern. Never matches."""


@_dataclasses.dataclass(frozen=True)
class CompiledMatcher:
    """
    A matcher string parsed into its tagged form.

    Attributes:
        kind: Which shape the pattern has
        tool: Tool name to compare against ("*" = any), if any
        arg_regex: Compiled argument pattern, None when the argument
            pattern is "*" (no constraint)
    """

    kind: MatcherKind
    tool: str | None = None
    arg_regex: _re.Pattern[str] | None = None

    def matches(
        self,
        tool_name: str | None,
        serialized_input: str | None,
    ) -> bool:
        """
        Check a tool invocation against this matcher.

        Args:
            tool_name: Tool of the event, None for non-tool events.
            serialized_input: JSON text of the tool input, if any.

        Returns:
            True if the invocation is selected.
        """
        if self.kind is MatcherKind.ANY:
            return True

        # Non-tool events have nothing to filter on
        if tool_name is None:
            return True

        if self.kind is MatcherKind.INVALID:
            return False

        if self.kind is MatcherKind.TOOL_ONLY:
            return self.tool == tool_name

        if self.tool != "*" and self.tool != tool_name:
            return False

        if self.arg_regex is None:
            return True

        if serialized_input is None:
            return False

        return self.arg_regex.search(serialized_input) is not None


def _compile_arg_pattern(pattern: str) -> _re.Pattern[str]:
    """Escape everything but "*", which becomes "match anything"."""
    parts = [_re.escape(part) for part in pattern.split("*")]
    return _re.compile(".*".join(parts), _re.DOTALL)


@_functools.lru_cache(maxsize=1024)
def compile_matcher(matcher: str | None) -> CompiledMatcher:
    """
    Parse a matcher string.

    Malformed patterns compile to an INVALID matcher instead of raising,
    so one bad rule cannot break dispatch of the others.

    Args:
        matcher: The rule's matcher string.

    Returns:
        The tagged representation.
    """
    if matcher is None:
        return CompiledMatcher(MatcherKind.ANY)

    text = matcher.strip()
    if not text or text == "*":
        return CompiledMatcher(MatcherKind.ANY)

    match = _TOOL_PATTERN.match(text)
    if match:
        tool, arg_pattern = match.group(1), match.group(2)
        if arg_pattern == "*":
            return CompiledMatcher(MatcherKind.TOOL_AND_ARGS, tool=tool)
        return CompiledMatcher(
            MatcherKind.TOOL_AND_ARGS,
            tool=tool,
            arg_regex=_compile_arg_pattern(arg_pattern),
        )

    # Unbalanced parentheses and similar are not tool names
    if "(" in text or ")" in text:
        return CompiledMatcher(MatcherKind.INVALID)

    return CompiledMatcher(MatcherKind.TOOL_ONLY, tool=text)


def matches(
    rule: rules.HookRule,
    context: events.HookExecutionContext,
) -> bool:
    """
    Check whether a rule applies to an event.

    Args:
        rule: Rule to test.
        context: The inbound event.

    Returns:
        True if the rule's matcher selects the event.
    """
    compiled = compile_matcher(rule.matcher)
    return compiled.matches(context.tool_name, context.serialized_tool_input())
