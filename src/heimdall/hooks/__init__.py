"""
Hook dispatch for Heimdall.

Hook rules bind lifecycle and tool events of the external coding-agent CLI
to shell commands. A command exiting with code 2 blocks the action.

Example usage:
    from heimdall.hooks import (
        HookDispatcher, HookEventType, HookExecutionContext,
        InMemoryRuleStore, build_decision,
    )

    dispatcher = HookDispatcher(InMemoryRuleStore())
    context = HookExecutionContext(
        event_type=HookEventType.PRE_TOOL_USE,
        tool_name="Bash",
        tool_input={"command": "ls -la"},
    )
    results = await dispatcher.dispatch(context)
    decision = build_decision(context.event_type, results)
    if decision.blocked:
        ...
"""

from heimdall.hooks.decision import (
    HookDecision,
    allow_response,
    build_decision,
    format_cli_response,
)
from heimdall.hooks.dispatcher import HookDispatcher
from heimdall.hooks.events import (
    ExecutionOutcome,
    HookCategory,
    HookEventType,
    HookExecutionContext,
    HookExecutionResult,
)
from heimdall.hooks.management import RuleManager
from heimdall.hooks.matching import compile_matcher, matches
from heimdall.hooks.rules import HookRule, HookRuleCreate
from heimdall.hooks.runner import ProcessOutcome, ProcessRunner
from heimdall.hooks.store import InMemoryRuleStore, RuleStore, YamlRuleStore

__all__ = [
    "ExecutionOutcome",
    "HookCategory",
    "HookDecision",
    "HookDispatcher",
    "HookEventType",
    "HookExecutionContext",
    "HookExecutionResult",
    "HookRule",
    "HookRuleCreate",
    "InMemoryRuleStore",
    "ProcessOutcome",
    "ProcessRunner",
    "RuleManager",
    "RuleStore",
    "YamlRuleStore",
    "allow_response",
    "build_decision",
    "compile_matcher",
    "format_cli_response",
    "matches",
]
