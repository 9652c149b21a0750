"""
Hook dispatcher - runs matching rules for one inbound event.

Rules for one event run sequentially in store order. The first result
with should_block set stops the dispatch; rules after it are not run.
Separate events may be dispatched concurrently; every spawned process is
tracked under its own token so kill() and kill_all() can reach it.
"""

from __future__ import annotations

import asyncio as _asyncio
import itertools as _itertools
import logging as _logging
import os as _os
import threading as _threading

import heimdall.constants as constants
import heimdall.hooks.events as events
import heimdall.hooks.matching as matching
import heimdall.hooks.rules as rules
import heimdall.hooks.runner as runner_module
import heimdall.hooks.store as store
import heimdall.notifications as notifications

_logger = _logging.getLogger(__name__)


class HookDispatcher:
    """
    Central coordinator for hook execution.

    Matches an event against the enabled rules, runs each matching rule's
    command, records the outcome in the rule store, and publishes a
    "hook:executed" notification per run.
    """

    def __init__(
        self,
        rule_store: store.RuleStore,
        *,
        runner: runner_module.ProcessRunner | None = None,
        notifier: notifications.Notifier | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            rule_store: Where rules are loaded from and executions recorded.
            runner: Process runner (default: a fresh ProcessRunner).
            notifier: Channel for execution notifications (default: private).
        """
        self._store = rule_store
        self._runner = runner or runner_module.ProcessRunner()
        self._notifier = notifier or notifications.Notifier()
        self._tokens = _itertools.count(1)
        self._in_flight: dict[int, tuple[int, _asyncio.subprocess.Process]] = {}
        self._lock = _threading.Lock()

    @property
    def running_count(self) -> int:
        """Number of hook commands currently running."""
        with self._lock:
            return len(self._in_flight)

    async def dispatch(
        self,
        context: events.HookExecutionContext,
    ) -> list[events.HookExecutionResult]:
        """
        Dispatch an event to all matching rules.

        Args:
            context: The inbound event.

        Returns:
            One result per executed rule, in execution order. If a rule
            blocked, its result is the last one.
        """
        # File-backed stores do blocking I/O
        candidates = await _asyncio.to_thread(
            self._store.list_enabled, context.event_type, context.project_path
        )
        results: list[events.HookExecutionResult] = []

        for rule in candidates:
            if not matching.matches(rule, context):
                continue

            result = await self._execute(rule, context)
            results.append(result)

            await _asyncio.to_thread(self._store.record_execution, rule.id, result.outcome)
            self._notifier.publish(notifications.HOOK_EXECUTED, result)

            if result.should_block:
                _logger.info(
                    "Hook %r blocked %s; skipping remaining rules",
                    rule.name,
                    context.event_type.value,
                )
                break

        return results

    async def _execute(
        self,
        rule: rules.HookRule,
        context: events.HookExecutionContext,
    ) -> events.HookExecutionResult:
        """Run one rule's command and convert the outcome into a result."""
        _logger.debug("Running hook %r for %s", rule.name, context.event_type.value)

        env = _os.environ.copy()
        env.update(context.to_env_vars())

        token = next(self._tokens)

        def track(process: _asyncio.subprocess.Process) -> None:
            with self._lock:
                self._in_flight[token] = (rule.id, process)

        try:
            outcome = await self._runner.run(
                rule.command,
                env,
                context.project_path or _os.getcwd(),
                rule.timeout_ms,
                on_spawn=track,
            )
        finally:
            with self._lock:
                self._in_flight.pop(token, None)

        if outcome.exit_code not in (0, None):
            _logger.debug(
                "Hook %r exited with code %s", rule.name, outcome.exit_code
            )

        return events.HookExecutionResult(
            rule_id=rule.id,
            rule_name=rule.name,
            success=outcome.exit_code == 0,
            exit_code=outcome.exit_code,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            duration_ms=outcome.duration_ms,
            should_block=outcome.exit_code == constants.BLOCK_EXIT_CODE,
        )

    def kill(self, rule_id: int) -> bool:
        """
        Force-kill every running command spawned for a rule.

        Returns:
            True if at least one process was killed.
        """
        with self._lock:
            victims = [
                (token, process)
                for token, (owner, process) in self._in_flight.items()
                if owner == rule_id
            ]
            for token, _ in victims:
                del self._in_flight[token]

        for _, process in victims:
            runner_module.kill_process_tree(process)
        return bool(victims)

    def kill_all(self) -> int:
        """
        Force-kill every running hook command.

        Safe to call at any time. Leaves no tracked processes behind.

        Returns:
            Number of processes killed.
        """
        with self._lock:
            victims = [process for _, process in self._in_flight.values()]
            self._in_flight.clear()

        for process in victims:
            runner_module.kill_process_tree(process)
        if victims:
            _logger.info("Killed %d running hook command(s)", len(victims))
        return len(victims)
