"""
Shared pytest fixtures for Heimdall tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

import os as _os
import pathlib as _pathlib
import typing as _typing
import unittest.mock as _mock

import click.testing as _click_testing
import pytest as _pytest

import heimdall.agents as agents
import heimdall.config as config
import heimdall.hooks as hooks
import heimdall.notifications as notifications

# =============================================================================
# Environment isolation
# =============================================================================


@_pytest.fixture
def clean_env() -> dict[str, str]:
    """
    Return environment dict with every HEIMDALL_* key removed.

    Use with mock.patch.dict to isolate tests from the actual environment.
    """
    return {k: v for k, v in _os.environ.items() if not k.startswith("HEIMDALL_")}


@_pytest.fixture
def isolated_env(clean_env: dict[str, str]):
    """
    Context manager that isolates tests from environment variables.

    Usage:
        def test_something(isolated_env):
            with isolated_env:
                settings = config.Settings.construct_without_dotenv()
    """
    return _mock.patch.dict(_os.environ, clean_env, clear=True)


@_pytest.fixture
def heimdall_home(
    tmp_path: _pathlib.Path,
    monkeypatch: _pytest.MonkeyPatch,
    clean_env: dict[str, str],
) -> _pathlib.Path:
    """
    Point every Heimdall file location into tmp_path.

    The working directory is moved to an empty directory so no project
    config is picked up, and HEIMDALL_* variables from the real
    environment are cleared.
    """
    for key in list(_os.environ):
        if key.startswith("HEIMDALL_"):
            monkeypatch.delenv(key)

    home = tmp_path / "home"
    workdir = tmp_path / "work"
    home.mkdir()
    workdir.mkdir()

    monkeypatch.setenv("HEIMDALL_CONFIG_DIR", str(home / "config"))
    monkeypatch.setenv("HEIMDALL_HOOKS__RULES_FILE", str(home / "rules.yaml"))
    monkeypatch.setenv("HEIMDALL_AGENTS__STORE_FILE", str(home / "agents.json"))
    monkeypatch.setenv(
        "HEIMDALL_SYNC__USER_SETTINGS_PATH", str(home / ".claude" / "settings.json")
    )
    monkeypatch.chdir(workdir)
    return home


@_pytest.fixture
def clean_settings(heimdall_home: _pathlib.Path) -> config.Settings:
    """
    Settings isolated from the real environment and config files.

    File locations live under the heimdall_home fixture.
    """
    return config.Settings.construct_without_dotenv()


# =============================================================================
# Hook fixtures
# =============================================================================


@_pytest.fixture
def make_rule() -> _typing.Callable[..., hooks.HookRuleCreate]:
    """
    Factory for rule definitions with sensible defaults.

    Usage:
        rule = make_rule(command="exit 2", matcher="Bash(*)")
    """

    def _create(**overrides: _typing.Any) -> hooks.HookRuleCreate:
        data: dict[str, _typing.Any] = {
            "name": "test-rule",
            "event_type": hooks.HookEventType.PRE_TOOL_USE,
            "matcher": "*",
            "command": "true",
            "timeout_ms": 5000,
        }
        data.update(overrides)
        return hooks.HookRuleCreate(**data)

    return _create


@_pytest.fixture
def rule_store() -> hooks.InMemoryRuleStore:
    return hooks.InMemoryRuleStore()


@_pytest.fixture
def notifier() -> notifications.Notifier:
    return notifications.Notifier()


@_pytest.fixture
def recorded(notifier: notifications.Notifier) -> list[tuple[str, _typing.Any]]:
    """Every (topic, payload) published on the notifier fixture."""
    events: list[tuple[str, _typing.Any]] = []
    notifier.subscribe(None, lambda topic, payload: events.append((topic, payload)))
    return events


@_pytest.fixture
def dispatcher(
    rule_store: hooks.InMemoryRuleStore,
    notifier: notifications.Notifier,
) -> hooks.HookDispatcher:
    return hooks.HookDispatcher(
        rule_store,
        runner=hooks.ProcessRunner(kill_grace_seconds=0.5),
        notifier=notifier,
    )


@_pytest.fixture
def bash_context() -> _typing.Callable[..., hooks.HookExecutionContext]:
    """Factory for PreToolUse contexts of a Bash call."""

    def _create(command: str = "ls", **kwargs: _typing.Any) -> hooks.HookExecutionContext:
        return hooks.HookExecutionContext(
            event_type=hooks.HookEventType.PRE_TOOL_USE,
            tool_name="Bash",
            tool_input={"command": command},
            **kwargs,
        )

    return _create


# =============================================================================
# Agent fixtures
# =============================================================================


@_pytest.fixture
def tracker(notifier: notifications.Notifier) -> agents.AgentTracker:
    return agents.AgentTracker(agents.InMemoryAgentStore(), notifier)


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@_pytest.fixture
def cli_runner() -> _click_testing.CliRunner:
    """CLI runner for end-to-end tests."""
    return _click_testing.CliRunner()
