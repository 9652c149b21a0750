"""Tests for the hook process runner."""

import asyncio as _asyncio
import os as _os
import pathlib as _pathlib
import time as _time

import pytest as _pytest

import heimdall.hooks.runner as runner_module

pytestmark = _pytest.mark.skipif(_os.name != "posix", reason="uses POSIX shell commands")


@_pytest.fixture
def runner() -> runner_module.ProcessRunner:
    return runner_module.ProcessRunner(kill_grace_seconds=0.5)


@_pytest.fixture
def env() -> dict[str, str]:
    return dict(_os.environ)


class TestProcessRunner:
    """Tests for ProcessRunner.run."""

    @_pytest.mark.asyncio
    async def test_captures_stdout_and_exit_code(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        outcome = await runner.run("echo hello", env, None, 5000)
        assert outcome.exit_code == 0
        assert outcome.stdout == "hello\n"
        assert outcome.timed_out is False

    @_pytest.mark.asyncio
    async def test_captures_stderr_and_nonzero_exit(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        outcome = await runner.run("echo nope >&2; exit 2", env, None, 5000)
        assert outcome.exit_code == 2
        assert outcome.stderr == "nope\n"
        assert outcome.stdout == ""

    @_pytest.mark.asyncio
    async def test_shell_features_work(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        """Commands are interpreted by the shell."""
        outcome = await runner.run("printf 'a\\nb\\n' | wc -l", env, None, 5000)
        assert outcome.stdout.strip() == "2"

    @_pytest.mark.asyncio
    async def test_passes_environment(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        env["HEIMDALL_TEST_VALUE"] = "from-env"
        outcome = await runner.run('printf %s "$HEIMDALL_TEST_VALUE"', env, None, 5000)
        assert outcome.stdout == "from-env"

    @_pytest.mark.asyncio
    async def test_runs_in_working_directory(
        self,
        runner: runner_module.ProcessRunner,
        env: dict[str, str],
        tmp_path: _pathlib.Path,
    ) -> None:
        outcome = await runner.run("pwd", env, str(tmp_path), 5000)
        assert _pathlib.Path(outcome.stdout.strip()).resolve() == tmp_path.resolve()

    @_pytest.mark.asyncio
    async def test_stdin_is_closed(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        """A command reading stdin sees EOF instead of hanging."""
        outcome = await runner.run("cat", env, None, 5000)
        assert outcome.exit_code == 0
        assert outcome.stdout == ""

    @_pytest.mark.asyncio
    async def test_large_output_does_not_deadlock(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        outcome = await runner.run("head -c 200000 /dev/zero | tr '\\0' a", env, None, 5000)
        assert outcome.exit_code == 0
        assert len(outcome.stdout) == 200000

    @_pytest.mark.asyncio
    async def test_timeout_kills_command(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        """A command exceeding its timeout is killed promptly."""
        started = _time.monotonic()
        outcome = await runner.run("sleep 5", env, None, 50)
        elapsed = _time.monotonic() - started

        assert outcome.exit_code is None
        assert outcome.timed_out is True
        assert outcome.stderr.endswith(runner_module.TIMEOUT_MARKER)
        assert elapsed < 2.0

    @_pytest.mark.asyncio
    async def test_timeout_marker_follows_output(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        outcome = await runner.run("echo partial >&2; sleep 5", env, None, 300)
        assert outcome.stderr == f"partial\n{runner_module.TIMEOUT_MARKER}"

    @_pytest.mark.asyncio
    async def test_timeout_kills_grandchildren(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        """Background children of the shell are killed with it."""
        started = _time.monotonic()
        outcome = await runner.run("sleep 5 & sleep 5 & wait", env, None, 100)
        assert outcome.timed_out is True
        assert _time.monotonic() - started < 2.0

    @_pytest.mark.asyncio
    async def test_background_child_holding_pipes(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        """A lingering background child cannot keep the run alive past the timeout."""
        started = _time.monotonic()
        outcome = await runner.run("sleep 5 & echo done", env, None, 1000)
        assert outcome.stdout.startswith("done")
        assert outcome.exit_code == 0
        assert outcome.timed_out is False
        assert runner_module.TIMEOUT_MARKER not in outcome.stderr
        assert _time.monotonic() - started < 3.0

    @_pytest.mark.asyncio
    async def test_block_exit_kept_despite_background_child(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        """A shell that exits 2 while a child still holds the pipes reports 2."""
        started = _time.monotonic()
        outcome = await runner.run("sleep 5 & exit 2", env, None, 1000)
        assert outcome.exit_code == 2
        assert outcome.timed_out is False
        assert _time.monotonic() - started < 3.0

    @_pytest.mark.asyncio
    async def test_spawn_failure_is_a_result(
        self,
        runner: runner_module.ProcessRunner,
        env: dict[str, str],
        tmp_path: _pathlib.Path,
    ) -> None:
        """A command that cannot be started yields an outcome, not an exception."""
        outcome = await runner.run("true", env, str(tmp_path / "missing"), 5000)
        assert outcome.exit_code is None
        assert outcome.timed_out is False
        assert outcome.stderr.startswith("[error:")

    @_pytest.mark.asyncio
    async def test_on_spawn_receives_process(
        self, runner: runner_module.ProcessRunner, env: dict[str, str]
    ) -> None:
        spawned: list[_asyncio.subprocess.Process] = []
        await runner.run("true", env, None, 5000, on_spawn=spawned.append)
        assert len(spawned) == 1
        assert spawned[0].pid > 0
