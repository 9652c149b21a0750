"""
Process runner - runs one hook command under a timeout.

Commands are passed to the platform shell as a single string, so pipes and
redirects in user-authored commands keep working. Output is collected
incrementally from both pipes while the command runs.

The runner never raises for command misbehavior:
- Timeout: the whole process group is killed, exit_code is None and
  "[timed out]" is appended to stderr
- Spawn failure: exit_code is None and the error text is in stderr
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import logging as _logging
import os as _os
import signal as _signal
import time as _time
import typing as _typing

import heimdall.constants as constants

_logger = _logging.getLogger(__name__)

_IS_POSIX = _os.name == "posix"
_READ_CHUNK = 64 * 1024

TIMEOUT_MARKER = "[timed out]"

SpawnCallback = _typing.Callable[[_asyncio.subprocess.Process], None]


@_dataclasses.dataclass
class ProcessOutcome:
    """
    What running one command produced.

    Attributes:
        exit_code: Process exit code, None on timeout or spawn failure
        stdout: Captured standard output
        stderr: Captured standard error, plus any timeout/error marker
        duration_ms: Wall time from spawn to resolution
        timed_out: True if the command was killed for exceeding its timeout
    """

    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False


def kill_process_tree(process: _asyncio.subprocess.Process) -> None:
    """
    Force-kill a spawned command and everything it started.

    On POSIX commands run in their own session, so the process group id is
    the shell's pid and SIGKILL reaches any grandchildren too.
    """
    try:
        if _IS_POSIX:
            _os.killpg(process.pid, _signal.SIGKILL)
        elif process.returncode is None:
            process.kill()
    except (ProcessLookupError, PermissionError) as e:
        # Already gone
        _logger.debug("Kill of process %s skipped: %s", process.pid, e)


def _append_marker(text: str, marker: str) -> str:
    if not text:
        return marker
    return f"{text}\n{marker}" if not text.endswith("\n") else f"{text}{marker}"


async def _drain(stream: _asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        sink.extend(chunk)


class ProcessRunner:
    """
    Runs shell commands with a hard timeout.

    Usage:
        runner = ProcessRunner()
        outcome = await runner.run("exit 2", env, cwd, timeout_ms=5000)
        outcome.exit_code  # 2
    """

    def __init__(
        self,
        *,
        kill_grace_seconds: float = constants.DEFAULT_KILL_GRACE_SECONDS,
    ) -> None:
        """
        Initialize the runner.

        Args:
            kill_grace_seconds: How long to keep draining output pipes after
                the command exits or is killed before giving up on them.
        """
        self._kill_grace = kill_grace_seconds

    async def run(
        self,
        command: str,
        env: dict[str, str],
        cwd: str | None,
        timeout_ms: int,
        *,
        on_spawn: SpawnCallback | None = None,
    ) -> ProcessOutcome:
        """
        Run a command and wait for it to exit or time out.

        Args:
            command: Shell command string.
            env: Complete environment for the child.
            cwd: Working directory, None for the current one.
            timeout_ms: Kill the command after this many milliseconds.
            on_spawn: Called with the process right after it starts, so a
                caller can track it for cancellation.

        Returns:
            The outcome. Never raises for command failures.
        """
        started = _time.monotonic()

        def elapsed_ms() -> int:
            return int((_time.monotonic() - started) * 1000)

        try:
            process = await _asyncio.create_subprocess_shell(
                command,
                stdin=_asyncio.subprocess.DEVNULL,
                stdout=_asyncio.subprocess.PIPE,
                stderr=_asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                start_new_session=_IS_POSIX,
            )
        except Exception as e:
            _logger.warning("Failed to start hook command %r: %s", command, e)
            return ProcessOutcome(
                exit_code=None,
                stdout="",
                stderr=f"[error: {e}]",
                duration_ms=elapsed_ms(),
            )

        if on_spawn is not None:
            on_spawn(process)

        stdout = bytearray()
        stderr = bytearray()
        readers = [
            _asyncio.create_task(_drain(process.stdout, stdout)),
            _asyncio.create_task(_drain(process.stderr, stderr)),
        ]
        timeout = timeout_ms / 1000
        timed_out = False

        try:
            try:
                await _asyncio.wait_for(process.wait(), timeout)
            except TimeoutError:
                if process.returncode is not None:
                    # Shell exited on time; wait() is held up by background
                    # children that inherited the pipes (Python < 3.12).
                    _logger.debug(
                        "Hook command exited with %s but left children running: %r",
                        process.returncode,
                        command,
                    )
                    kill_process_tree(process)
                else:
                    timed_out = True
                    _logger.warning(
                        "Hook command timed out after %d ms: %r", timeout_ms, command
                    )
                    kill_process_tree(process)
                    try:
                        await _asyncio.wait_for(process.wait(), self._kill_grace)
                    except TimeoutError:
                        _logger.warning("Process %s did not exit after kill", process.pid)

            # Background grandchildren can hold the pipes open past exit
            remaining = max(timeout - (_time.monotonic() - started), self._kill_grace)
            _, pending = await _asyncio.wait(
                readers,
                timeout=self._kill_grace if timed_out else remaining,
            )
            if pending:
                kill_process_tree(process)
                for reader in pending:
                    reader.cancel()
                await _asyncio.gather(*pending, return_exceptions=True)
        finally:
            if process.returncode is None:
                kill_process_tree(process)
            for reader in readers:
                if not reader.done():
                    reader.cancel()

        out_text = stdout.decode("utf-8", errors="replace")
        err_text = stderr.decode("utf-8", errors="replace")

        if timed_out:
            return ProcessOutcome(
                exit_code=None,
                stdout=out_text,
                stderr=_append_marker(err_text, TIMEOUT_MARKER),
                duration_ms=elapsed_ms(),
                timed_out=True,
            )

        return ProcessOutcome(
            exit_code=process.returncode,
            stdout=out_text,
            stderr=err_text,
            duration_ms=elapsed_ms(),
        )
