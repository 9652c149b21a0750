"""Per-directory stacks of active sessions, used to find a sub-agent's parent."""

from __future__ import annotations

import logging as _logging

_logger = _logging.getLogger(__name__)


class SessionStacks:
    """
    Track which session in a working directory is most likely to spawn
    the next sub-agent.

    A session is pushed when it starts or calls the Task tool, and removed
    when it ends. The top of a directory's stack is the parent candidate.
    """

    def __init__(self) -> None:
        self._stacks: dict[str, list[str]] = {}

    def push(self, directory: str | None, session_id: str) -> None:
        if not directory:
            return
        stack = self._stacks.setdefault(directory, [])
        if session_id not in stack:
            stack.append(session_id)
            _logger.debug("Pushed session %s for %s (depth %d)", session_id, directory, len(stack))

    def pop(self, directory: str | None, session_id: str) -> None:
        if not directory:
            return
        stack = self._stacks.get(directory)
        if not stack or session_id not in stack:
            return
        stack.remove(session_id)
        if not stack:
            del self._stacks[directory]

    def current(self, directory: str | None) -> str | None:
        """Top of the directory's stack, or None."""
        if not directory:
            return None
        stack = self._stacks.get(directory)
        return stack[-1] if stack else None

    def __len__(self) -> int:
        return sum(len(stack) for stack in self._stacks.values())
