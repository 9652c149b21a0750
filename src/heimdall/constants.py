"""
Shared constants for Heimdall.

This module provides a single source of truth for default values
that are used across multiple modules.
"""

# Hook execution defaults
DEFAULT_HOOK_TIMEOUT_MS = 30_000
"""Default timeout for a hook command (30 seconds)."""

BLOCK_EXIT_CODE = 2
"""Exit code a hook command uses to block the action."""

DEFAULT_KILL_GRACE_SECONDS = 0.1
"""How long to drain output pipes after a forced kill."""

# Event ingress defaults
DEFAULT_SERVER_HOST = "127.0.0.1"
"""Interface the event ingress binds to (loopback only)."""

DEFAULT_SERVER_PORT = 23847
"""Fixed local port the forwarder posts events to."""

DEFAULT_FORWARD_TIMEOUT_SECONDS = 5.0
"""Forwarder gives up on the ingress after this long and allows."""

HOOKS_API_PREFIX = "/api/hooks"
"""Route prefix for inbound hook events."""

# Agent tree defaults
DEFAULT_CLEANUP_MAX_AGE_HOURS = 72
"""Completed agent trees older than this are removed by cleanup."""

ROOT_AGENT_NAME = "Main Session"
"""Name given to the root node created on SessionStart."""

# Settings synchronizer defaults
DEFAULT_FORWARD_COMMAND = "heimdall forward"
"""Command the external CLI runs to forward an event."""

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0
"""Timeout for acquiring the lock on a shared data file."""

# Environment variable names exported to hook commands
ENV_HOOK_EVENT = "HEIMDALL_HOOK_EVENT"
ENV_HOOK_TOOL = "HEIMDALL_HOOK_TOOL"
ENV_HOOK_INPUT = "HEIMDALL_HOOK_INPUT"
ENV_HOOK_RESULT = "HEIMDALL_HOOK_RESULT"
ENV_SESSION_ID = "HEIMDALL_SESSION_ID"
ENV_PROJECT_PATH = "HEIMDALL_PROJECT_PATH"
ENV_TIMESTAMP = "HEIMDALL_TIMESTAMP"
