"""
Local event ingress.

The forwarder posts each hook event here; the server dispatches it to the
matching rules, records agent lifecycle changes and answers with a decision.
"""

from heimdall.server.app import HookServer
from heimdall.server.lifecycle import LifecycleRecorder
from heimdall.server.payload import build_context
from heimdall.server.sessions import SessionStacks

__all__ = [
    "HookServer",
    "LifecycleRecorder",
    "SessionStacks",
    "build_context",
]
