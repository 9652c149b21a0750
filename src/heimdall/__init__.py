"""
Heimdall - hook dispatcher and agent tracker for coding-agent CLIs.

Runs user-defined shell commands on the external CLI's lifecycle and tool
events, lets them block actions, and tracks the tree of sub-agents.
Named after the watchman of the Norse gods.
"""

import importlib.metadata as _metadata

# Version is defined in pyproject.toml - read it and parse into tuple (primary representation)
_raw_version = _metadata.version("heimdall")
__version_info__: tuple[int, int, int] = tuple(int(x) for x in _raw_version.split(".")[:3])  # type: ignore[assignment]
__version__: str = ".".join(str(x) for x in __version_info__)
__author__ = "Heimdall Contributors"

from heimdall.config import Settings  # noqa: E402
from heimdall.services import Services  # noqa: E402

__all__ = ["__version__", "__version_info__", "Services", "Settings"]
