"""
Utility functions for Heimdall.

General-purpose helpers that don't belong to a specific domain.
"""

from heimdall.utils.files import (
    FileSignature,
    atomic_write_text,
    exclusive_lock,
    file_signature,
    lock_path_for,
)
from heimdall.utils.merge import deep_merge

__all__ = [
    "FileSignature",
    "atomic_write_text",
    "deep_merge",
    "exclusive_lock",
    "file_signature",
    "lock_path_for",
]
