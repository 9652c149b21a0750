"""File helpers shared by the stores and the settings synchronizer."""

from __future__ import annotations

import contextlib as _contextlib
import os as _os
import pathlib as _pathlib
import tempfile as _tempfile
import typing as _typing

import portalocker as _portalocker

FileSignature = tuple[int, int, int]


def atomic_write_text(path: _pathlib.Path, text: str) -> None:
    """
    Replace a file's contents atomically.

    Writes to a temp file in the same directory and renames it over the
    target, so readers see either the old or the new contents, never a
    partial write. Parent directories are created as needed.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = _tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with _os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            _os.fsync(f.fileno())
        _os.replace(tmp_name, path)
    except BaseException:
        _pathlib.Path(tmp_name).unlink(missing_ok=True)
        raise


def file_signature(path: _pathlib.Path) -> FileSignature | None:
    """
    (inode, mtime_ns, size) of a file, or None if it does not exist.

    atomic_write_text() always produces a new inode, so a changed
    signature means someone replaced the file.
    """
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return (st.st_ino, st.st_mtime_ns, st.st_size)


def lock_path_for(path: _pathlib.Path) -> _pathlib.Path:
    """The sibling '<name>.lock' file guarding path."""
    return path.with_name(f"{path.name}.lock")


@_contextlib.contextmanager
def exclusive_lock(path: _pathlib.Path, timeout: float) -> _typing.Iterator[None]:
    """
    Hold an exclusive cross-process lock for path.

    The lock lives on a sibling '<name>.lock' file so the guarded file
    itself can be replaced while the lock is held.

    Raises:
        TimeoutError: If the lock is not acquired within timeout seconds.
    """
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = _portalocker.Lock(
        str(lock_path),
        mode="a",
        flags=_portalocker.LOCK_EX | _portalocker.LOCK_NB,
        timeout=timeout,
    )
    try:
        lock.acquire()
    except _portalocker.exceptions.LockException as e:
        raise TimeoutError(f"Timed out waiting for lock on {path}") from e
    try:
        yield
    finally:
        lock.release()
