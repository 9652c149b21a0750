"""Tests for file helpers."""

import pathlib as _pathlib

import pytest as _pytest

import heimdall.utils as utils


class TestAtomicWriteText:
    """Tests for atomic_write_text."""

    def test_creates_parents(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "a" / "b" / "file.txt"
        utils.atomic_write_text(path, "hello")
        assert path.read_text() == "hello"

    def test_replaces_contents(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "file.txt"
        path.write_text("old contents that are longer")
        utils.atomic_write_text(path, "new")
        assert path.read_text() == "new"

    def test_no_temp_files_left(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "file.txt"
        utils.atomic_write_text(path, "one")
        utils.atomic_write_text(path, "two")
        assert [p.name for p in tmp_path.iterdir()] == ["file.txt"]


class TestFileSignature:
    """Tests for file_signature."""

    def test_missing_file(self, tmp_path: _pathlib.Path) -> None:
        assert utils.file_signature(tmp_path / "absent") is None

    def test_changes_when_replaced(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "file.txt"
        utils.atomic_write_text(path, "one")
        before = utils.file_signature(path)

        utils.atomic_write_text(path, "two")

        assert before is not None
        assert utils.file_signature(path) != before

    def test_stable_without_writes(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "file.txt"
        path.write_text("x")
        assert utils.file_signature(path) == utils.file_signature(path)


class TestExclusiveLock:
    """Tests for exclusive_lock."""

    def test_creates_sibling_lock_file(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "nested" / "data.json"
        with utils.exclusive_lock(path, timeout=1.0):
            assert utils.lock_path_for(path).exists()
        assert utils.lock_path_for(path).name == "data.json.lock"

    def test_reacquire_after_release(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "data.json"
        with utils.exclusive_lock(path, timeout=1.0):
            pass
        with utils.exclusive_lock(path, timeout=1.0):
            pass

    def test_held_lock_times_out(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "data.json"
        with utils.exclusive_lock(path, timeout=1.0):
            with _pytest.raises(TimeoutError, match="data.json"):
                with utils.exclusive_lock(path, timeout=0.2):
                    pass
