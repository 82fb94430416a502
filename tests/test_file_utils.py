"""
Tests for the atomic JSON helpers in a2a_service.utils.file_utils.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from a2a_service.utils.file_utils import atomic_remove, atomic_write_json, read_json


def _file_permissions(path: Path) -> int:
    """Return the permission bits of the file as a 0oNNN integer."""
    return path.stat().st_mode & 0o777


def test_atomic_write_json_creates_parents_and_sets_mode(tmp_path: Path):
    """Missing parent directories are created and the file is owner read/write only."""
    dest = tmp_path / "session" / "t1.json"
    payload = {"id": "t1", "status": {"state": "submitted"}}

    atomic_write_json(dest, payload)

    assert json.loads(dest.read_text(encoding="utf-8")) == payload
    assert _file_permissions(dest) == 0o600


def test_atomic_write_overwrites_and_leaves_no_temp_files(tmp_path: Path):
    dest = tmp_path / "t1.history.json"
    atomic_write_json(dest, {"messageHistory": []})
    atomic_write_json(dest, {"messageHistory": [{"role": "user", "parts": []}]})

    assert read_json(dest) == {"messageHistory": [{"role": "user", "parts": []}]}
    assert [entry.name for entry in tmp_path.iterdir()] == ["t1.history.json"]


def test_atomic_write_without_ensure_dir_fails_for_missing_parent(tmp_path: Path):
    with pytest.raises(OSError):
        atomic_write_json(tmp_path / "missing" / "t1.json", {}, ensure_dir=False)


def test_atomic_write_compact_output(tmp_path: Path):
    dest = tmp_path / "compact.json"
    atomic_write_json(dest, {"a": 1}, indent=None)
    assert dest.read_text(encoding="utf-8") == '{"a": 1}'


def test_read_json_missing_file_returns_none(tmp_path: Path):
    assert read_json(tmp_path / "nothing.json") is None


def test_read_json_invalid_content_raises(tmp_path: Path):
    dest = tmp_path / "broken.json"
    dest.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError):
        read_json(dest)


def test_atomic_remove_removes_file_and_missing_ok(tmp_path: Path):
    dest = tmp_path / "t1.json"
    dest.write_text("data", encoding="utf-8")

    atomic_remove(dest)
    assert not dest.exists()

    atomic_remove(dest, missing_ok=True)


def test_atomic_remove_missing_not_ok_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        atomic_remove(tmp_path / "does_not_exist.json", missing_ok=False)
