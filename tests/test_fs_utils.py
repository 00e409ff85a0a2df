"""Tests for the atomic JSON file helpers (fs_utils.py)."""
from __future__ import annotations

import json
import os
import stat

import pytest

from orgxclaw.core.fs_utils import (
    READ_CORRUPT,
    READ_MISSING,
    READ_OK,
    backup_corrupt_file,
    ensure_private_dir,
    read_json_file,
    remove_file,
    write_json_file_atomic,
)

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")


def _mode(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


class TestAtomicWrite:
    def test_write_and_read_back(self, tmp_path):
        path = str(tmp_path / "state.json")
        write_json_file_atomic(path, {"a": 1, "nested": ["x"]})
        result = read_json_file(path)
        assert result.status == READ_OK
        assert result.value == {"a": 1, "nested": ["x"]}

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        path = str(tmp_path / "state.json")
        write_json_file_atomic(path, {"v": 1})
        write_json_file_atomic(path, {"v": 2})
        assert os.listdir(tmp_path) == ["state.json"]
        with open(path, "r", encoding="utf-8") as f:
            assert json.load(f) == {"v": 2}

    def test_unserializable_value_keeps_previous_file(self, tmp_path):
        path = str(tmp_path / "state.json")
        write_json_file_atomic(path, {"v": 1})
        with pytest.raises(TypeError):
            write_json_file_atomic(path, {"v": object()})
        assert read_json_file(path).value == {"v": 1}
        assert os.listdir(tmp_path) == ["state.json"]

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(OSError):
            write_json_file_atomic(str(tmp_path / "nope" / "state.json"), {})

    @posix_only
    def test_file_is_owner_only(self, tmp_path):
        path = str(tmp_path / "secret.json")
        write_json_file_atomic(path, {"apiKey": "k"})
        assert _mode(path) == 0o600

    @posix_only
    def test_private_dir_is_tightened(self, tmp_path):
        target = tmp_path / "cfg"
        target.mkdir(mode=0o755)
        ensure_private_dir(str(target))
        assert _mode(target) == 0o700


class TestReadJsonFile:
    def test_missing(self, tmp_path):
        result = read_json_file(str(tmp_path / "absent.json"))
        assert result.status == READ_MISSING
        assert result.value is None
        assert not result.ok

    def test_corrupt_is_backed_up(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        result = read_json_file(str(path))
        assert result.status == READ_CORRUPT
        assert result.backup_path is not None
        assert not path.exists()
        backups = list(tmp_path.glob("state.json.corrupt.*"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "{not json"


class TestBackupAndRemove:
    def test_backup_missing_file_returns_none(self, tmp_path):
        assert backup_corrupt_file(str(tmp_path / "absent.json")) is None

    def test_backup_rejects_nul(self):
        assert backup_corrupt_file("bad\0path") is None

    def test_remove_file(self, tmp_path):
        path = tmp_path / "x.json"
        path.write_text("{}", encoding="utf-8")
        assert remove_file(str(path)) is True
        assert remove_file(str(path)) is False
