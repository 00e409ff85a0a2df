"""Atomic, permission-restricted JSON file helpers shared by every store.

Stored files may contain API keys and run metadata, so files are created
owner-only (0600) inside owner-only directories (0700).  Writes go to a
temp file in the target directory and are renamed over the target, so a
reader never observes a partially written file.

Reads never raise: ``read_json_file`` returns a ``JsonReadResult`` whose
``status`` says whether the value came from disk, the file was absent, or
the file was corrupt (in which case it has been moved aside as
``<name>.corrupt.<timestamp>-<hex>`` for later inspection).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
import os
from typing import Any, Optional
import uuid

logger = logging.getLogger("orgxclaw.fs_utils")

FILE_MODE = 0o600
DIR_MODE = 0o700

READ_OK = "ok"
READ_MISSING = "missing"
READ_CORRUPT = "corrupt"
READ_UNREADABLE = "unreadable"


@dataclass
class JsonReadResult:
    status: str
    value: Any = None
    backup_path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == READ_OK


def _harden(path: str, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as exc:
        logger.debug("chmod %o failed for %s: %s", mode, path, exc)


def ensure_private_dir(path: str) -> None:
    """Create *path* (and parents) owner-only; tighten it if it already exists."""
    os.makedirs(path, mode=DIR_MODE, exist_ok=True)
    _harden(path, DIR_MODE)


def backup_corrupt_file(path: str) -> Optional[str]:
    """Move a corrupt file aside instead of deleting it.

    Returns the backup path, or None when the rename failed.
    """
    if not path or "\0" in path:
        return None
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    backup_path = f"{path}.corrupt.{stamp}-{uuid.uuid4().hex[:8]}"
    try:
        os.replace(path, backup_path)
    except OSError as exc:
        logger.debug("Could not back up corrupt file %s: %s", path, exc)
        return None
    _harden(backup_path, FILE_MODE)
    logger.warning("Backed up corrupt file %s -> %s", path, backup_path)
    return backup_path


def read_json_file(path: str) -> JsonReadResult:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            value = json.load(handle)
    except FileNotFoundError:
        return JsonReadResult(READ_MISSING)
    except ValueError as exc:
        # JSONDecodeError and UnicodeDecodeError both land here
        logger.warning("Corrupt JSON in %s: %s", path, exc)
        backup_path = backup_corrupt_file(path)
        return JsonReadResult(READ_CORRUPT, backup_path=backup_path)
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return JsonReadResult(READ_UNREADABLE)
    return JsonReadResult(READ_OK, value=value)


def write_json_file_atomic(path: str, value: Any, mode: int = FILE_MODE) -> None:
    """Serialize *value* to *path* via temp file + rename.

    The temp file is created with *mode* from the start; a chmod after the
    rename covers filesystems that ignore the creation mode.  Errors
    propagate to the caller after the temp file is cleaned up.
    """
    tmp_path = f"{path}.tmp.{os.getpid()}.{uuid.uuid4().hex[:8]}"
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(value, handle, indent=2, ensure_ascii=False)
            handle.flush()
            os.fsync(handle.fileno())
        _harden(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    _harden(path, mode)


def remove_file(path: str) -> bool:
    """Best-effort delete. Returns True when a file was removed."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.debug("Could not remove %s: %s", path, exc)
        return False
