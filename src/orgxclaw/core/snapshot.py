"""Last successfully synced org snapshot, kept for offline and cold-start reads."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Any, Dict, List, Optional

from orgxclaw.core.fs_utils import (
    ensure_private_dir,
    read_json_file,
    remove_file,
    write_json_file_atomic,
)
from orgxclaw.core.logging_config import log_store_event
from orgxclaw.core.timestamps import now_iso

logger = logging.getLogger("orgxclaw.snapshot")

SNAPSHOT_FILENAME = "snapshot.json"


def _dict_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


@dataclass
class OrgSnapshot:
    initiatives: List[Dict[str, Any]] = field(default_factory=list)
    agents: List[Dict[str, Any]] = field(default_factory=list)
    active_tasks: List[Dict[str, Any]] = field(default_factory=list)
    pending_decisions: List[Dict[str, Any]] = field(default_factory=list)
    synced_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict:
        return {
            "initiatives": self.initiatives,
            "agents": self.agents,
            "activeTasks": self.active_tasks,
            "pendingDecisions": self.pending_decisions,
            "syncedAt": self.synced_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> OrgSnapshot:
        synced_at = d.get("syncedAt")
        return cls(
            initiatives=_dict_list(d.get("initiatives")),
            agents=_dict_list(d.get("agents")),
            active_tasks=_dict_list(d.get("activeTasks")),
            pending_decisions=_dict_list(d.get("pendingDecisions")),
            synced_at=synced_at if isinstance(synced_at, str) else now_iso(),
        )


@dataclass
class PersistedSnapshot:
    snapshot: OrgSnapshot
    updated_at: str

    def to_dict(self) -> dict:
        return {"snapshot": self.snapshot.to_dict(), "updatedAt": self.updated_at}


class SnapshotStore:
    """Single-record cache; every write replaces the whole record."""

    def __init__(self, config_dir: str) -> None:
        self._dir = config_dir
        self._path = os.path.join(config_dir, SNAPSHOT_FILENAME)

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> Optional[PersistedSnapshot]:
        result = read_json_file(self._path)
        if not result.ok:
            return None
        raw = result.value
        # Wrong shape is treated as absence, not corruption
        if not isinstance(raw, dict):
            return None
        if not isinstance(raw.get("updatedAt"), str) or not isinstance(raw.get("snapshot"), dict):
            return None
        return PersistedSnapshot(
            snapshot=OrgSnapshot.from_dict(raw["snapshot"]),
            updated_at=raw["updatedAt"],
        )

    def write(self, snapshot: OrgSnapshot) -> PersistedSnapshot:
        ensure_private_dir(self._dir)
        record = PersistedSnapshot(snapshot=snapshot, updated_at=now_iso())
        write_json_file_atomic(self._path, record.to_dict())
        log_store_event(
            "snapshot",
            "write",
            initiatives=len(snapshot.initiatives),
            agents=len(snapshot.agents),
            synced_at=snapshot.synced_at,
        )
        return record

    def clear(self) -> None:
        if remove_file(self._path):
            log_store_event("snapshot", "clear")
