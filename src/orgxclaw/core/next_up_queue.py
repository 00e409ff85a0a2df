"""Ordered "work on this next" pins, one per (initiative, workstream).

Backed by ``next-up-queue.json``::

    {"version": 1, "updatedAt": "...", "pins": [{...}, ...]}

List order is the display order.  Touching a pin moves it to the front
unless the caller supplies an explicit order with ``set_pin_order``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Iterable, List, Optional, Tuple

from orgxclaw.core.agent_runs import normalize_optional
from orgxclaw.core.fs_utils import (
    backup_corrupt_file,
    ensure_private_dir,
    read_json_file,
    write_json_file_atomic,
)
from orgxclaw.core.logging_config import log_store_event
from orgxclaw.core.timestamps import now_iso

logger = logging.getLogger("orgxclaw.next_up_queue")

MAX_PINS = 240
QUEUE_VERSION = 1
QUEUE_FILENAME = "next-up-queue.json"

PinKey = Tuple[str, str]


def pin_key(initiative_id: Optional[str], workstream_id: Optional[str]) -> Optional[PinKey]:
    """(initiative_id, workstream_id) with both halves trimmed, or None if either is blank."""
    initiative = (initiative_id or "").strip()
    workstream = (workstream_id or "").strip()
    if not initiative or not workstream:
        return None
    return (initiative, workstream)


def _merge_preference(value: Optional[str], current: Optional[str]) -> Optional[str]:
    """Keep *current* when *value* is None; a blank string clears it."""
    if value is None:
        return current
    return normalize_optional(value)


@dataclass
class NextUpPinnedEntry:
    initiative_id: str
    workstream_id: str
    created_at: str
    updated_at: str
    preferred_task_id: Optional[str] = None
    preferred_milestone_id: Optional[str] = None

    @property
    def key(self) -> PinKey:
        return (self.initiative_id, self.workstream_id)

    def to_dict(self) -> dict:
        return {
            "initiativeId": self.initiative_id,
            "workstreamId": self.workstream_id,
            "preferredTaskId": self.preferred_task_id,
            "preferredMilestoneId": self.preferred_milestone_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Optional[NextUpPinnedEntry]:
        key = pin_key(
            d.get("initiativeId") if isinstance(d.get("initiativeId"), str) else None,
            d.get("workstreamId") if isinstance(d.get("workstreamId"), str) else None,
        )
        if key is None:
            return None
        created_at = d.get("createdAt") if isinstance(d.get("createdAt"), str) else now_iso()
        updated_at = d.get("updatedAt") if isinstance(d.get("updatedAt"), str) else created_at
        return cls(
            initiative_id=key[0],
            workstream_id=key[1],
            created_at=created_at,
            updated_at=updated_at,
            preferred_task_id=normalize_optional(d.get("preferredTaskId")),
            preferred_milestone_id=normalize_optional(d.get("preferredMilestoneId")),
        )


@dataclass
class NextUpQueueState:
    version: int = QUEUE_VERSION
    updated_at: str = field(default_factory=now_iso)
    pins: List[NextUpPinnedEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "updatedAt": self.updated_at,
            "pins": [pin.to_dict() for pin in self.pins],
        }


class NextUpQueueStore:
    def __init__(self, config_dir: str) -> None:
        self._dir = config_dir
        self._path = os.path.join(config_dir, QUEUE_FILENAME)

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> NextUpQueueState:
        result = read_json_file(self._path)
        if not result.ok:
            return NextUpQueueState()
        raw = result.value
        if not isinstance(raw, dict):
            backup_corrupt_file(self._path)
            return NextUpQueueState()
        state = NextUpQueueState()
        if isinstance(raw.get("updatedAt"), str):
            state.updated_at = raw["updatedAt"]
        seen: set[PinKey] = set()
        pins = raw.get("pins")
        for item in pins if isinstance(pins, list) else []:
            entry = NextUpPinnedEntry.from_dict(item) if isinstance(item, dict) else None
            if entry is None or entry.key in seen:
                continue
            seen.add(entry.key)
            state.pins.append(entry)
        return state

    def _write(self, state: NextUpQueueState, action: str, **fields: object) -> None:
        write_json_file_atomic(self._path, state.to_dict())
        log_store_event("next_up_queue", action, pins=len(state.pins), **fields)

    def upsert_pin(
        self,
        initiative_id: str,
        workstream_id: str,
        preferred_task_id: Optional[str] = None,
        preferred_milestone_id: Optional[str] = None,
    ) -> NextUpQueueState:
        """Insert or refresh a pin and move it to the front of the queue."""
        key = pin_key(initiative_id, workstream_id)
        if key is None:
            return self.read()

        ensure_private_dir(self._dir)
        state = self.read()
        now = now_iso()
        existing = next((pin for pin in state.pins if pin.key == key), None)

        updated = NextUpPinnedEntry(
            initiative_id=key[0],
            workstream_id=key[1],
            created_at=existing.created_at if existing else now,
            updated_at=now,
            preferred_task_id=_merge_preference(preferred_task_id, existing.preferred_task_id if existing else None),
            preferred_milestone_id=_merge_preference(
                preferred_milestone_id, existing.preferred_milestone_id if existing else None
            ),
        )
        state.pins = [updated] + [pin for pin in state.pins if pin.key != key]
        state.pins = state.pins[:MAX_PINS]
        state.updated_at = now

        self._write(state, "upsert_pin", initiative_id=key[0], workstream_id=key[1])
        return state

    def remove_pin(self, initiative_id: str, workstream_id: str) -> NextUpQueueState:
        key = pin_key(initiative_id, workstream_id)
        if key is None:
            return self.read()

        state = self.read()
        remaining = [pin for pin in state.pins if pin.key != key]
        if len(remaining) == len(state.pins):
            return state

        ensure_private_dir(self._dir)
        state.pins = remaining
        state.updated_at = now_iso()
        self._write(state, "remove_pin", initiative_id=key[0], workstream_id=key[1])
        return state

    def set_pin_order(self, order: Iterable[Tuple[str, str]]) -> NextUpQueueState:
        """Reorder pins to follow *order*, a sequence of (initiative_id, workstream_id).

        Keys not yet pinned are created.  Pins that *order* does not mention
        keep their relative order and follow the explicitly ordered ones, so
        a partial reorder never drops a pin.
        """
        ensure_private_dir(self._dir)
        state = self.read()
        now = now_iso()
        by_key = {pin.key: pin for pin in state.pins}

        ordered: List[NextUpPinnedEntry] = []
        seen: set[PinKey] = set()
        for initiative_id, workstream_id in order:
            key = pin_key(initiative_id, workstream_id)
            if key is None or key in seen:
                continue
            seen.add(key)
            pin = by_key.get(key)
            if pin is None:
                pin = NextUpPinnedEntry(
                    initiative_id=key[0],
                    workstream_id=key[1],
                    created_at=now,
                    updated_at=now,
                )
            ordered.append(pin)

        ordered.extend(pin for pin in state.pins if pin.key not in seen)

        if len(ordered) > MAX_PINS:
            logger.info("Next-up queue truncated from %d to %d pins", len(ordered), MAX_PINS)
        state.pins = ordered[:MAX_PINS]
        state.updated_at = now
        self._write(state, "set_pin_order", ordered=len(seen))
        return state
