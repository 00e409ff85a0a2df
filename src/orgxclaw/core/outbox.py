"""Local event outbox for offline/disconnected mode.

Events that could not be delivered to OrgX are buffered here, one JSON file
per session (``<outbox_dir>/<sessionId>.json`` holding a list of events),
and replayed on the next successful sync.  An event id is unique within a
session file: appending an id that is already queued replaces the queued
event in place.

The outbox is best-effort durability, not a source of truth, so reads
degrade to an empty queue instead of raising.
"""
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
from orgxclaw.core.timestamps import now_iso, sort_key

logger = logging.getLogger("orgxclaw.outbox")

OUTBOX_EVENT_TYPES = {"progress", "decision", "artifact", "changeset"}


class InvalidSessionIdError(ValueError):
    """Raised for session ids that could escape the outbox directory."""


def normalize_session_id(session_id: str) -> str:
    normalized = (session_id or "").strip()
    if (
        not normalized
        or normalized in {".", ".."}
        or "/" in normalized
        or "\\" in normalized
        or "\0" in normalized
        or ".." in normalized
    ):
        raise InvalidSessionIdError(f"Invalid outbox session identifier: {session_id!r}")
    return normalized


@dataclass
class OutboxEvent:
    id: str
    type: str
    timestamp: str = field(default_factory=now_iso)
    payload: Dict[str, Any] = field(default_factory=dict)
    activity_item: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "activityItem": self.activity_item,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Optional[OutboxEvent]:
        event_id = d.get("id")
        if not isinstance(event_id, str) or not event_id:
            return None
        timestamp = d.get("timestamp")
        payload = d.get("payload")
        activity_item = d.get("activityItem")
        return cls(
            id=event_id,
            type=str(d.get("type", "")),
            timestamp=timestamp if isinstance(timestamp, str) else "",
            payload=payload if isinstance(payload, dict) else {},
            activity_item=activity_item if isinstance(activity_item, dict) else {},
        )


@dataclass
class OutboxSummary:
    pending_total: int = 0
    pending_by_session: Dict[str, int] = field(default_factory=dict)
    oldest_event_at: Optional[str] = None
    newest_event_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "pendingTotal": self.pending_total,
            "pendingBySession": dict(self.pending_by_session),
            "oldestEventAt": self.oldest_event_at,
            "newestEventAt": self.newest_event_at,
        }


def _parse_events(raw: Any) -> List[OutboxEvent]:
    if not isinstance(raw, list):
        return []
    events: List[OutboxEvent] = []
    for item in raw:
        event = OutboxEvent.from_dict(item) if isinstance(item, dict) else None
        if event is not None:
            events.append(event)
    return events


class Outbox:
    def __init__(self, outbox_dir: str) -> None:
        self._dir = outbox_dir

    @property
    def directory(self) -> str:
        return self._dir

    def path_for(self, session_id: str) -> str:
        return os.path.join(self._dir, f"{normalize_session_id(session_id)}.json")

    def read(self, session_id: str) -> List[OutboxEvent]:
        path = self.path_for(session_id)
        result = read_json_file(path)
        return _parse_events(result.value) if result.ok else []

    def append(self, session_id: str, event: OutboxEvent) -> None:
        """Queue *event*, replacing any queued event with the same id."""
        path = self.path_for(session_id)
        ensure_private_dir(self._dir)
        events = self.read(session_id)
        for index, queued in enumerate(events):
            if queued.id == event.id:
                events[index] = event
                action = "replace"
                break
        else:
            events.append(event)
            action = "append"
        write_json_file_atomic(path, [e.to_dict() for e in events])
        log_store_event("outbox", action, session_id=session_id.strip(), event_id=event.id, type=event.type)

    def replace(self, session_id: str, events: List[OutboxEvent]) -> None:
        """Overwrite a session queue; an empty list deletes the file."""
        path = self.path_for(session_id)
        if not events:
            if remove_file(path):
                log_store_event("outbox", "drain", session_id=session_id.strip())
            return
        ensure_private_dir(self._dir)
        write_json_file_atomic(path, [e.to_dict() for e in events])
        log_store_event("outbox", "rewrite", session_id=session_id.strip(), events=len(events))

    def clear(self, session_id: str) -> None:
        if remove_file(self.path_for(session_id)):
            log_store_event("outbox", "clear", session_id=session_id.strip())

    def list_sessions(self) -> List[str]:
        """Session ids with a queue file; files whose stem is not a valid id are skipped."""
        try:
            names = os.listdir(self._dir)
        except OSError:
            return []
        sessions: List[str] = []
        for name in names:
            if not name.endswith(".json"):
                continue
            stem = name[: -len(".json")]
            try:
                valid = normalize_session_id(stem) == stem
            except InvalidSessionIdError:
                valid = False
            if not valid:
                logger.debug("Ignoring outbox file with invalid session id: %s", name)
                continue
            sessions.append(stem)
        return sorted(sessions)

    def _read_all(self) -> Dict[str, List[OutboxEvent]]:
        queues: Dict[str, List[OutboxEvent]] = {}
        for session_id in self.list_sessions():
            result = read_json_file(os.path.join(self._dir, f"{session_id}.json"))
            if result.ok:
                queues[session_id] = _parse_events(result.value)
        return queues

    def read_all_items(self) -> List[Dict[str, Any]]:
        """Activity items of every queued event, newest first."""
        items = [
            event.activity_item
            for events in self._read_all().values()
            for event in events
            if event.activity_item
        ]
        items.sort(key=lambda item: sort_key(item.get("timestamp")), reverse=True)
        return items

    def read_summary(self) -> OutboxSummary:
        summary = OutboxSummary()
        timestamps: List[str] = []
        for session_id, events in self._read_all().items():
            if not events:
                continue
            summary.pending_by_session[session_id] = len(events)
            summary.pending_total += len(events)
            timestamps.extend(e.timestamp for e in events if e.timestamp)
        if timestamps:
            timestamps.sort(key=sort_key)
            summary.oldest_event_at = timestamps[0]
            summary.newest_event_at = timestamps[-1]
        return summary
