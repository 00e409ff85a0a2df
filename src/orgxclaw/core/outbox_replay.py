"""Replay buffered outbox events against OrgX once the connection is back."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from orgxclaw.core.outbox import OUTBOX_EVENT_TYPES, Outbox, OutboxEvent

if TYPE_CHECKING:
    from orgxclaw.integrations.orgx_client import OrgxClient

logger = logging.getLogger("orgxclaw.outbox_replay")


def _pick_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _pick_str_list(payload: Dict[str, Any], key: str) -> Optional[List[str]]:
    value = payload.get(key)
    if not isinstance(value, list):
        return None
    strings = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return strings or None


def extract_progress_message(payload: Dict[str, Any]) -> Optional[str]:
    """Progress text from ``message``, falling back to the older ``summary`` key."""
    return _pick_str(payload, "message") or _pick_str(payload, "summary")


def replay_event(client: "OrgxClient", event: OutboxEvent) -> bool:
    """Deliver one event. Returns False if the event was invalid and dropped.

    Delivery failures raise so the caller can keep the event queued.
    """
    if event.type not in OUTBOX_EVENT_TYPES:
        logger.warning("Dropping outbox event %s with unknown type %r", event.id, event.type)
        return False
    payload = event.payload or {}

    if event.type == "progress":
        message = extract_progress_message(payload)
        if not message:
            logger.warning("Dropping invalid progress outbox event %s", event.id)
            return False
        progress_pct = payload.get("progress_pct")
        client.create_entity("activity", {
            "title": message,
            "type": "delegation",
            "phase": _pick_str(payload, "phase"),
            "progress_pct": progress_pct if isinstance(progress_pct, (int, float)) else None,
            "next_step": _pick_str(payload, "next_step"),
        })
        return True

    if event.type == "decision":
        question = _pick_str(payload, "question")
        if not question:
            logger.warning("Dropping invalid decision outbox event %s", event.id)
            return False
        blocking = payload.get("blocking")
        client.create_entity("decision", {
            "title": question,
            "summary": _pick_str(payload, "context"),
            "urgency": _pick_str(payload, "urgency") or "medium",
            "status": "pending",
            "metadata": {
                "options": _pick_str_list(payload, "options"),
                "blocking": blocking if isinstance(blocking, bool) else True,
            },
        })
        return True

    if event.type == "artifact":
        name = _pick_str(payload, "name")
        if not name:
            logger.warning("Dropping invalid artifact outbox event %s", event.id)
            return False
        client.create_entity("artifact", {
            "name": name,
            "artifact_type": _pick_str(payload, "artifact_type") or "other",
            "description": _pick_str(payload, "description"),
            "artifact_url": _pick_str(payload, "url"),
            "status": "active",
        })
        return True

    # changeset
    if not payload:
        logger.warning("Dropping empty changeset outbox event %s", event.id)
        return False
    client.apply_changeset(payload)
    return True


@dataclass
class FlushResult:
    replayed: int = 0
    dropped: int = 0
    remaining: Dict[str, int] = field(default_factory=dict)

    @property
    def remaining_total(self) -> int:
        return sum(self.remaining.values())


def flush_outbox(
    client: "OrgxClient",
    outbox: Outbox,
    sessions: Optional[Iterable[str]] = None,
) -> FlushResult:
    """Replay every queued event; events that fail stay queued in order."""
    result = FlushResult()
    for session_id in list(sessions) if sessions is not None else outbox.list_sessions():
        pending = outbox.read(session_id)
        if not pending:
            continue

        remaining: List[OutboxEvent] = []
        replayed = 0
        for event in pending:
            try:
                if replay_event(client, event):
                    replayed += 1
                else:
                    result.dropped += 1
            except Exception as exc:  # noqa: BLE001
                remaining.append(event)
                logger.warning(
                    "Outbox replay failed: session=%s event=%s error=%s", session_id, event.id, exc
                )

        outbox.replace(session_id, remaining)
        result.replayed += replayed
        if remaining:
            result.remaining[session_id] = len(remaining)
        if replayed:
            logger.info(
                "Replayed buffered outbox events: session=%s replayed=%d remaining=%d",
                session_id,
                replayed,
                len(remaining),
            )
    return result
