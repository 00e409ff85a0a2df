from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_key(value: Any) -> datetime:
    """Ordering key for ISO timestamps; unparseable values sort oldest."""
    return parse_timestamp(value) or _EPOCH
