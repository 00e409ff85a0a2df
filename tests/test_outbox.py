"""Tests for the offline event outbox (outbox.py)."""
from __future__ import annotations

import json
import os
import stat

import pytest

from orgxclaw.core.outbox import InvalidSessionIdError, Outbox, OutboxEvent, normalize_session_id


@pytest.fixture
def outbox_dir(tmp_path):
    return str(tmp_path / "orgx-outbox")


@pytest.fixture
def outbox(outbox_dir):
    return Outbox(outbox_dir)


def _event(event_id: str, ts: str = "2026-05-01T10:00:00Z", **payload) -> OutboxEvent:
    return OutboxEvent(
        id=event_id,
        type="progress",
        timestamp=ts,
        payload=payload,
        activity_item={"id": event_id, "timestamp": ts, "title": payload.get("summary", "")},
    )


class TestSessionIds:
    @pytest.mark.parametrize("bad", ["", "   ", ".", "..", "a/b", "a\\b", "a\0b", "x..y", "../etc"])
    def test_rejects_unsafe_ids(self, bad):
        with pytest.raises(InvalidSessionIdError):
            normalize_session_id(bad)

    def test_accepts_and_trims(self):
        assert normalize_session_id("  progress ") == "progress"
        assert normalize_session_id("sess.1") == "sess.1"

    def test_rejected_before_any_io(self, outbox, outbox_dir):
        with pytest.raises(ValueError):
            outbox.append("../escape", _event("e1"))
        assert not os.path.exists(outbox_dir)
        with pytest.raises(InvalidSessionIdError):
            outbox.read("..")


class TestAppendAndRead:
    def test_same_id_replaces_in_place(self, outbox):
        outbox.append("s1", _event("e1", summary="first"))
        outbox.append("s1", _event("e1", summary="second"))
        events = outbox.read("s1")
        assert len(events) == 1
        assert events[0].payload == {"summary": "second"}

    def test_replacement_keeps_position(self, outbox):
        outbox.append("s1", _event("e1", summary="a"))
        outbox.append("s1", _event("e2", summary="b"))
        outbox.append("s1", _event("e3", summary="c"))
        outbox.append("s1", _event("e2", summary="b2"))
        events = outbox.read("s1")
        assert [e.id for e in events] == ["e1", "e2", "e3"]
        assert events[1].payload == {"summary": "b2"}

    def test_sessions_are_isolated(self, outbox):
        outbox.append("s1", _event("e1"))
        outbox.append("s2", _event("e1"))
        assert len(outbox.read("s1")) == 1
        assert len(outbox.read("s2")) == 1
        assert outbox.list_sessions() == ["s1", "s2"]

    def test_file_layout(self, outbox, outbox_dir):
        outbox.append("s1", _event("e1", summary="x"))
        with open(os.path.join(outbox_dir, "s1.json"), "r", encoding="utf-8") as f:
            data = json.load(f)
        assert isinstance(data, list)
        assert data[0]["id"] == "e1"
        assert data[0]["activityItem"]["id"] == "e1"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_permissions(self, outbox, outbox_dir):
        outbox.append("s1", _event("e1"))
        assert stat.S_IMODE(os.stat(os.path.join(outbox_dir, "s1.json")).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(outbox_dir).st_mode) == 0o700

    def test_read_missing_is_empty(self, outbox):
        assert outbox.read("nobody") == []

    def test_corrupt_session_file_backed_up(self, outbox, outbox_dir):
        os.makedirs(outbox_dir)
        with open(os.path.join(outbox_dir, "s1.json"), "w", encoding="utf-8") as f:
            f.write("[{broken")
        assert outbox.read("s1") == []
        assert any(name.startswith("s1.json.corrupt.") for name in os.listdir(outbox_dir))
        outbox.append("s1", _event("e1"))
        assert [e.id for e in outbox.read("s1")] == ["e1"]


class TestReplaceAndClear:
    def test_replace_with_empty_deletes_file(self, outbox, outbox_dir):
        outbox.append("s1", _event("e1"))
        outbox.replace("s1", [])
        assert not os.path.exists(os.path.join(outbox_dir, "s1.json"))
        assert outbox.read("s1") == []

    def test_replace_with_events(self, outbox):
        outbox.append("s1", _event("e1"))
        outbox.replace("s1", [_event("e9")])
        assert [e.id for e in outbox.read("s1")] == ["e9"]

    def test_replace_empty_when_absent(self, outbox):
        outbox.replace("s1", [])

    def test_clear(self, outbox):
        outbox.append("s1", _event("e1"))
        outbox.clear("s1")
        assert outbox.read("s1") == []
        outbox.clear("s1")


class TestReadAll:
    def test_items_sorted_newest_first(self, outbox):
        outbox.append("s1", _event("old", ts="2026-05-01T08:00:00Z"))
        outbox.append("s2", _event("new", ts="2026-05-01T12:00:00Z"))
        outbox.append("s1", _event("mid", ts="2026-05-01T10:00:00Z"))
        items = outbox.read_all_items()
        assert [item["id"] for item in items] == ["new", "mid", "old"]

    def test_empty_or_missing_dir(self, outbox):
        assert outbox.read_all_items() == []
        assert outbox.read_summary().pending_total == 0

    def test_skips_malformed_and_foreign_files(self, outbox, outbox_dir):
        outbox.append("s1", _event("e1"))
        with open(os.path.join(outbox_dir, "bad.json"), "w", encoding="utf-8") as f:
            f.write("nope")
        with open(os.path.join(outbox_dir, "notes.txt"), "w", encoding="utf-8") as f:
            f.write("ignored")
        assert [item["id"] for item in outbox.read_all_items()] == ["e1"]

    def test_summary(self, outbox):
        outbox.append("progress", _event("p1", ts="2026-05-01T09:00:00Z"))
        outbox.append("progress", _event("p2", ts="2026-05-01T11:00:00Z"))
        outbox.append("decisions", _event("d1", ts="2026-05-01T10:00:00Z"))
        summary = outbox.read_summary()
        assert summary.pending_total == 3
        assert summary.pending_by_session == {"decisions": 1, "progress": 2}
        assert summary.oldest_event_at == "2026-05-01T09:00:00Z"
        assert summary.newest_event_at == "2026-05-01T11:00:00Z"
        assert summary.to_dict()["pendingTotal"] == 3
