"""Status rollups: task statuses → milestone / workstream status and progress.

Pure functions, no I/O.  Every raw task status falls into exactly one
bucket (done, blocked, active, todo).  Parent status is then derived with
a fixed precedence in which blocked work dominates unless something is
actively progressing, so one blocked task with nothing active marks the
whole parent at risk even when most siblings are done.
"""
from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Iterable, Optional

DONE_STATUSES = {"done", "completed", "cancelled", "canceled", "archived", "deleted"}
BLOCKED_STATUSES = {"blocked", "at_risk"}
ACTIVE_STATUSES = {"in_progress", "active", "running", "queued", "retry_pending"}

MILESTONE_STATUSES = ("planned", "in_progress", "at_risk", "completed")
WORKSTREAM_STATUSES = ("not_started", "active", "blocked", "done")


def classify_task_state(status: Any) -> str:
    normalized = str(status if status is not None else "").strip().lower()
    if normalized in DONE_STATUSES:
        return "done"
    if normalized in BLOCKED_STATUSES:
        return "blocked"
    if normalized in ACTIVE_STATUSES:
        return "active"
    return "todo"


@dataclass
class TaskStatusCounts:
    total: int = 0
    done: int = 0
    blocked: int = 0
    active: int = 0
    todo: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "done": self.done,
            "blocked": self.blocked,
            "active": self.active,
            "todo": self.todo,
        }


@dataclass
class Rollup(TaskStatusCounts):
    status: str = ""
    progress_pct: int = 0

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status"] = self.status
        data["progressPct"] = self.progress_pct
        return data


def summarize_task_statuses(statuses: Optional[Iterable[Any]] = None) -> TaskStatusCounts:
    counts = TaskStatusCounts()
    for status in statuses or ():
        bucket = classify_task_state(status)
        setattr(counts, bucket, getattr(counts, bucket) + 1)
        counts.total += 1
    return counts


def to_percent(numerator: float, denominator: float) -> int:
    """Half-up rounded percentage clamped to [0, 100]; 0 for a non-positive denominator."""
    if denominator <= 0 or not math.isfinite(numerator) or not math.isfinite(denominator):
        return 0
    pct = math.floor(numerator / denominator * 100 + 0.5)
    return max(0, min(100, int(pct)))


def _derive(counts: TaskStatusCounts, labels: tuple) -> str:
    idle, progressing, at_risk, finished = labels
    if counts.total <= 0:
        return idle
    if counts.done >= counts.total:
        return finished
    if counts.blocked > 0 and counts.active == 0:
        return at_risk
    if counts.active > 0 or counts.done > 0:
        return progressing
    return idle


def _rollup(statuses: Optional[Iterable[Any]], labels: tuple) -> Rollup:
    counts = summarize_task_statuses(statuses)
    return Rollup(
        total=counts.total,
        done=counts.done,
        blocked=counts.blocked,
        active=counts.active,
        todo=counts.todo,
        status=_derive(counts, labels),
        progress_pct=to_percent(counts.done, counts.total),
    )


def compute_milestone_rollup(statuses: Optional[Iterable[Any]] = None) -> Rollup:
    """Milestone status: planned | in_progress | at_risk | completed."""
    return _rollup(statuses, MILESTONE_STATUSES)


def compute_workstream_rollup(statuses: Optional[Iterable[Any]] = None) -> Rollup:
    """Workstream status: not_started | active | blocked | done."""
    return _rollup(statuses, WORKSTREAM_STATUSES)
