"""Persistent record of agent launches, keyed by run id.

Backed by ``agent-runs.json`` in the plugin config directory::

    {"updatedAt": "...", "runs": {"<runId>": {...AgentRunRecord...}}}

Only the newest ``MAX_RUNS`` launches (by ``startedAt``) are retained.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Any, Dict, List, Optional

from orgxclaw.core.fs_utils import (
    backup_corrupt_file,
    ensure_private_dir,
    read_json_file,
    remove_file,
    write_json_file_atomic,
)
from orgxclaw.core.logging_config import log_store_event
from orgxclaw.core.timestamps import now_iso, sort_key

logger = logging.getLogger("orgxclaw.agent_runs")

MAX_RUNS = 240
RUN_STATUSES = {"running", "stopped"}
RUNS_FILENAME = "agent-runs.json"


def normalize_optional(value: Any) -> Optional[str]:
    """Trimmed string, or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _normalize_pid(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


@dataclass
class AgentRunRecord:
    run_id: str
    agent_id: str
    started_at: str
    pid: Optional[int] = None
    message: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    initiative_id: Optional[str] = None
    initiative_title: Optional[str] = None
    workstream_id: Optional[str] = None
    task_id: Optional[str] = None
    stopped_at: Optional[str] = None
    status: str = "running"

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "agentId": self.agent_id,
            "pid": self.pid,
            "message": self.message,
            "provider": self.provider,
            "model": self.model,
            "initiativeId": self.initiative_id,
            "initiativeTitle": self.initiative_title,
            "workstreamId": self.workstream_id,
            "taskId": self.task_id,
            "startedAt": self.started_at,
            "stoppedAt": self.stopped_at,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Optional[AgentRunRecord]:
        run_id = normalize_optional(d.get("runId"))
        agent_id = normalize_optional(d.get("agentId"))
        started_at = d.get("startedAt")
        if not run_id or not agent_id or not isinstance(started_at, str):
            return None
        stopped_at = d.get("stoppedAt")
        return cls(
            run_id=run_id,
            agent_id=agent_id,
            started_at=started_at,
            pid=_normalize_pid(d.get("pid")),
            message=normalize_optional(d.get("message")),
            provider=normalize_optional(d.get("provider")),
            model=normalize_optional(d.get("model")),
            initiative_id=normalize_optional(d.get("initiativeId")),
            initiative_title=normalize_optional(d.get("initiativeTitle")),
            workstream_id=normalize_optional(d.get("workstreamId")),
            task_id=normalize_optional(d.get("taskId")),
            stopped_at=stopped_at if isinstance(stopped_at, str) else None,
            status="stopped" if d.get("status") == "stopped" else "running",
        )


@dataclass
class AgentRunsState:
    updated_at: str = field(default_factory=now_iso)
    runs: Dict[str, AgentRunRecord] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "updatedAt": self.updated_at,
            "runs": {run_id: record.to_dict() for run_id, record in self.runs.items()},
        }


class AgentRunStore:
    """Tracks in-flight and historical agent launches."""

    def __init__(self, config_dir: str) -> None:
        self._dir = config_dir
        self._path = os.path.join(config_dir, RUNS_FILENAME)

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> AgentRunsState:
        result = read_json_file(self._path)
        if not result.ok:
            return AgentRunsState()
        raw = result.value
        if not isinstance(raw, dict):
            backup_corrupt_file(self._path)
            return AgentRunsState()
        state = AgentRunsState()
        if isinstance(raw.get("updatedAt"), str):
            state.updated_at = raw["updatedAt"]
        runs = raw.get("runs")
        if isinstance(runs, dict):
            for item in runs.values():
                if not isinstance(item, dict):
                    continue
                record = AgentRunRecord.from_dict(item)
                if record is not None:
                    state.runs[record.run_id] = record
        return state

    def get(self, run_id: str) -> Optional[AgentRunRecord]:
        key = (run_id or "").strip()
        if not key:
            return None
        return self.read().runs.get(key)

    def list_runs(self, status: Optional[str] = None, agent_id: Optional[str] = None) -> List[AgentRunRecord]:
        records = list(self.read().runs.values())
        if status:
            records = [r for r in records if r.status == status]
        if agent_id:
            records = [r for r in records if r.agent_id == agent_id.strip()]
        records.sort(key=lambda r: sort_key(r.started_at), reverse=True)
        return records

    def upsert(
        self,
        run_id: str,
        agent_id: str,
        *,
        pid: Optional[int] = None,
        message: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        initiative_id: Optional[str] = None,
        initiative_title: Optional[str] = None,
        workstream_id: Optional[str] = None,
        task_id: Optional[str] = None,
        started_at: Optional[str] = None,
        stopped_at: Optional[str] = None,
        status: Optional[str] = None,
    ) -> AgentRunsState:
        """Insert or merge a run record and persist the pruned collection.

        ``started_at``, ``stopped_at`` and ``status`` keep their stored
        values when omitted.  A blank ``run_id`` or ``agent_id`` is a no-op
        that returns the current state.
        """
        run_key = (run_id or "").strip()
        agent_key = (agent_id or "").strip()
        if not run_key or not agent_key:
            return self.read()

        ensure_private_dir(self._dir)
        state = self.read()
        existing = state.runs.get(run_key)

        if isinstance(started_at, str) and started_at.strip():
            resolved_start = started_at
        elif existing is not None:
            resolved_start = existing.started_at
        else:
            resolved_start = now_iso()
        resolved_status = status or (existing.status if existing else "running")
        if resolved_status not in RUN_STATUSES:
            resolved_status = "running"

        state.runs[run_key] = AgentRunRecord(
            run_id=run_key,
            agent_id=agent_key,
            started_at=resolved_start,
            pid=_normalize_pid(pid),
            message=normalize_optional(message),
            provider=normalize_optional(provider),
            model=normalize_optional(model),
            initiative_id=normalize_optional(initiative_id),
            initiative_title=normalize_optional(initiative_title),
            workstream_id=normalize_optional(workstream_id),
            task_id=normalize_optional(task_id),
            stopped_at=stopped_at if stopped_at is not None else (existing.stopped_at if existing else None),
            status=resolved_status,
        )
        state.updated_at = now_iso()
        self._prune(state)

        write_json_file_atomic(self._path, state.to_dict())
        log_store_event("agent_runs", "upsert", run_id=run_key, agent_id=agent_key, status=resolved_status)
        return state

    def mark_stopped(self, run_id: str) -> Optional[AgentRunRecord]:
        key = (run_id or "").strip()
        if not key:
            return None
        existing = self.read().runs.get(key)
        if existing is None:
            return None
        state = self.upsert(
            key,
            existing.agent_id,
            pid=existing.pid,
            message=existing.message,
            provider=existing.provider,
            model=existing.model,
            initiative_id=existing.initiative_id,
            initiative_title=existing.initiative_title,
            workstream_id=existing.workstream_id,
            task_id=existing.task_id,
            started_at=existing.started_at,
            stopped_at=now_iso(),
            status="stopped",
        )
        return state.runs.get(key)

    def clear(self) -> None:
        if remove_file(self._path):
            log_store_event("agent_runs", "clear")

    @staticmethod
    def _prune(state: AgentRunsState) -> None:
        if len(state.runs) <= MAX_RUNS:
            return
        ordered = sorted(state.runs.values(), key=lambda r: sort_key(r.started_at), reverse=True)
        keep = {record.run_id for record in ordered[:MAX_RUNS]}
        dropped = [run_id for run_id in state.runs if run_id not in keep]
        for run_id in dropped:
            del state.runs[run_id]
        logger.info("Pruned %d agent run(s); %d retained", len(dropped), len(state.runs))
