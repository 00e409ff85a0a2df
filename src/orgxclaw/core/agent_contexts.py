"""Last-known initiative/workstream/task scope per agent (and per run).

Backed by ``agent-contexts.json``::

    {"updatedAt": "...", "agents": {"<agentId>": {...}}, "runs": {"<runId>": {...}}}

Each launch overwrites the agent's context.  Agents without recent
activity are pruned once more than ``MAX_AGENTS`` are tracked; there is no
way to pin a context against expiry.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Dict, Optional

from orgxclaw.core.agent_runs import normalize_optional
from orgxclaw.core.fs_utils import (
    backup_corrupt_file,
    ensure_private_dir,
    read_json_file,
    remove_file,
    write_json_file_atomic,
)
from orgxclaw.core.logging_config import log_store_event
from orgxclaw.core.timestamps import now_iso, sort_key

logger = logging.getLogger("orgxclaw.agent_contexts")

MAX_AGENTS = 120
MAX_RUN_CONTEXTS = 480
CONTEXTS_FILENAME = "agent-contexts.json"


@dataclass
class AgentLaunchContext:
    agent_id: str
    updated_at: str
    initiative_id: Optional[str] = None
    initiative_title: Optional[str] = None
    workstream_id: Optional[str] = None
    task_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "agentId": self.agent_id,
            "initiativeId": self.initiative_id,
            "initiativeTitle": self.initiative_title,
            "workstreamId": self.workstream_id,
            "taskId": self.task_id,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Optional[AgentLaunchContext]:
        agent_id = normalize_optional(d.get("agentId"))
        if not agent_id or not isinstance(d.get("updatedAt"), str):
            return None
        return cls(
            agent_id=agent_id,
            updated_at=d["updatedAt"],
            initiative_id=normalize_optional(d.get("initiativeId")),
            initiative_title=normalize_optional(d.get("initiativeTitle")),
            workstream_id=normalize_optional(d.get("workstreamId")),
            task_id=normalize_optional(d.get("taskId")),
        )


@dataclass
class RunLaunchContext:
    run_id: str
    agent_id: str
    updated_at: str
    initiative_id: Optional[str] = None
    initiative_title: Optional[str] = None
    workstream_id: Optional[str] = None
    task_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "agentId": self.agent_id,
            "initiativeId": self.initiative_id,
            "initiativeTitle": self.initiative_title,
            "workstreamId": self.workstream_id,
            "taskId": self.task_id,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Optional[RunLaunchContext]:
        run_id = normalize_optional(d.get("runId"))
        agent_id = normalize_optional(d.get("agentId"))
        if not run_id or not agent_id or not isinstance(d.get("updatedAt"), str):
            return None
        return cls(
            run_id=run_id,
            agent_id=agent_id,
            updated_at=d["updatedAt"],
            initiative_id=normalize_optional(d.get("initiativeId")),
            initiative_title=normalize_optional(d.get("initiativeTitle")),
            workstream_id=normalize_optional(d.get("workstreamId")),
            task_id=normalize_optional(d.get("taskId")),
        )


@dataclass
class AgentContextsState:
    updated_at: str = field(default_factory=now_iso)
    agents: Dict[str, AgentLaunchContext] = field(default_factory=dict)
    runs: Dict[str, RunLaunchContext] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "updatedAt": self.updated_at,
            "agents": {key: ctx.to_dict() for key, ctx in self.agents.items()},
            "runs": {key: ctx.to_dict() for key, ctx in self.runs.items()},
        }


def _prune(contexts: dict, limit: int) -> int:
    if len(contexts) <= limit:
        return 0
    ordered = sorted(contexts.items(), key=lambda item: sort_key(item[1].updated_at), reverse=True)
    keep = {key for key, _ in ordered[:limit]}
    dropped = [key for key in contexts if key not in keep]
    for key in dropped:
        del contexts[key]
    return len(dropped)


class AgentContextStore:
    def __init__(self, config_dir: str) -> None:
        self._dir = config_dir
        self._path = os.path.join(config_dir, CONTEXTS_FILENAME)

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> AgentContextsState:
        result = read_json_file(self._path)
        if not result.ok:
            return AgentContextsState()
        raw = result.value
        if not isinstance(raw, dict):
            backup_corrupt_file(self._path)
            return AgentContextsState()
        state = AgentContextsState()
        if isinstance(raw.get("updatedAt"), str):
            state.updated_at = raw["updatedAt"]
        agents = raw.get("agents")
        if isinstance(agents, dict):
            for item in agents.values():
                ctx = AgentLaunchContext.from_dict(item) if isinstance(item, dict) else None
                if ctx is not None:
                    state.agents[ctx.agent_id] = ctx
        runs = raw.get("runs")
        if isinstance(runs, dict):
            for item in runs.values():
                run_ctx = RunLaunchContext.from_dict(item) if isinstance(item, dict) else None
                if run_ctx is not None:
                    state.runs[run_ctx.run_id] = run_ctx
        return state

    def get(self, agent_id: str) -> Optional[AgentLaunchContext]:
        key = (agent_id or "").strip()
        if not key:
            return None
        return self.read().agents.get(key)

    def get_run_context(self, run_id: str) -> Optional[RunLaunchContext]:
        key = (run_id or "").strip()
        if not key:
            return None
        return self.read().runs.get(key)

    def upsert(
        self,
        agent_id: str,
        *,
        initiative_id: Optional[str] = None,
        initiative_title: Optional[str] = None,
        workstream_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> AgentContextsState:
        """Replace the stored scope for *agent_id*."""
        key = (agent_id or "").strip()
        if not key:
            return self.read()

        ensure_private_dir(self._dir)
        state = self.read()
        now = now_iso()
        state.agents[key] = AgentLaunchContext(
            agent_id=key,
            updated_at=now,
            initiative_id=normalize_optional(initiative_id),
            initiative_title=normalize_optional(initiative_title),
            workstream_id=normalize_optional(workstream_id),
            task_id=normalize_optional(task_id),
        )
        state.updated_at = now

        dropped = _prune(state.agents, MAX_AGENTS)
        if dropped:
            logger.info("Forgot launch context for %d idle agent(s)", dropped)

        write_json_file_atomic(self._path, state.to_dict())
        log_store_event("agent_contexts", "upsert", agent_id=key, initiative_id=initiative_id)
        return state

    def upsert_run_context(
        self,
        run_id: str,
        agent_id: str,
        *,
        initiative_id: Optional[str] = None,
        initiative_title: Optional[str] = None,
        workstream_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> AgentContextsState:
        run_key = (run_id or "").strip()
        agent_key = (agent_id or "").strip()
        if not run_key or not agent_key:
            return self.read()

        ensure_private_dir(self._dir)
        state = self.read()
        now = now_iso()
        state.runs[run_key] = RunLaunchContext(
            run_id=run_key,
            agent_id=agent_key,
            updated_at=now,
            initiative_id=normalize_optional(initiative_id),
            initiative_title=normalize_optional(initiative_title),
            workstream_id=normalize_optional(workstream_id),
            task_id=normalize_optional(task_id),
        )
        state.updated_at = now
        _prune(state.runs, MAX_RUN_CONTEXTS)

        write_json_file_atomic(self._path, state.to_dict())
        log_store_event("agent_contexts", "upsert_run", run_id=run_key, agent_id=agent_key)
        return state

    def clear(self) -> None:
        if remove_file(self._path):
            log_store_event("agent_contexts", "clear")
