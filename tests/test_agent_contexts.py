"""Tests for the agent launch context store (agent_contexts.py)."""
from __future__ import annotations

import itertools
import json
import os
import stat

import pytest

import orgxclaw.core.agent_contexts as agent_contexts
from orgxclaw.core.agent_contexts import MAX_AGENTS, MAX_RUN_CONTEXTS, AgentContextStore


@pytest.fixture
def store(tmp_path):
    return AgentContextStore(str(tmp_path / "cfg"))


@pytest.fixture
def ticking_clock(monkeypatch):
    """Strictly increasing timestamps so pruning order is deterministic."""
    counter = itertools.count()

    def _now() -> str:
        i = next(counter)
        return f"2026-04-01T{i // 3600:02d}:{(i // 60) % 60:02d}:{i % 60:02d}.000Z"

    monkeypatch.setattr(agent_contexts, "now_iso", _now)


class TestAgentContexts:
    def test_upsert_and_get(self, store):
        store.upsert("a1", initiative_id="i1", initiative_title="Launch", workstream_id="ws1", task_id="t1")
        ctx = store.get("a1")
        assert ctx.initiative_id == "i1"
        assert ctx.initiative_title == "Launch"
        assert ctx.workstream_id == "ws1"
        assert ctx.task_id == "t1"

    def test_upsert_overwrites_previous_scope(self, store):
        store.upsert("a1", initiative_id="i1", workstream_id="ws1", task_id="t1")
        store.upsert("a1", initiative_id="i2")
        ctx = store.get("a1")
        assert ctx.initiative_id == "i2"
        assert ctx.workstream_id is None
        assert ctx.task_id is None

    def test_blank_agent_is_noop(self, store):
        assert store.upsert("  ", initiative_id="i1").agents == {}
        assert not os.path.exists(store.path)
        assert store.get("") is None

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_file_is_owner_only(self, store):
        store.upsert("a1", initiative_id="i1")
        mode = stat.S_IMODE(os.stat(store.path).st_mode)
        assert mode & 0o077 == 0
        assert mode == 0o600

    def test_prunes_least_recent_agents(self, store, ticking_clock):
        for i in range(MAX_AGENTS + 3):
            store.upsert(f"agent-{i}", initiative_id="i1")
        agents = store.read().agents
        assert len(agents) == MAX_AGENTS
        for i in range(3):
            assert f"agent-{i}" not in agents
        assert f"agent-{MAX_AGENTS + 2}" in agents

    def test_refreshing_an_agent_saves_it_from_pruning(self, store, ticking_clock):
        for i in range(MAX_AGENTS):
            store.upsert(f"agent-{i}")
        store.upsert("agent-0")
        store.upsert("agent-new")
        agents = store.read().agents
        assert "agent-0" in agents
        assert "agent-1" not in agents

    def test_corrupt_file(self, store):
        os.makedirs(os.path.dirname(store.path))
        with open(store.path, "w", encoding="utf-8") as f:
            f.write("not json at all")
        assert store.read().agents == {}
        siblings = os.listdir(os.path.dirname(store.path))
        assert any(name.startswith("agent-contexts.json.corrupt.") for name in siblings)

    def test_clear(self, store):
        store.upsert("a1")
        store.clear()
        assert store.get("a1") is None


class TestRunContexts:
    def test_upsert_and_get_run_context(self, store):
        store.upsert_run_context("run-1", "a1", initiative_id="i1", task_id="t1")
        ctx = store.get_run_context("run-1")
        assert ctx.agent_id == "a1"
        assert ctx.task_id == "t1"
        assert store.get_run_context("run-2") is None

    def test_run_and_agent_contexts_share_file(self, store):
        store.upsert("a1", initiative_id="i1")
        store.upsert_run_context("run-1", "a1")
        with open(store.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert set(data["agents"]) == {"a1"}
        assert set(data["runs"]) == {"run-1"}

    def test_blank_keys_are_noop(self, store):
        assert store.upsert_run_context("", "a1").runs == {}
        assert store.upsert_run_context("run-1", " ").runs == {}

    def test_prunes_run_contexts(self, store, ticking_clock):
        for i in range(MAX_RUN_CONTEXTS + 2):
            store.upsert_run_context(f"run-{i}", "a1")
        runs = store.read().runs
        assert len(runs) == MAX_RUN_CONTEXTS
        assert "run-0" not in runs and "run-1" not in runs
