from __future__ import annotations

import json
import time
from typing import Any, List, Optional

import typer
from dotenv import load_dotenv

from orgxclaw.core.config import Settings

app = typer.Typer(add_completion=False, help="Inspect and maintain local OrgX plugin state.")


def _load_env() -> None:
    load_dotenv()


def _settings() -> Settings:
    _load_env()
    return Settings.from_env()


def _setup_logging(settings: Settings) -> None:
    """Configure centralized logging to both stdout and log files."""
    from orgxclaw.core.logging_config import setup_logging

    setup_logging(log_dir=settings.log_dir, log_level=settings.log_level)


def _client(settings: Settings):
    from orgxclaw.integrations.orgx_client import OrgxClient

    if not settings.api_key:
        typer.secho("ORGX_API_KEY is not set.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return OrgxClient(
        base_url=settings.base_url,
        api_key=settings.api_key,
        user_id=settings.user_id,
        timeout=settings.request_timeout,
    )


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


@app.command()
def runs(
    status: Optional[str] = typer.Option(None, help="Filter by status (running|stopped)"),
    agent: Optional[str] = typer.Option(None, help="Filter by agent id"),
) -> None:
    """List recorded agent runs, newest first."""
    from orgxclaw.core.agent_runs import AgentRunStore

    records = AgentRunStore(_settings().config_dir).list_runs(status=status, agent_id=agent)
    if not records:
        typer.echo("No agent runs recorded.")
        return
    for record in records:
        scope = record.workstream_id or record.initiative_id or "-"
        typer.echo(f"{record.run_id}  {record.agent_id}  {record.status}  {record.started_at}  {scope}")


@app.command("stop-run")
def stop_run(run_id: str = typer.Argument(..., help="Run id to mark stopped")) -> None:
    from orgxclaw.core.agent_runs import AgentRunStore

    record = AgentRunStore(_settings().config_dir).mark_stopped(run_id)
    if record is None:
        typer.secho(f"Unknown run: {run_id}", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Stopped {record.run_id} at {record.stopped_at}")


@app.command()
def contexts() -> None:
    """Show the last launch scope recorded for each agent."""
    from orgxclaw.core.agent_contexts import AgentContextStore

    state = AgentContextStore(_settings().config_dir).read()
    _echo_json({key: ctx.to_dict() for key, ctx in state.agents.items()})


@app.command()
def pins() -> None:
    """Show the next-up queue in display order."""
    from orgxclaw.core.next_up_queue import NextUpQueueStore

    state = NextUpQueueStore(_settings().config_dir).read()
    if not state.pins:
        typer.echo("Next-up queue is empty.")
        return
    for index, pin in enumerate(state.pins, start=1):
        typer.echo(f"{index}. {pin.initiative_id} / {pin.workstream_id}")


@app.command()
def pin(
    initiative_id: str = typer.Argument(...),
    workstream_id: str = typer.Argument(...),
    task: Optional[str] = typer.Option(None, help="Preferred task id"),
    milestone: Optional[str] = typer.Option(None, help="Preferred milestone id"),
) -> None:
    """Pin a workstream to the front of the next-up queue."""
    from orgxclaw.core.next_up_queue import NextUpQueueStore

    state = NextUpQueueStore(_settings().config_dir).upsert_pin(
        initiative_id, workstream_id, preferred_task_id=task, preferred_milestone_id=milestone
    )
    typer.echo(f"Pinned ({len(state.pins)} in queue)")


@app.command()
def unpin(initiative_id: str = typer.Argument(...), workstream_id: str = typer.Argument(...)) -> None:
    from orgxclaw.core.next_up_queue import NextUpQueueStore

    state = NextUpQueueStore(_settings().config_dir).remove_pin(initiative_id, workstream_id)
    typer.echo(f"{len(state.pins)} pin(s) remain")


@app.command()
def outbox(items: bool = typer.Option(False, "--items", help="List queued activity items")) -> None:
    """Summarize events waiting to be delivered to OrgX."""
    from orgxclaw.core.outbox import Outbox

    box = Outbox(_settings().outbox_dir)
    if items:
        _echo_json(box.read_all_items())
        return
    _echo_json(box.read_summary().to_dict())


@app.command()
def flush() -> None:
    """Replay queued outbox events now."""
    from orgxclaw.core.outbox import Outbox
    from orgxclaw.core.outbox_replay import flush_outbox

    settings = _settings()
    _setup_logging(settings)
    result = flush_outbox(_client(settings), Outbox(settings.outbox_dir))
    typer.echo(f"Replayed {result.replayed}, dropped {result.dropped}, remaining {result.remaining_total}")


@app.command()
def sync(
    watch: bool = typer.Option(False, "--watch", help="Keep syncing every ORGX_SYNC_INTERVAL_SECONDS"),
) -> None:
    """Fetch the org snapshot, cache it, and drain the outbox."""
    from orgxclaw.core.outbox import Outbox
    from orgxclaw.core.snapshot import SnapshotStore
    from orgxclaw.core.sync import SyncService

    settings = _settings()
    _setup_logging(settings)
    service = SyncService(_client(settings), SnapshotStore(settings.config_dir), Outbox(settings.outbox_dir))
    if watch:
        service.start(settings.sync_interval_seconds)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            service.stop()
        return

    result = service.sync_once()
    if result.ok:
        replayed = result.flush.replayed if result.flush else 0
        typer.echo(f"✅ Synced. Replayed {replayed} outbox event(s).")
        return
    suffix = " (serving cached snapshot)" if result.from_cache else ""
    typer.secho(f"Sync failed: {result.error}{suffix}", fg=typer.colors.YELLOW, err=True)
    raise typer.Exit(code=1)


@app.command()
def rollup(
    statuses: Optional[List[str]] = typer.Argument(None, help="Raw task statuses"),
    milestone: bool = typer.Option(False, "--milestone", help="Use milestone status names"),
) -> None:
    """Compute the rollup for a list of task statuses."""
    from orgxclaw.core.rollups import compute_milestone_rollup, compute_workstream_rollup

    compute = compute_milestone_rollup if milestone else compute_workstream_rollup
    _echo_json(compute(statuses or []).to_dict())


@app.command()
def version() -> None:
    from orgxclaw import __version__

    typer.echo(__version__)


if __name__ == "__main__":
    app()
