"""Background sync: pull the org snapshot, cache it, drain the outbox.

When OrgX is unreachable the last persisted snapshot is served instead, so
the dashboard keeps showing last-known-good state while offline.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from orgxclaw.core.outbox import Outbox
from orgxclaw.core.outbox_replay import FlushResult, flush_outbox
from orgxclaw.core.rollups import Rollup, compute_milestone_rollup, compute_workstream_rollup
from orgxclaw.core.snapshot import OrgSnapshot, SnapshotStore

if TYPE_CHECKING:
    from orgxclaw.integrations.orgx_client import OrgxClient

logger = logging.getLogger("orgxclaw.sync")


@dataclass
class SyncResult:
    ok: bool
    snapshot: Optional[OrgSnapshot] = None
    from_cache: bool = False
    flush: Optional[FlushResult] = None
    error: Optional[str] = None


class SyncService:
    def __init__(self, client: "OrgxClient", snapshot_store: SnapshotStore, outbox: Outbox) -> None:
        self.client = client
        self.snapshot_store = snapshot_store
        self.outbox = outbox
        self._sync_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.last_result: Optional[SyncResult] = None

    def sync_once(self) -> SyncResult:
        """Run one sync; concurrent callers wait for the in-flight one."""
        with self._sync_lock:
            try:
                snapshot = self.client.get_org_snapshot()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Sync failed: %s", exc)
                cached = self.snapshot_store.read()
                result = SyncResult(
                    ok=False,
                    snapshot=cached.snapshot if cached else None,
                    from_cache=cached is not None,
                    error=str(exc),
                )
            else:
                self.snapshot_store.write(snapshot)
                flush = flush_outbox(self.client, self.outbox)
                logger.debug("Sync OK")
                result = SyncResult(ok=True, snapshot=snapshot, flush=flush)
            self.last_result = result
            return result

    def start(self, interval_seconds: float) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()

        def _loop() -> None:
            logger.info("OrgX sync started (every %ss)", interval_seconds)
            while not self._stop_event.is_set():
                try:
                    self.sync_once()
                except Exception as exc:  # noqa: BLE001
                    logger.error("Sync loop error: %s", exc)
                self._stop_event.wait(interval_seconds)

        self._thread = threading.Thread(target=_loop, daemon=True, name="orgx-sync")
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None


def push_rollups(
    client: "OrgxClient",
    workstream_id: str,
    task_statuses: Iterable[Any],
    milestone_task_statuses: Optional[Dict[str, Iterable[Any]]] = None,
) -> Dict[str, Rollup]:
    """Recompute rollups and write them back to OrgX.

    Returns the rollups keyed by entity id (the workstream and each
    milestone in *milestone_task_statuses*).
    """
    rollups: Dict[str, Rollup] = {}
    for milestone_id, statuses in (milestone_task_statuses or {}).items():
        rollup = compute_milestone_rollup(list(statuses))
        client.update_entity("milestone", milestone_id, {
            "status": rollup.status,
            "progress_pct": rollup.progress_pct,
        })
        rollups[milestone_id] = rollup

    workstream = compute_workstream_rollup(list(task_statuses))
    client.update_entity("workstream", workstream_id, {
        "status": workstream.status,
        "progress_pct": workstream.progress_pct,
    })
    rollups[workstream_id] = workstream
    return rollups
