"""
Sync Reconciler

Background loop that keeps the vector store aligned with one Confluence
space. Each cycle walks a fixed sequence of states:

    FETCH_SOURCE -> FETCH_INDEX_STATE -> DIFF -> APPLY_UPDATES -> APPLY_DELETES

and the loop then sleeps until the next interval, a wake-up request, or
a stop.

Error policy
------------
- A failure while updating one page, expected or not, is recorded against
  that page and the cycle moves on; the page stays stale and is retried
  next cycle.
- A failure fetching the source, reading index state or deleting orphans
  ends the current cycle only.
- The loop never exits because of a cycle error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from ..confluence.models import Document
from ..core.errors import SyncError
from ..core.protocols import CorpusSource
from ..db.vector_store import VectorStore
from .indexer import PageIndexer

logger = logging.getLogger("rag.sync")


class SyncState(str, Enum):
    IDLE = "idle"
    FETCH_SOURCE = "fetch_source"
    FETCH_INDEX_STATE = "fetch_index_state"
    DIFF = "diff"
    APPLY_UPDATES = "apply_updates"
    APPLY_DELETES = "apply_deletes"
    SLEEP = "sleep"
    STOPPED = "stopped"


# ---------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class SyncPlan:
    stale: List[Document]
    current: List[Document]
    orphaned: List[str]


def plan_sync(documents: Iterable[Document], indexed: Mapping[str, int]) -> SyncPlan:
    """
    Classify source documents against the indexed snapshot.

    - stale: source version is newer than the indexed one (or never indexed)
    - current: indexed version is the same or newer
    - orphaned: indexed page ids missing from the source
    """
    stale: List[Document] = []
    current: List[Document] = []
    seen = set()

    for doc in documents:
        seen.add(doc.id)
        indexed_version = indexed.get(doc.id)
        if indexed_version is None or doc.version > indexed_version:
            stale.append(doc)
        else:
            current.append(doc)

    orphaned = sorted(page_id for page_id in indexed if page_id not in seen)
    return SyncPlan(stale=stale, current=current, orphaned=orphaned)


# ---------------------------------------------------------------------
# Cycle report
# ---------------------------------------------------------------------

@dataclass
class CycleReport:
    """What one reconciliation cycle did."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    fetched: int = 0
    stale: int = 0
    current: int = 0
    updated: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    deleted: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "fetched": self.fetched,
            "stale": self.stale,
            "current": self.current,
            "updated": list(self.updated),
            "failed": dict(self.failed),
            "deleted": list(self.deleted),
            "error": self.error,
        }


# ---------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------

class SyncReconciler:
    """
    Periodic reconciler for one Confluence space.

    Runs as a single asyncio task between `start()` and `stop()`.
    """

    def __init__(
        self,
        source: CorpusSource,
        indexer: PageIndexer,
        store: VectorStore,
        space_key: str,
        interval_seconds: float = 600.0,
    ) -> None:
        self._source = source
        self._indexer = indexer
        self._store = store
        self.space_key = space_key
        self.interval_seconds = interval_seconds

        self._state = SyncState.IDLE
        self._last_report: Optional[CycleReport] = None
        self._cycles_completed = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._wakeup = asyncio.Event()
        self._cycle_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """
        Run FETCH_SOURCE through APPLY_DELETES once.

        Cycles never overlap: a call made while another cycle is in flight
        waits for it to finish, then runs its own.
        """
        async with self._cycle_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=datetime.now(timezone.utc))

        try:
            self._state = SyncState.FETCH_SOURCE
            documents = await self._source.fetch_all(self.space_key)
            report.fetched = len(documents)

            self._state = SyncState.FETCH_INDEX_STATE
            indexed = await self._store.latest_versions()

            self._state = SyncState.DIFF
            plan = plan_sync(documents, indexed)
            report.stale = len(plan.stale)
            report.current = len(plan.current)

            self._state = SyncState.APPLY_UPDATES
            for doc in plan.stale:
                try:
                    await self._indexer.index_document(doc, indexed.get(doc.id))
                except SyncError as exc:
                    logger.warning("Update of page %s v%d failed: %s", doc.id, doc.version, exc)
                    report.failed[doc.id] = f"{exc.kind}: {exc}"
                    continue
                except Exception as exc:
                    logger.exception("Unexpected error updating page %s v%d", doc.id, doc.version)
                    report.failed[doc.id] = f"unexpected_error: {type(exc).__name__}: {exc}"
                    continue
                report.updated.append(doc.id)

            self._state = SyncState.APPLY_DELETES
            if plan.orphaned:
                await self._store.delete_pages(plan.orphaned)
                report.deleted = list(plan.orphaned)

        except SyncError as exc:
            logger.error("Sync cycle aborted during %s: %s", self._state.value, exc)
            report.error = f"{exc.kind}: {exc}"

        report.finished_at = datetime.now(timezone.utc)
        self._last_report = report
        self._cycles_completed += 1
        self._state = SyncState.IDLE

        logger.info(
            "Sync cycle done: fetched=%d updated=%d failed=%d deleted=%d error=%s",
            report.fetched,
            len(report.updated),
            len(report.failed),
            len(report.deleted),
            report.error,
        )
        return report

    # ------------------------------------------------------------------
    # Loop & lifecycle
    # ------------------------------------------------------------------

    async def run_forever(self) -> None:
        """Run cycles until `stop()` is called."""
        logger.info("Sync reconciler started for space %s", self.space_key)

        while not self._stopping.is_set():
            self._wakeup.clear()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected error in sync cycle")
                self._state = SyncState.IDLE

            if self._stopping.is_set():
                break

            self._state = SyncState.SLEEP
            await self._sleep()

        self._state = SyncState.STOPPED
        logger.info("Sync reconciler stopped.")

    async def _sleep(self) -> None:
        """Wait for the interval, a wake-up request, or a stop."""
        stop_wait = asyncio.ensure_future(self._stopping.wait())
        wake_wait = asyncio.ensure_future(self._wakeup.wait())
        try:
            await asyncio.wait(
                {stop_wait, wake_wait},
                timeout=self.interval_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_wait.cancel()
            wake_wait.cancel()

    def start(self) -> asyncio.Task:
        """Spawn the background loop on the running event loop."""
        if self.running:
            return self._task
        self._stopping.clear()
        self._task = asyncio.create_task(self.run_forever(), name="sync-reconciler")
        return self._task

    def request_cycle(self) -> None:
        """Wake the loop so the next cycle starts without waiting."""
        self._wakeup.set()

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the loop. An in-flight cycle gets `timeout` seconds to finish
        before it is cancelled.
        """
        self._stopping.set()
        task = self._task
        if task is None:
            self._state = SyncState.STOPPED
            return

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Sync cycle did not finish within %.1fs; cancelling", timeout)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            self._state = SyncState.STOPPED
