"""Status and analysis-run mutations over the durable release store."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar
from uuid import uuid4

from core import (
    AnalysisRun,
    AnalysisRunStatus,
    ReleaseEvent,
    ReleaseState,
    ReleaseStatus,
    StoreDocument,
)
from core.dates import to_epoch_ms
from storage import ReleaseStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_run_id(now: datetime) -> str:
    return f"run-{to_epoch_ms(now)}-{uuid4().hex[:8]}"


class ReleaseStateStore:
    """
    Typed mutations over a ReleaseStore.

    Each method is one ``update`` call, so each commits atomically and sees
    the freshest document.
    """

    def __init__(self, store: ReleaseStore) -> None:
        self.store = store

    async def read(self) -> StoreDocument:
        return await self.store.read()

    async def upsert_events(self, events: List[ReleaseEvent], now: datetime) -> int:
        """Merge by id keeping discoveredAt; create a `new` status for unseen ids. Returns the new count."""
        created = 0

        def mutate(doc: StoreDocument) -> None:
            nonlocal created
            for incoming in events:
                existing = doc.find_event(incoming.id)
                if existing is not None:
                    merged = incoming.model_copy(update={"discovered_at": existing.discovered_at, "updated_at": now})
                    doc.release_events[doc.release_events.index(existing)] = merged
                else:
                    doc.release_events.append(incoming)
                if doc.find_status(incoming.id) is None:
                    doc.release_status.append(
                        ReleaseStatus(event_id=incoming.id, state=ReleaseState.NEW, retry_count=0, updated_at=now)
                    )
                    created += 1

        await self.store.update(mutate, now=now)
        return created

    async def list_due(self, now: datetime) -> List[ReleaseStatus]:
        doc = await self.store.read()
        due = [s for s in doc.release_status if not s.state.is_terminal and s.is_due(now)]
        return sorted(due, key=lambda s: s.updated_at)

    async def with_fresh_status(
        self,
        event_id: str,
        now: datetime,
        fn: Callable[[ReleaseStatus, ReleaseEvent], Awaitable[T]],
    ) -> Optional[T]:
        """Run ``fn`` on the latest status and event; skip when missing, terminal or not due."""
        doc = await self.store.read()
        status = doc.find_status(event_id)
        event = doc.find_event(event_id)
        if status is None or event is None or status.state.is_terminal or not status.is_due(now):
            logger.debug("skip event=%s (stale, terminal or not due)", event_id)
            return None
        return await fn(status, event)

    async def ensure_run_record(self, status: ReleaseStatus, now: datetime) -> str:
        if status.current_run_id:
            return status.current_run_id
        run_id = new_run_id(now)
        assigned = run_id

        def mutate(doc: StoreDocument) -> None:
            nonlocal assigned
            row = doc.find_status(status.event_id)
            if row is None:
                return
            if row.current_run_id:
                assigned = row.current_run_id
                return
            row.current_run_id = run_id
            row.updated_at = now
            doc.analysis_runs.append(
                AnalysisRun(run_id=run_id, event_id=row.event_id, started_at=now, updated_at=now)
            )

        await self.store.update(mutate, now=now)
        return assigned

    async def update_run_state(
        self,
        run_id: str,
        now: datetime,
        *,
        status: Optional[AnalysisRunStatus] = None,
        report_path: Optional[str] = None,
        report_hash: Optional[str] = None,
        published_channel: Optional[str] = None,
        error: Optional[str] = None,
        ended: bool = False,
    ) -> None:
        def mutate(doc: StoreDocument) -> None:
            run = doc.find_run(run_id)
            if run is None:
                return
            run.updated_at = now
            if status is not None:
                run.status = status
            if report_path:
                run.report_path = report_path
            if report_hash:
                run.report_hash = report_hash
            if published_channel:
                run.published_channel = published_channel
            if error:
                run.error = error
            if ended and run.ended_at is None:
                run.ended_at = now

        await self.store.update(mutate, now=now)

    async def mark_state_advanced(self, event_id: str, state: ReleaseState, now: datetime) -> None:
        def mutate(doc: StoreDocument) -> None:
            row = doc.find_status(event_id)
            if row is None:
                return
            row.state = state
            row.retry_count = 0
            row.next_attempt_at = None
            row.last_error = None
            row.updated_at = now
            if state is ReleaseState.PUBLISHED:
                row.published_at = now

        await self.store.update(mutate, now=now)

    async def record_failure(
        self,
        event_id: str,
        now: datetime,
        *,
        retry_count: int,
        next_attempt_at: Optional[datetime],
        last_error: str,
        terminal: bool,
    ) -> Tuple[bool, Optional[str]]:
        """Persist a failed attempt; returns (applied, current run id)."""
        applied = False
        run_id: Optional[str] = None

        def mutate(doc: StoreDocument) -> None:
            nonlocal applied, run_id
            row = doc.find_status(event_id)
            if row is None:
                return
            applied = True
            run_id = row.current_run_id
            row.retry_count = retry_count
            row.last_error = last_error
            row.updated_at = now
            if terminal:
                row.state = ReleaseState.FAILED_TERMINAL
                row.next_attempt_at = None
            else:
                row.next_attempt_at = next_attempt_at

        await self.store.update(mutate, now=now)
        return applied, run_id
