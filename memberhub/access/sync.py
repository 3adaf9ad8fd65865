"""
Sync coordinator.

Reconciles the denormalized secondary role store against the authority
sources for a batch of subjects. Each subject gets one live
SyncStatusRecord:

    idle ──trigger──▶ started ──ok──▶ completed
                         │              │
                         └─fail─▶ failed │
                                   │     │
             retry / trigger ◀─────┴─────┘  (back to started)

Subjects in a batch are reconciled independently; one failure never
blocks or fails the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from memberhub.access.errors import (
    AccessError,
    InvalidSyncTransition,
    SyncWriteFailure,
)
from memberhub.access.resolver import RoleResolver
from memberhub.config import get_settings
from memberhub.core.events import (
    SYNC_COMPLETED,
    SYNC_FAILED,
    SYNC_STARTED,
    Event,
    EventBus,
)
from memberhub.core.models import (
    Role,
    SecondaryStoreStatus,
    SyncStatus,
    SyncStatusRecord,
)
from memberhub.core.utils import utc_now
from memberhub.storage.base import AuthorityStore

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """
    Drives secondary-store reconciliation and keeps per-subject status.

    Usage:
        coordinator = SyncCoordinator(resolver, store)
        records = await coordinator.trigger({"user_1", "user_2"})
        await coordinator.join()
        coordinator.statuses()
    """

    def __init__(
        self,
        resolver: RoleResolver,
        store: AuthorityStore,
        event_bus: EventBus | None = None,
        max_concurrency: int | None = None,
    ):
        self.resolver = resolver
        self.store = store
        self.event_bus = event_bus
        self._records: dict[str, SyncStatusRecord] = {}
        self._tasks: set[asyncio.Task] = set()
        self._semaphore = asyncio.Semaphore(
            max_concurrency or get_settings().sync_max_concurrency
        )

    # =========================================================================
    # Triggering
    # =========================================================================

    async def trigger(self, subject_ids: Iterable[str]) -> list[SyncStatusRecord]:
        """
        Start reconciliation for each subject.

        Returns snapshots taken right after the move to `started`. A subject
        whose reconciliation is already running keeps running; its current
        record is returned and no second reconciliation is started.
        """
        snapshots: list[SyncStatusRecord] = []

        for subject_id in dict.fromkeys(subject_ids):
            record = self._records.setdefault(
                subject_id, SyncStatusRecord(subject_id=subject_id)
            )
            try:
                self._start(record)
            except InvalidSyncTransition as e:
                logger.info(f"Sync not re-triggered: {e.message}")
                snapshots.append(record.model_copy())
                continue

            snapshots.append(record.model_copy())
            await self._emit(SYNC_STARTED, record)

            task = asyncio.create_task(self._reconcile(subject_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return snapshots

    async def retry(self, subject_id: str) -> SyncStatusRecord:
        """
        Operator retry of a failed subject.

        Raises:
            InvalidSyncTransition: the subject is not in `failed`
        """
        record = self._records.get(subject_id)
        current = record.status if record else SyncStatus.IDLE
        if current != SyncStatus.FAILED:
            raise InvalidSyncTransition(subject_id, current, SyncStatus.STARTED)

        (snapshot,) = await self.trigger([subject_id])
        return snapshot

    def _start(self, record: SyncStatusRecord) -> None:
        previous = record.status
        record.transition(SyncStatus.STARTED)
        now = utc_now()
        # A run after `failed` continues the same attempt; anything else is a new run
        if previous != SyncStatus.FAILED or record.started_at is None:
            record.started_at = now
        record.last_attempted_at = now
        record.completed_at = None
        record.error_message = None

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def _reconcile(self, subject_id: str) -> None:
        record = self._records[subject_id]

        async with self._semaphore:
            try:
                role = await self.resolver.resolve(subject_id)
            except AccessError as e:
                await self._fail(record, e.message)
                return
            except Exception as e:
                logger.exception(f"Unexpected error resolving {subject_id} for sync")
                await self._fail(record, repr(e))
                return

            try:
                await self.store.upsert_secondary_role_record(subject_id, role)
            except Exception as e:
                failure = e if isinstance(e, SyncWriteFailure) else SyncWriteFailure(subject_id, repr(e))
                record.secondary_store_error = failure.message
                await self._fail(record, failure.message)
                return

        await self._complete(record, role)

    async def _complete(self, record: SyncStatusRecord, role: Role) -> None:
        record.transition(SyncStatus.COMPLETED)
        record.resolved_role = role
        record.completed_at = utc_now()
        record.secondary_store_status = SecondaryStoreStatus.READY
        record.secondary_store_error = None
        logger.info(f"Sync completed for {record.subject_id}: {role.value}")
        await self._emit(SYNC_COMPLETED, record)

    async def _fail(self, record: SyncStatusRecord, message: str) -> None:
        record.transition(SyncStatus.FAILED)
        record.error_message = message
        logger.warning(f"Sync failed for {record.subject_id}: {message}")
        await self._emit(SYNC_FAILED, record)

    async def _emit(self, event_type: str, record: SyncStatusRecord) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(Event(
            event_type=event_type,
            subject_id=record.subject_id,
            payload=record.model_dump(mode="json"),
        ))

    async def join(self) -> None:
        """Wait until every running reconciliation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Observer surface
    # =========================================================================

    def statuses(self) -> list[SyncStatusRecord]:
        """Snapshots of every record, oldest trigger first."""
        return [r.model_copy() for r in self._records.values()]

    def status(self, subject_id: str) -> SyncStatusRecord | None:
        record = self._records.get(subject_id)
        return record.model_copy() if record else None

    def summary(self) -> dict[str, int]:
        """Number of subjects in each status."""
        counts = {status.value: 0 for status in SyncStatus}
        for record in self._records.values():
            counts[record.status.value] += 1
        return counts
