"""
Tombstone Reaper for SchoolSync.

Soft-deleted records are kept in the recycle bin for a retention period
(30 days by default) and then purged. A purge is a remote delete followed
by a local drop; the local drop only happens when the remote store has
confirmed, so a failed purge never loses data and is simply retried on the
next run.

Invariants:
    - A record is a candidate iff is_deleted and now - deleted_at >= retention
    - Records that are not soft-deleted are never purged
    - Remote failures are reported in the ReapReport, never raised

How to change safely:
    - Keep remote-before-local ordering for every purge
    - The reaper shares the Entity Store with the coordinator; never cache
      record snapshots across awaits beyond the candidate id list
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from .gateway.gateway import PersistenceGateway
from .notify import Notifier, Severity
from .store.entity_store import EntityStore, RemoveRecords
from .store.records import Collection, Record, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


@dataclass
class ReapReport:
    """Outcome of a single reaper run.

    Attributes:
        purged: Ids removed per collection
        failed: Remote error text per collection that could not be purged
    """

    purged: dict[Collection, list[str]] = field(default_factory=dict)
    failed: dict[Collection, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(ids) for ids in self.purged.values())


class TombstoneReaper:
    """Purges soft-deleted records older than the retention period.

    Example:
        >>> reaper = TombstoneReaper(store, gateway, notifier)
        >>> report = await reaper.run()
        >>> report.total
        3
    """

    def __init__(
        self,
        store: EntityStore,
        gateway: PersistenceGateway,
        notifier: Notifier,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.notifier = notifier
        self.retention_days = retention_days
        self.clock = clock

        self._running = False
        self._run_count = 0

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    def is_candidate(self, record: Record, now: datetime | None = None) -> bool:
        if not record.is_deleted or record.deleted_at is None:
            return False
        now = now or self.clock()
        return now - record.deleted_at >= self.retention

    def days_until_purge(self, record: Record, now: datetime | None = None) -> int | None:
        """Whole days left in the recycle bin, rounded up; None if not deleted."""
        if not record.is_deleted or record.deleted_at is None:
            return None
        now = now or self.clock()
        remaining = self.retention - (now - record.deleted_at)
        return max(0, math.ceil(remaining / timedelta(days=1)))

    def candidates(self, collection: Collection, now: datetime | None = None) -> list[str]:
        now = now or self.clock()
        return [r.id for r in self.store.get(collection) if self.is_candidate(r, now)]

    async def run(self, now: datetime | None = None) -> ReapReport:
        """Purge every expired tombstone once.

        Collections are processed independently: a failure in one does not
        stop the others.
        """
        now = now or self.clock()
        report = ReapReport()

        for collection in Collection:
            ids = self.candidates(collection, now)
            if not ids:
                continue

            result = await self.gateway.delete_by_ids(collection, ids)
            if not result.success:
                report.failed[collection] = result.error or "Unknown remote error"
                logger.warning(
                    f"Auto-cleanup of '{collection.value}' failed: {result.error}",
                    extra={"collection": collection.value, "count": len(ids)},
                )
                continue

            self.store.apply(collection, RemoveRecords.of(ids))
            report.purged[collection] = ids
            logger.info(
                "Purged expired records",
                extra={"collection": collection.value, "count": len(ids)},
            )

        self._run_count += 1
        if report.total > 0:
            self.notifier(
                f"Auto-cleanup: removed {report.total} items older than "
                f"{self.retention_days} days",
                Severity.INFO,
            )
        return report

    async def start(self, interval_seconds: float) -> None:
        """Run the reaper every interval until stopped."""
        if self._running:
            logger.warning("Tombstone reaper already running")
            return

        self._running = True
        logger.info(
            "Starting tombstone reaper",
            extra={
                "interval_seconds": interval_seconds,
                "retention_days": self.retention_days,
            },
        )

        try:
            while self._running:
                await asyncio.sleep(interval_seconds)
                if not self._running:
                    break
                await self.run()
        except asyncio.CancelledError:
            logger.info("Tombstone reaper cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the reaper loop after the current run."""
        self._running = False
        logger.info("Stopping tombstone reaper")

    @property
    def stats(self) -> dict[str, object]:
        return {"running": self._running, "run_count": self._run_count}
