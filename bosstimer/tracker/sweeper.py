"""Reconciliation sweep.

A boss nobody re-logged is assumed to have spawned on time and been killed
right away: once its predicted spawn is more than ``grace`` in the past, the
entry is rewritten with the old prediction as the new kill time.
"""
from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from .catalog import Catalog
from .clock import utcnow
from .errors import TrackerError
from .hooks import EventHooks
from .models import SweepReport, TrackedEntry
from .notifier import Notifier
from .store import EntryStore
from .timers import TimerScheduler
from .types import HookPoint

logger = logger.bind(module="tracker.sweeper")


class Sweeper:
    """Finds overdue entries and rolls them forward one respawn cycle."""

    def __init__(
        self,
        store: EntryStore,
        catalog: Catalog,
        timers: TimerScheduler,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
        grace: timedelta = timedelta(minutes=10),
        hooks: EventHooks | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.timers = timers
        self.notifier = notifier
        self.clock = clock
        self.grace = grace
        self.hooks = hooks or EventHooks()

    def is_overdue(self, entry: TrackedEntry, now: datetime) -> bool:
        return not entry.suspended and now > entry.predicted_at + self.grace

    def sweep(self, now: datetime | None = None) -> SweepReport:
        """Run one pass over the store.

        All rewrites of a pass are persisted with a single write; nothing is
        written when no entry changed.
        """
        now = now or self.clock()
        report = SweepReport(started_at=now)
        logger.debug("[Auto Re-log] Running check for past-due bosses")

        for entry in self.store.list_all():
            if not self.is_overdue(entry, now):
                continue

            try:
                boss = self.catalog.require_recurrence(entry.entity_id)
            except TrackerError as e:
                logger.error(f"[Auto Re-log] {e.reason}, skipping {entry.entity_id}")
                report.skipped[entry.entity_id] = e.kind
                continue

            corrected = TrackedEntry(
                entity_id=boss.id,
                observed_at=entry.predicted_at,
                predicted_at=entry.predicted_at + boss.recurrence,
                suspended=False,
            )
            self.store.upsert(corrected, persist=False)
            report.corrected.append(corrected)
            logger.info(
                f"[Auto Re-log] Re-logged {boss.id}: {entry.predicted_at.isoformat()} "
                f"-> {corrected.predicted_at.isoformat()}"
            )

            self.timers.schedule(boss, corrected.predicted_at)
            self.notifier.auto_corrected(boss, corrected)
            self.hooks.emit(
                HookPoint.AUTO_CORRECTED, boss.id,
                previous=entry.predicted_at.isoformat(),
                predicted_at=corrected.predicted_at.isoformat(),
            )

        if report.changed:
            report.persisted = self.store.flush()
            logger.info(f"[Auto Re-log] Saved {len(report.corrected)} re-logged entries")
        return report
