"""Boss tracker service.

Wires the tracker components together on one event loop:
- EntryStore holds the entries, TimerScheduler arms warning/spawn timers
- Sweeper runs on an APScheduler interval job
- Aggregator renders the status, LiveStatusBoard keeps it posted (live mode)
- An hourly digest replaces the board in discrete mode

Every mutating operation returns an ``OpResult``; tracker errors never
escape to the caller.
"""
import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from ..config import Settings
from ..tracker.aggregator import Aggregator, StatusView
from ..tracker.catalog import Catalog
from ..tracker.clock import utcnow
from ..tracker.errors import EntryNotFound, InvalidTimeInput, OffsetOutOfRange, TrackerError
from ..tracker.hooks import EventHooks
from ..tracker.models import OpResult, SweepReport, TrackedEntry
from ..tracker.notifier import NotificationSink, Notifier
from ..tracker.store import EntryStore
from ..tracker.sweeper import Sweeper
from ..tracker.timers import TimerScheduler
from ..tracker.types import NotificationKind, RenderMode
from .live_board import LiveStatusBoard

logger = logger.bind(module="services.tracker")

SWEEP_JOB_ID = "bosstimer-sweep"
DIGEST_JOB_ID = "bosstimer-digest"


class BossTracker:
    """Entry point for every tracker operation."""

    def __init__(
        self,
        settings: Settings,
        catalog: Catalog,
        store: EntryStore,
        sink: NotificationSink,
        clock: Callable[[], datetime] = utcnow,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        """Initialize the tracker.

        Args:
            settings: Service settings
            catalog: Boss definitions
            store: Entry store (its hooks are shared by every component)
            sink: Channel for announcements and the live board
            clock: Returns the current aware UTC time
            scheduler: APScheduler instance; a UTC AsyncIOScheduler by default
        """
        self.settings = settings
        self.catalog = catalog
        self.store = store
        self.clock = clock
        self.hooks: EventHooks = store.hooks

        self.scheduler = scheduler or AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={"misfire_grace_time": None, "coalesce": True},
        )

        self.notifier = Notifier(
            sink,
            hooks=self.hooks,
            mention=settings.mention,
            ttls={
                NotificationKind.WARNING: settings.warning_ttl_seconds,
                NotificationKind.OCCURRED: settings.occurred_ttl_seconds,
                NotificationKind.AUTO_CORRECTED: settings.auto_corrected_ttl_seconds,
                NotificationKind.DIGEST: settings.digest_ttl_seconds,
                NotificationKind.REPLY: settings.reply_ttl_seconds,
            },
        )
        self.timers = TimerScheduler(
            self.scheduler,
            store,
            self.notifier,
            clock=clock,
            warning_lead=timedelta(minutes=settings.warning_lead_minutes),
            hooks=self.hooks,
            on_fire=self.request_refresh,
        )
        self.sweeper = Sweeper(
            store,
            catalog,
            self.timers,
            self.notifier,
            clock=clock,
            grace=timedelta(minutes=settings.grace_minutes),
            hooks=self.hooks,
        )
        self.aggregator = Aggregator(
            catalog,
            store,
            clock=clock,
            recent_window=timedelta(minutes=settings.recent_window_minutes),
        )

        self.board: Optional[LiveStatusBoard] = None
        if settings.render_mode is RenderMode.LIVE:
            self.board = LiveStatusBoard(sink, settings.board_state_path)

        self._refreshes: Set[asyncio.Task] = set()

    # ============== Lifecycle ==============

    async def start(self):
        """Load state, re-arm stored entries and start the background jobs."""
        self.store.load()
        if self.board is not None:
            self.board.load()

        armed = self.rearm_all()
        logger.info(f"Re-armed timers for {armed} tracked bosses")

        self.scheduler.start()
        self.scheduler.add_job(
            self._sweep_job,
            trigger=IntervalTrigger(
                minutes=self.settings.sweep_interval_minutes,
                start_date=self.clock() + timedelta(seconds=self.settings.sweep_initial_delay_seconds),
                timezone=timezone.utc,
            ),
            id=SWEEP_JOB_ID,
            name="Auto re-log sweep",
            replace_existing=True,
        )
        if self.settings.render_mode is RenderMode.DISCRETE:
            self.scheduler.add_job(
                self._digest_job,
                trigger=CronTrigger(minute=0, timezone=timezone.utc),
                id=DIGEST_JOB_ID,
                name="Hourly boss summary",
                replace_existing=True,
            )

        self.request_refresh()
        logger.info(
            f"Boss tracker started ({len(self.store)} entries, "
            f"{self.settings.render_mode.value} mode)"
        )

    async def stop(self):
        """Stop background jobs and flush pending deliveries."""
        self.timers.cancel_all()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)
        await self.notifier.close()
        logger.info("Boss tracker stopped")

    def rearm_all(self) -> int:
        """Arm timers for every stored, non-suspended entry.

        Returns:
            Number of bosses that ended up with at least one timer
        """
        armed = 0
        for entry in self.store.list_active():
            boss = self.catalog.get(entry.entity_id)
            if boss is None:
                logger.warning(f"Stored entry {entry.entity_id} is not in the catalog, not scheduling")
                continue
            self.timers.schedule(boss, entry.predicted_at, is_initial_load=True)
            if self.timers.armed(boss.id):
                armed += 1
        return armed

    # ============== Mutating Operations ==============

    def log_observed(self, entity_id: str, observed_at: Optional[datetime] = None) -> OpResult:
        """Record a kill and predict the next spawn.

        Args:
            entity_id: Boss id (case-insensitive)
            observed_at: Aware kill time; now if omitted. A naive value
                is rejected with INVALID_TIME_INPUT

        Returns:
            OpResult with the new entry and, when the boss was already
            tracked, the time between its previous predicted spawn and the kill
        """
        try:
            boss = self.catalog.require_recurrence(entity_id)
        except TrackerError as e:
            return OpResult.failure(e)

        if observed_at is None:
            observed_at = self.clock()
        elif observed_at.tzinfo is None or observed_at.utcoffset() is None:
            return OpResult.failure(InvalidTimeInput(
                f"Kill time {observed_at.isoformat()} has no timezone"
            ))
        else:
            observed_at = observed_at.astimezone(timezone.utc)
        previous = self.store.get(boss.id)
        entry = TrackedEntry(
            entity_id=boss.id,
            observed_at=observed_at,
            predicted_at=observed_at + boss.recurrence,
            suspended=False,
        )
        persisted = self.store.upsert(entry)
        self.timers.schedule(boss, entry.predicted_at)
        self.request_refresh()

        logger.info(f"[Logged] {boss.id} killed at {observed_at.isoformat()}")
        return OpResult(
            ok=True,
            entry=entry,
            affected=1,
            persisted=persisted,
            since_previous=(observed_at - previous.predicted_at) if previous else None,
        )

    def adjust_offset(self, entity_id: str, delta_minutes: int) -> OpResult:
        """Shift a tracked boss's predicted spawn and resume tracking it."""
        limit = self.settings.max_offset_minutes
        if delta_minutes == 0 or abs(delta_minutes) > limit:
            return OpResult.failure(OffsetOutOfRange(
                f"Offset must be between -{limit} and {limit} minutes (cannot be 0)"
            ))

        entry = self.store.get(entity_id)
        if entry is None:
            return OpResult.failure(EntryNotFound(f"No tracked entry found for {entity_id}"))

        updated = replace(
            entry,
            predicted_at=entry.predicted_at + timedelta(minutes=delta_minutes),
            suspended=False,
        )
        persisted = self.store.upsert(updated)

        boss = self.catalog.get(entry.entity_id)
        if boss is not None:
            self.timers.schedule(boss, updated.predicted_at)
        else:
            logger.warning(f"{entry.entity_id} is not in the catalog, offset saved without timers")
        self.request_refresh()

        logger.info(f"[Offset] {entry.entity_id} {delta_minutes:+d} min -> {updated.predicted_at.isoformat()}")
        return OpResult(ok=True, entry=updated, affected=1, persisted=persisted)

    def set_suspended(self, entity_id: Optional[str] = None) -> OpResult:
        """Stop tracking one boss, or every boss when ``entity_id`` is None.

        Suspending everything also moves each newly suspended prediction
        ``suspend_sentinel_hours`` into the past. ``affected`` counts the
        entries that were not suspended before.
        """
        if entity_id is None:
            return self._suspend_all()

        entry = self.store.get(entity_id)
        if entry is None:
            return OpResult.failure(EntryNotFound(f"{entity_id} is not in the tracked list"))
        if entry.suspended:
            return OpResult(ok=True, entry=entry, affected=0)

        updated = replace(entry, suspended=True)
        persisted = self.store.upsert(updated)
        self.timers.cancel(entry.entity_id)
        self.request_refresh()

        logger.info(f"[Untracked] {entry.entity_id}")
        return OpResult(ok=True, entry=updated, affected=1, persisted=persisted)

    def _suspend_all(self) -> OpResult:
        sentinel = self.clock() - timedelta(hours=self.settings.suspend_sentinel_hours)
        updated = [
            replace(entry, suspended=True, predicted_at=sentinel)
            for entry in self.store.list_active()
        ]

        persisted = True
        if updated:
            persisted = self.store.upsert_many(updated)
        for entry in updated:
            self.timers.cancel(entry.entity_id)
        self.request_refresh()

        logger.info(f"[Maintenance] Suspended {len(updated)} entries")
        return OpResult(ok=True, affected=len(updated), persisted=persisted)

    def clear_all(self) -> OpResult:
        """Forget every entry and disarm every timer."""
        count = len(self.store)
        persisted = self.store.clear_all()
        self.timers.cancel_all()
        self.request_refresh()

        logger.info(f"[Cleared] {count} tracked entries")
        return OpResult(ok=True, affected=count, persisted=persisted)

    # ============== Status ==============

    def render_status(self, now: Optional[datetime] = None) -> StatusView:
        return self.aggregator.render(now)

    def upcoming(self, minutes: int, now: Optional[datetime] = None) -> List[TrackedEntry]:
        """Active entries spawning within the next ``minutes``."""
        return self.aggregator.upcoming(timedelta(minutes=minutes), now)

    async def refresh(self) -> None:
        """Re-render the status and push it to the live board."""
        if self.board is None:
            return
        view = self.render_status()
        await self.board.publish(view.chunks(self.settings.chunk_size))

    def request_refresh(self) -> Optional[asyncio.Task]:
        """Schedule a board refresh without waiting for it."""
        if self.board is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, skipping board refresh")
            return None

        task = loop.create_task(self._safe_refresh())
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
        return task

    async def _safe_refresh(self):
        try:
            await self.refresh()
        except Exception as e:
            logger.error(f"Live board refresh failed: {e}")

    # ============== Background Jobs ==============

    def run_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Run one reconciliation pass and refresh the board."""
        report = self.sweeper.sweep(now)
        self.request_refresh()
        return report

    async def _sweep_job(self):
        try:
            self.run_sweep()
        except Exception as e:
            logger.error(f"[Auto Re-log] Sweep failed: {e}")

    def send_digest(self, now: Optional[datetime] = None) -> Optional[asyncio.Task]:
        """Announce the bosses spawning within the next hour."""
        now = now or self.clock()
        entries = self.aggregator.upcoming(timedelta(hours=1), now)
        lines = [self.aggregator.upcoming_line(entry) for entry in entries]
        logger.info(f"[Digest] {len(lines)} bosses due within the hour")
        return self.notifier.digest(lines, now)

    async def _digest_job(self):
        self.send_digest()
