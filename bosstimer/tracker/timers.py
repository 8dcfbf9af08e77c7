"""Per-boss warning and spawn timers.

Each boss has at most one armed pair of timers, keyed by
``TimerKey(entity_id, kind)``:
- warning: fires ``warning_lead`` before the predicted spawn
- event: fires at the predicted spawn and closes the cycle

``schedule()`` is the only way timers change. It always disarms first, so it
is safe to call repeatedly from commands and from the sweeper.
"""
import itertools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from .clock import utcnow
from .hooks import EventHooks
from .models import CatalogEntry
from .notifier import Notifier
from .store import EntryStore
from .types import HookPoint, ScheduleOutcome, TimerKey, TimerKind

logger = logger.bind(module="tracker.timers")


@dataclass
class ArmedTimer:
    """A timer currently registered with APScheduler."""
    boss: CatalogEntry
    kind: TimerKind
    fire_at: datetime
    predicted_at: datetime
    token: int
    job: Job


class TimerScheduler:
    """Owns every pending warning/event callback."""

    def __init__(
        self,
        scheduler: BaseScheduler,
        store: EntryStore,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
        warning_lead: timedelta = timedelta(minutes=10),
        hooks: EventHooks | None = None,
        on_fire: Callable[[], Any] | None = None,
    ):
        """Initialize the timer scheduler.

        Args:
            scheduler: APScheduler instance running on the service event loop
            store: Entry store, consulted for the suspension flag
            notifier: Where warning and spawn announcements go
            clock: Returns the current aware UTC time
            warning_lead: How long before the spawn the warning fires
            hooks: Observability hooks
            on_fire: Called after any timer fired (status refresh)
        """
        self.scheduler = scheduler
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.warning_lead = warning_lead
        self.hooks = hooks or EventHooks()
        self.on_fire = on_fire
        self._timers: dict[TimerKey, ArmedTimer] = {}
        self._tokens = itertools.count(1)

    @staticmethod
    def _key(entity_id: str, kind: TimerKind) -> TimerKey:
        return TimerKey(entity_id.lower(), kind)

    # ============== Arming ==============

    def schedule(
        self,
        boss: CatalogEntry,
        predicted_at: datetime,
        is_initial_load: bool = False,
    ) -> ScheduleOutcome:
        """(Re)arm the warning and event timers for a boss.

        Args:
            boss: Catalog definition of the boss
            predicted_at: Predicted spawn time
            is_initial_load: True while re-arming stored entries at startup,
                where stale spawn times are expected and not worth logging

        Returns:
            What ended up armed
        """
        self.cancel(boss.id)

        entry = self.store.get(boss.id)
        if entry is not None and entry.suspended:
            if not is_initial_load:
                logger.info(f"[Skipping Scheduling] {boss.id} is untracked")
            return ScheduleOutcome.SUSPENDED

        now = self.clock()
        if predicted_at <= now:
            if not is_initial_load:
                logger.info(
                    f"[Skipping Timer] {boss.id} spawn time {predicted_at.isoformat()} "
                    f"is in the past, not scheduling"
                )
            return ScheduleOutcome.ELAPSED

        outcome = ScheduleOutcome.EVENT_ONLY
        warn_at = predicted_at - self.warning_lead
        if warn_at > now:
            self._arm(boss, TimerKind.WARNING, warn_at, predicted_at)
            outcome = ScheduleOutcome.ARMED
        else:
            logger.debug(f"[Skipped] {boss.id} warning (time already passed)")

        self._arm(boss, TimerKind.EVENT, predicted_at, predicted_at)
        return outcome

    def _arm(
        self,
        boss: CatalogEntry,
        kind: TimerKind,
        fire_at: datetime,
        predicted_at: datetime,
    ) -> None:
        key = self._key(boss.id, kind)
        token = next(self._tokens)
        job = self.scheduler.add_job(
            self._on_timer,
            trigger=DateTrigger(run_date=fire_at, timezone=timezone.utc),
            args=[key, token],
            name=f"{boss.id}:{kind.value}",
            misfire_grace_time=None,
            coalesce=True,
        )
        self._timers[key] = ArmedTimer(
            boss=boss,
            kind=kind,
            fire_at=fire_at,
            predicted_at=predicted_at,
            token=token,
            job=job,
        )
        self.hooks.emit(HookPoint.TIMER_ARMED, boss.id, kind=kind.value, fire_at=fire_at.isoformat())
        logger.info(f"[Scheduled] {boss.id} {kind.value} for {fire_at.isoformat()}")

    # ============== Disarming ==============

    def cancel(self, entity_id: str) -> int:
        """Disarm both timers of a boss.

        Returns:
            Number of timers removed
        """
        removed = 0
        for kind in TimerKind:
            armed = self._timers.pop(self._key(entity_id, kind), None)
            if armed is None:
                continue
            self._remove_job(armed)
            removed += 1
            logger.debug(f"[Cleared Timer] {armed.boss.id} {kind.value}")
        return removed

    def cancel_all(self) -> int:
        """Disarm every timer."""
        for armed in self._timers.values():
            self._remove_job(armed)
        removed = len(self._timers)
        self._timers = {}
        return removed

    @staticmethod
    def _remove_job(armed: ArmedTimer) -> None:
        try:
            armed.job.remove()
        except JobLookupError:
            # Date jobs leave the job store once they have run
            logger.debug(f"Job for {armed.boss.id} {armed.kind.value} already gone")

    # ============== Firing ==============

    async def _on_timer(self, key: TimerKey, token: int) -> None:
        """APScheduler callback for both timer kinds."""
        armed = self._timers.get(key)
        if armed is None or armed.token != token:
            # Replaced or disarmed after APScheduler had already picked it up
            logger.debug(f"Discarding stale {key.kind.value} timer for {key.entity_id}")
            return

        self.hooks.emit(HookPoint.TIMER_FIRED, armed.boss.id, kind=key.kind.value)

        if key.kind is TimerKind.WARNING:
            self._remove_job(self._timers.pop(key))
            self.notifier.warning(armed.boss, armed.predicted_at)
            logger.info(f"[Warning] {armed.boss.id} spawns at {armed.predicted_at.isoformat()}")
        else:
            self.cancel(key.entity_id)
            self.notifier.occurred(armed.boss, armed.predicted_at)
            logger.info(f"[Announced] {armed.boss.id} spawned")

        if self.on_fire is not None:
            try:
                self.on_fire()
            except Exception as e:
                logger.error(f"Refresh after {key.kind.value} timer failed: {e}")

    async def fire(self, entity_id: str, kind: TimerKind) -> bool:
        """Run an armed timer's callback now.

        Returns:
            False if no such timer is armed
        """
        key = self._key(entity_id, kind)
        armed = self._timers.get(key)
        if armed is None:
            return False
        await self._on_timer(key, armed.token)
        return True

    # ============== Queries ==============

    def armed(self, entity_id: str) -> dict[TimerKind, datetime]:
        """Fire times of the timers armed for one boss."""
        result = {}
        for kind in TimerKind:
            armed = self._timers.get(self._key(entity_id, kind))
            if armed is not None:
                result[kind] = armed.fire_at
        return result

    def pending(self) -> dict[TimerKey, datetime]:
        """Fire times of every armed timer."""
        return {key: armed.fire_at for key, armed in self._timers.items()}

    def __len__(self) -> int:
        return len(self._timers)
