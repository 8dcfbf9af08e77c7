"""Tests for the warning/spawn timer scheduler."""
from datetime import datetime, timedelta, timezone

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bosstimer.tracker.models import TrackedEntry
from bosstimer.tracker.notifier import Notifier
from bosstimer.tracker.timers import TimerScheduler
from bosstimer.tracker.types import HookPoint, ScheduleOutcome, TimerKey, TimerKind

from conftest import NOW

SPAWN = datetime(2024, 1, 1, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    # Never started: jobs stay pending and are fired through TimerScheduler
    return AsyncIOScheduler(timezone=timezone.utc)


@pytest.fixture
def notifier(sink, hooks):
    return Notifier(sink, hooks=hooks)


@pytest.fixture
def fired():
    return []


@pytest.fixture
def timers(scheduler, store, notifier, clock, hooks, fired):
    return TimerScheduler(
        scheduler, store, notifier, clock=clock, hooks=hooks,
        on_fire=lambda: fired.append(True),
    )


class TestSchedule:
    """Tests for arming and disarming."""

    def test_arms_warning_and_event(self, timers, catalog):
        outcome = timers.schedule(catalog.get("X"), SPAWN)

        assert outcome == ScheduleOutcome.ARMED
        assert timers.armed("x") == {
            TimerKind.WARNING: datetime(2024, 1, 1, 15, 50, tzinfo=timezone.utc),
            TimerKind.EVENT: SPAWN,
        }
        assert set(timers.pending()) == {
            TimerKey("x", TimerKind.WARNING),
            TimerKey("x", TimerKind.EVENT),
        }

    def test_reschedule_replaces_pair(self, timers, catalog, scheduler):
        boss = catalog.get("X")
        timers.schedule(boss, SPAWN)
        timers.schedule(boss, SPAWN + timedelta(hours=1))

        assert len(timers) == 2
        assert timers.armed("X")[TimerKind.EVENT] == SPAWN + timedelta(hours=1)
        assert len(scheduler.get_jobs()) == 2

    def test_suspended_is_not_armed(self, timers, catalog, store):
        store.upsert(TrackedEntry("X", NOW, SPAWN, suspended=True))

        assert timers.schedule(catalog.get("X"), SPAWN) == ScheduleOutcome.SUSPENDED
        assert timers.armed("X") == {}

    def test_suspend_disarms_existing_pair(self, timers, catalog, store, scheduler):
        boss = catalog.get("X")
        timers.schedule(boss, SPAWN)
        store.upsert(TrackedEntry("X", NOW, SPAWN, suspended=True))

        timers.schedule(boss, SPAWN)
        assert len(timers) == 0
        assert scheduler.get_jobs() == []

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(minutes=-5)])
    def test_elapsed_is_not_armed(self, timers, catalog, offset):
        outcome = timers.schedule(catalog.get("X"), NOW + offset)

        assert outcome == ScheduleOutcome.ELAPSED
        assert len(timers) == 0

    def test_event_only_inside_warning_lead(self, timers, catalog):
        outcome = timers.schedule(catalog.get("X"), NOW + timedelta(minutes=10))

        assert outcome == ScheduleOutcome.EVENT_ONLY
        assert list(timers.armed("X")) == [TimerKind.EVENT]

    def test_cancel(self, timers, catalog, scheduler):
        timers.schedule(catalog.get("X"), SPAWN)
        timers.schedule(catalog.get("Y"), SPAWN)

        assert timers.cancel("X") == 2
        assert timers.cancel("X") == 0
        assert len(scheduler.get_jobs()) == 2
        assert timers.cancel_all() == 2
        assert scheduler.get_jobs() == []

    def test_hooks(self, timers, catalog, events):
        timers.schedule(catalog.get("X"), SPAWN)

        armed = [e for e in events if e.type == HookPoint.TIMER_ARMED]
        assert [e.payload["kind"] for e in armed] == ["warning", "event"]
        assert armed[0].entity_id == "X"


class TestFire:
    """Tests for timer callbacks."""

    @pytest.mark.asyncio
    async def test_warning(self, timers, catalog, store, notifier, sink, fired):
        entry = TrackedEntry("X", NOW, SPAWN)
        store.upsert(entry)
        timers.schedule(catalog.get("X"), SPAWN)

        assert await timers.fire("X", TimerKind.WARNING) is True
        await notifier.drain()

        assert len(sink.sent) == 1
        assert "⚠️ **X [DROPS EPIC]** will spawn" in sink.sent[0]
        assert "Gludio - Ruins of Agony" in sink.sent[0]
        assert list(timers.armed("X")) == [TimerKind.EVENT]
        assert store.get("X") == entry
        assert fired == [True]

    @pytest.mark.asyncio
    async def test_event(self, timers, catalog, notifier, sink, scheduler):
        timers.schedule(catalog.get("Y"), SPAWN)

        assert await timers.fire("Y", TimerKind.EVENT) is True
        await notifier.drain()

        assert timers.armed("Y") == {}
        assert scheduler.get_jobs() == []
        assert sink.sent == ["🚨 **Y** has spawned at Dion - Tanor Canyon! [**<t:1704124800:t>**]"]

    @pytest.mark.asyncio
    async def test_stale_callback_is_discarded(self, timers, catalog, scheduler, notifier, sink):
        boss = catalog.get("X")
        timers.schedule(boss, SPAWN)
        stale = [job for job in scheduler.get_jobs() if job.name == "X:event"][0]

        timers.schedule(boss, SPAWN + timedelta(hours=1))
        await stale.func(*stale.args)
        await notifier.drain()

        assert sink.sent == []
        assert timers.armed("X")[TimerKind.EVENT] == SPAWN + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_fire_unarmed(self, timers):
        assert await timers.fire("X", TimerKind.EVENT) is False

    @pytest.mark.asyncio
    async def test_delivery_failure_is_reported(self, timers, catalog, notifier, sink, events):
        sink.fail_sends = True
        timers.schedule(catalog.get("X"), SPAWN)

        await timers.fire("X", TimerKind.EVENT)
        await notifier.drain()

        failures = [e for e in events if e.type == HookPoint.NOTIFY_FAILED]
        assert len(failures) == 1
        assert failures[0].payload["kind"] == "occurred"
        assert timers.armed("X") == {}
