"""Tests for the auto re-log sweep."""
import json
from datetime import timedelta, timezone

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bosstimer.tracker.models import TrackedEntry
from bosstimer.tracker.notifier import Notifier
from bosstimer.tracker.sweeper import Sweeper
from bosstimer.tracker.timers import TimerScheduler
from bosstimer.tracker.types import ErrorKind, HookPoint, TimerKind

from conftest import NOW


@pytest.fixture
def notifier(sink, hooks):
    return Notifier(sink, hooks=hooks)


@pytest.fixture
def timers(store, notifier, clock, hooks):
    return TimerScheduler(AsyncIOScheduler(timezone=timezone.utc), store, notifier, clock=clock, hooks=hooks)


@pytest.fixture
def sweeper(store, catalog, timers, notifier, clock, hooks):
    return Sweeper(store, catalog, timers, notifier, clock=clock, hooks=hooks)


def overdue(entity_id, minutes, suspended=False):
    predicted = NOW - timedelta(minutes=minutes)
    return TrackedEntry(entity_id, predicted - timedelta(hours=4), predicted, suspended)


class TestSweeper:
    """Tests for Sweeper."""

    @pytest.mark.asyncio
    async def test_corrects_overdue_entry(self, sweeper, store, timers, notifier, sink, events):
        old = overdue("Y", 12)
        store.upsert(old)

        report = sweeper.sweep()
        await notifier.drain()

        corrected = store.get("Y")
        assert corrected.observed_at == old.predicted_at
        assert corrected.predicted_at == old.predicted_at + timedelta(hours=4)
        assert corrected.suspended is False
        assert report.corrected == [corrected]
        assert report.persisted is True

        assert timers.armed("Y")[TimerKind.EVENT] == corrected.predicted_at
        assert len(sink.sent) == 1
        assert "🔄 **AUTO RE-LOG:** **Y** was not logged." in sink.sent[0]
        assert "!bk Y <HH:MM>" in sink.sent[0]
        assert any(e.type == HookPoint.AUTO_CORRECTED and e.entity_id == "Y" for e in events)

        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data[0]["predictedAt"] == "2024-01-01T13:48:00.000Z"

    def test_fifteen_minutes_overdue(self, sweeper, store, timers):
        store.upsert(overdue("X", 15))

        report = sweeper.sweep()

        assert [e.entity_id for e in report.corrected] == ["X"]
        assert store.get("X").predicted_at == NOW - timedelta(minutes=15) + timedelta(hours=6)
        assert len(timers.armed("X")) == 2

    @pytest.mark.parametrize("minutes", [0, 5, 10])
    def test_within_grace_is_untouched(self, sweeper, store, minutes):
        entry = overdue("X", minutes)
        store.upsert(entry)

        report = sweeper.sweep()

        assert not report.changed
        assert store.get("X") == entry

    def test_suspended_is_ignored(self, sweeper, store, timers):
        entry = overdue("X", 60 * 48, suspended=True)
        store.upsert(entry)

        report = sweeper.sweep()

        assert not report.changed
        assert store.get("X") == entry
        assert len(timers) == 0

    def test_skips_unknown_and_no_recurrence(self, sweeper, store):
        store.upsert_many([overdue("Ghost", 30), overdue("Z", 30), overdue("X", 30)])

        report = sweeper.sweep()

        assert report.skipped == {
            "Ghost": ErrorKind.UNKNOWN_ENTITY,
            "Z": ErrorKind.NO_RECURRENCE,
        }
        assert [e.entity_id for e in report.corrected] == ["X"]
        assert store.get("Z").predicted_at == NOW - timedelta(minutes=30)

    def test_single_write_per_pass(self, sweeper, store, events):
        store.upsert_many([overdue("X", 20), overdue("Y", 40)], persist=False)

        report = sweeper.sweep()

        assert len(report.corrected) == 2
        assert len([e for e in events if e.type == HookPoint.PERSIST_OK]) == 1

    def test_no_write_when_nothing_changed(self, sweeper, store, events):
        store.upsert(overdue("X", -30), persist=False)

        report = sweeper.sweep()

        assert not report.changed
        assert not store.path.exists()
        assert events == []

    def test_advances_one_cycle_per_pass(self, sweeper, store):
        # Overdue by more than a full respawn: each pass moves one cycle forward
        store.upsert(overdue("Y", 60 * 9))

        sweeper.sweep()
        first = store.get("Y").predicted_at
        sweeper.sweep()

        assert first == NOW - timedelta(hours=5)
        assert store.get("Y").predicted_at == NOW - timedelta(hours=1)
