"""Tests for the status aggregator."""
from datetime import timedelta

import pytest

from bosstimer.tracker.aggregator import Aggregator, chunk_lines
from bosstimer.tracker.models import TrackedEntry
from bosstimer.tracker.types import Bucket

from conftest import NOW


def entry_in(entity_id, minutes=0, seconds=0, suspended=False):
    predicted = NOW + timedelta(minutes=minutes, seconds=seconds)
    return TrackedEntry(entity_id, predicted - timedelta(hours=6), predicted, suspended)


@pytest.fixture
def aggregator(catalog, store, clock):
    return Aggregator(catalog, store, clock=clock)


class TestClassify:
    """Tests for bucket boundaries."""

    def test_twenty_five_minutes(self, aggregator):
        assert aggregator.classify(entry_in("X", 25), NOW) == Bucket.WITHIN_30

    @pytest.mark.parametrize("minutes,seconds,bucket", [
        (-10, 0, None),
        (-9, -59, Bucket.RECENT),
        (0, 0, Bucket.RECENT),
        (0, 1, Bucket.DUE_SOON),
        (10, 0, Bucket.DUE_SOON),
        (10, 1, Bucket.WITHIN_30),
        (30, 0, Bucket.WITHIN_30),
        (60, 0, Bucket.WITHIN_60),
        (120, 0, Bucket.WITHIN_120),
        (120, 1, Bucket.LATER),
        (60 * 24, 0, Bucket.LATER),
    ])
    def test_boundaries(self, aggregator, minutes, seconds, bucket):
        assert aggregator.classify(entry_in("X", minutes, seconds), NOW) == bucket

    def test_suspended_is_untracked(self, aggregator):
        assert aggregator.classify(entry_in("X", 25, suspended=True), NOW) == Bucket.UNTRACKED
        assert aggregator.classify(entry_in("X", -600, suspended=True), NOW) == Bucket.UNTRACKED


class TestRender:
    """Tests for rendering the status view."""

    def test_sorting(self, aggregator, store):
        store.upsert_many([
            entry_in("Recent-old", -8),
            entry_in("Recent-new", -2),
            entry_in("Later-far", 600),
            entry_in("Later-near", 200),
            entry_in("b-untracked", suspended=True),
            entry_in("A-untracked", suspended=True),
        ])

        view = aggregator.render(NOW)

        assert view.entity_ids(Bucket.RECENT) == ["Recent-new", "Recent-old"]
        assert view.entity_ids(Bucket.LATER) == ["Later-near", "Later-far"]
        assert view.entity_ids(Bucket.UNTRACKED) == ["A-untracked", "b-untracked"]

    def test_stale_entry_is_hidden(self, aggregator, store):
        store.upsert(entry_in("X", -45))

        view = aggregator.render(NOW)

        assert all(not view.buckets[bucket] for bucket in Bucket)
        assert view.tracked_count == 1

    def test_lines(self, aggregator, store):
        store.upsert_many([
            entry_in("X", 5),
            entry_in("Y", 25),
            entry_in("Z", suspended=True),
        ])

        view = aggregator.render(NOW)

        assert view.lines[0] == "**BOSS TIMERS** - **[2 Tracked | 1 Untracked]**"
        assert view.lines[1] == "**Last Update: <t:1704103200:t>**"
        assert "***Spawning within 10 minutes***" in view.lines
        assert "***Spawning within 30 minutes***" in view.lines
        assert "***Spawning later***" not in view.lines

        due_soon = [line for line in view.lines if line.startswith("🟢")]
        assert due_soon == [
            "🟢 **X** [**E**] (**<t:1704103500:R>**) [**<t:1704103500:t>**] "
            "at **Gludio - Ruins of Agony** | 🎯 Spawn Chance: **50%**"
        ]
        assert "🚫 **Z** (Giran - Dragon Valley)" in view.lines

    def test_empty_store(self, aggregator):
        view = aggregator.render(NOW)

        assert view.lines[0] == "**BOSS TIMERS** - **[0 Tracked | 0 Untracked]**"
        assert view.lines[-1] == "No bosses are currently being actively tracked for future spawns."

    def test_upcoming(self, aggregator, store):
        store.upsert_many([
            entry_in("X", 45),
            entry_in("Y", 5),
            entry_in("Z", 90),
            entry_in("Gone", -5),
            entry_in("Paused", 10, suspended=True),
        ])

        assert [e.entity_id for e in aggregator.upcoming(timedelta(hours=1), NOW)] == ["Y", "X"]
        assert [e.entity_id for e in aggregator.upcoming(timedelta(minutes=30), NOW)] == ["Y"]


class TestChunking:
    """Tests for chunk_lines."""

    def test_never_splits_lines(self):
        lines = [f"line {i:03d} " + "x" * 40 for i in range(100)]

        chunks = chunk_lines(lines, 500)

        assert len(chunks) > 1
        assert all(len(chunk) <= 500 for chunk in chunks)
        assert "\n".join(chunks) == "\n".join(lines)
        assert all(set(chunk.split("\n")) <= set(lines) for chunk in chunks)

    def test_short_input_is_one_chunk(self):
        assert chunk_lines(["a", "b"]) == ["a\nb"]

    def test_overlong_line_is_truncated(self):
        chunks = chunk_lines(["short", "y" * 30], 10)

        assert chunks == ["short", "yyyyyyyyy…"]

    def test_render_fits_discord_limit(self, aggregator, store):
        store.upsert_many([entry_in(f"Boss{i:03d}", 200 + i) for i in range(200)])

        chunks = aggregator.render(NOW).chunks()

        assert len(chunks) > 1
        assert all(len(chunk) <= 2000 for chunk in chunks)
