"""Status view: tracked bosses grouped by how soon they spawn."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from .catalog import Catalog
from .clock import discord_timestamp, utcnow
from .models import CatalogEntry, TrackedEntry
from .store import EntryStore
from .types import Bucket

DEFAULT_CHUNK_SIZE = 2000


@dataclass(frozen=True)
class BucketWindow:
    """A window ``(lower, upper]`` of ``predicted_at - now``; None is unbounded."""
    bucket: Bucket
    title: str
    icon: str
    lower: timedelta | None
    upper: timedelta | None
    newest_first: bool = False

    def contains(self, delta: timedelta) -> bool:
        if self.lower is not None and delta <= self.lower:
            return False
        if self.upper is not None and delta > self.upper:
            return False
        return True


def bucket_windows(recent_window: timedelta = timedelta(minutes=10)) -> tuple[BucketWindow, ...]:
    """The ordered, non-overlapping urgency windows."""
    minutes = lambda m: timedelta(minutes=m)  # noqa: E731
    return (
        BucketWindow(Bucket.RECENT, "Recently Spawned", "🚨", -recent_window, minutes(0), newest_first=True),
        BucketWindow(Bucket.DUE_SOON, "Spawning within 10 minutes", "🟢", minutes(0), minutes(10)),
        BucketWindow(Bucket.WITHIN_30, "Spawning within 30 minutes", "⏳", minutes(10), minutes(30)),
        BucketWindow(Bucket.WITHIN_60, "Spawning within 1 hour", "⏰", minutes(30), minutes(60)),
        BucketWindow(Bucket.WITHIN_120, "Spawning within 2 hours", "🕑", minutes(60), minutes(120)),
        BucketWindow(Bucket.LATER, "Spawning later", "🗓️", minutes(120), None),
    )


def chunk_lines(lines: list[str], max_len: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Join lines into messages of at most ``max_len`` characters.

    A line is never split across two chunks; a single line longer than
    ``max_len`` is truncated.
    """
    chunks: list[str] = []
    current = ""
    for line in lines:
        if len(line) > max_len:
            line = line[:max_len - 1] + "…"
        if current and len(current) + 1 + len(line) > max_len:
            chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line
    if current or not chunks:
        chunks.append(current)
    return chunks


@dataclass
class StatusView:
    """A rendered snapshot of the store."""
    generated_at: datetime
    buckets: dict[Bucket, list[TrackedEntry]] = field(default_factory=dict)
    lines: list[str] = field(default_factory=list)
    tracked_count: int = 0

    @property
    def untracked_count(self) -> int:
        return len(self.buckets.get(Bucket.UNTRACKED, []))

    def entity_ids(self, bucket: Bucket) -> list[str]:
        return [e.entity_id for e in self.buckets.get(bucket, [])]

    def chunks(self, max_len: int = DEFAULT_CHUNK_SIZE) -> list[str]:
        return chunk_lines(self.lines, max_len)


class Aggregator:
    """Builds ``StatusView``s from store snapshots. Holds no state of its own."""

    def __init__(
        self,
        catalog: Catalog,
        store: EntryStore,
        clock: Callable[[], datetime] = utcnow,
        recent_window: timedelta = timedelta(minutes=10),
    ):
        self.catalog = catalog
        self.store = store
        self.clock = clock
        self.windows = bucket_windows(recent_window)

    def classify(self, entry: TrackedEntry, now: datetime) -> Bucket | None:
        """Bucket of an entry, or None if it spawned before the recent window."""
        if entry.suspended:
            return Bucket.UNTRACKED
        delta = entry.predicted_at - now
        for window in self.windows:
            if window.contains(delta):
                return window.bucket
        return None

    def partition(self, entries: list[TrackedEntry], now: datetime) -> dict[Bucket, list[TrackedEntry]]:
        buckets: dict[Bucket, list[TrackedEntry]] = {bucket: [] for bucket in Bucket}
        for entry in entries:
            bucket = self.classify(entry, now)
            if bucket is not None:
                buckets[bucket].append(entry)

        for window in self.windows:
            buckets[window.bucket].sort(key=lambda e: e.predicted_at, reverse=window.newest_first)
        buckets[Bucket.UNTRACKED].sort(key=lambda e: e.key)
        return buckets

    def render(self, now: datetime | None = None) -> StatusView:
        """Render every entry in the store."""
        now = now or self.clock()
        entries = self.store.list_all()
        buckets = self.partition(entries, now)
        tracked = sum(1 for e in entries if not e.suspended)
        untracked = buckets[Bucket.UNTRACKED]

        lines = [
            f"**BOSS TIMERS** - **[{tracked} Tracked | {len(untracked)} Untracked]**",
            f"**Last Update: {discord_timestamp(now)}**",
        ]
        for window in self.windows:
            if not buckets[window.bucket]:
                continue
            lines.append("---")
            lines.append(f"***{window.title}***")
            lines.extend(self._line(window, entry) for entry in buckets[window.bucket])

        if untracked:
            lines.append("---")
            lines.append(f"**UNTRACKED** ({len(untracked)})")
            lines.extend(self._untracked_line(entry) for entry in untracked)

        if not entries:
            lines.append("---")
            lines.append("No bosses are currently being actively tracked for future spawns.")

        return StatusView(generated_at=now, buckets=buckets, lines=lines, tracked_count=tracked)

    def upcoming(self, within: timedelta, now: datetime | None = None) -> list[TrackedEntry]:
        """Active entries spawning in ``(now, now + within]``, soonest first."""
        now = now or self.clock()
        due = [
            e for e in self.store.list_active()
            if timedelta(0) < e.predicted_at - now <= within
        ]
        due.sort(key=lambda e: e.predicted_at)
        return due

    # ============== Line Formatting ==============

    def _name(self, entry: TrackedEntry) -> tuple[str, CatalogEntry | None]:
        boss = self.catalog.get(entry.entity_id)
        return (boss.id if boss else entry.entity_id), boss

    def _line(self, window: BucketWindow, entry: TrackedEntry) -> str:
        name, boss = self._name(entry)
        relative = discord_timestamp(entry.predicted_at, "R")
        epic = " [**E**]" if boss and boss.has_high_value_drop else ""

        if window.bucket is Bucket.RECENT:
            time_text = f" (**{relative}**)"
        else:
            time_text = f" (**{relative}**) [**{discord_timestamp(entry.predicted_at)}**]"

        where = ""
        if boss and window.bucket in (Bucket.RECENT, Bucket.DUE_SOON):
            where = f" at **{boss.location}**"
            if boss.spawn_chance_percent is not None:
                where += f" | 🎯 Spawn Chance: **{boss.spawn_chance_percent:g}%**"

        return f"{window.icon} **{name}**{epic}{time_text}{where}"

    def upcoming_line(self, entry: TrackedEntry) -> str:
        """One line of the ``!bosshour`` listing and the hourly digest."""
        name, boss = self._name(entry)
        text = (
            f"**{name}** **{discord_timestamp(entry.predicted_at, 'R')}** "
            f"at **{discord_timestamp(entry.predicted_at)}**"
        )
        if boss:
            text += f" ({boss.location})"
            if boss.has_high_value_drop:
                text += " [DROPS EPIC]"
            if boss.spawn_chance_percent is not None:
                text += f", 🎯 {boss.spawn_chance_percent:g}% chance"
        return text

    def _untracked_line(self, entry: TrackedEntry) -> str:
        name, boss = self._name(entry)
        if boss is None:
            return f"🚫 **{name}**"
        return f"🚫 **{name}** ({boss.location})"
