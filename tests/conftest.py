"""Shared fixtures for the tracker tests."""
import itertools
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from bosstimer.config import Settings
from bosstimer.services.tracker_service import BossTracker
from bosstimer.tracker.catalog import Catalog
from bosstimer.tracker.hooks import EventHooks
from bosstimer.tracker.store import EntryStore
from bosstimer.tracker.types import HookPoint, RenderMode

NOW = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeSink:
    """In-memory NotificationSink."""

    def __init__(self):
        self.messages: dict[str, str] = {}
        self.sent: list[str] = []
        self.edited: list[str] = []
        self.deleted: list[str] = []
        self.fail_sends = False
        self._ids = itertools.count(1)

    async def send(self, content: str) -> str:
        if self.fail_sends:
            raise RuntimeError("channel unavailable")
        handle = str(next(self._ids))
        self.messages[handle] = content
        self.sent.append(content)
        return handle

    async def edit(self, handle: str, content: str) -> bool:
        if handle not in self.messages:
            return False
        self.messages[handle] = content
        self.edited.append(handle)
        return True

    async def delete(self, handle: str) -> bool:
        self.deleted.append(handle)
        return self.messages.pop(handle, None) is not None

    async def fetch(self, handle: str):
        return self.messages.get(handle)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def hooks():
    return EventHooks()


@pytest.fixture
def events(hooks):
    """Every event published to ``hooks``, in order."""
    recorded = []
    for point in HookPoint:
        hooks.on(point, recorded.append)
    return recorded


@pytest.fixture
def catalog():
    return Catalog.from_records([
        {
            "id": "X",
            "locationZone": "Gludio",
            "locationArea": "Ruins of Agony",
            "recurrenceHours": 6,
            "hasHighValueDrop": True,
            "spawnChancePercent": 50,
            "level": 45,
            "drops": ["Blue Wolf Helmet", "Elven Crystal"],
        },
        {"id": "Y", "locationZone": "Dion", "locationArea": "Tanor Canyon", "recurrenceHours": 4},
        {"id": "Z", "locationZone": "Giran", "locationArea": "Dragon Valley"},
    ])


@pytest.fixture
def store(tmp_path, hooks):
    return EntryStore(tmp_path / "tracked_entries.json", hooks=hooks)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        catalog_path=tmp_path / "bosses.yaml",
        timezone="Asia/Manila",
        render_mode=RenderMode.DISCRETE,
        mention="",
        warning_ttl_seconds=0,
        occurred_ttl_seconds=0,
        auto_corrected_ttl_seconds=0,
        digest_ttl_seconds=0,
        reply_ttl_seconds=0,
    )


@pytest.fixture
def make_tracker(settings, catalog, store, sink, clock):
    """Build a BossTracker; keyword arguments override settings."""

    def factory(**overrides) -> BossTracker:
        for name, value in overrides.items():
            setattr(settings, name, value)
        return BossTracker(settings, catalog, store, sink, clock=clock)

    return factory
