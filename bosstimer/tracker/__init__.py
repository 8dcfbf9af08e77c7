"""Boss respawn tracker.

This package contains the tracker core:
- catalog.py: Boss definitions loaded at startup
- store.py: JSON persistence of tracked entries
- timers.py: Warning/spawn timers on APScheduler
- sweeper.py: Auto re-log of bosses nobody logged
- aggregator.py: Bucketed status view
- notifier.py: Outbound notifications
"""
from .aggregator import Aggregator, StatusView, chunk_lines
from .catalog import Catalog
from .errors import TrackerError
from .hooks import EventHooks
from .models import CatalogEntry, OpResult, SweepReport, TrackedEntry
from .notifier import NotificationSink, Notifier
from .store import EntryStore
from .sweeper import Sweeper
from .timers import TimerScheduler
from .types import (
    Bucket,
    ErrorKind,
    HookPoint,
    NotificationKind,
    RenderMode,
    ScheduleOutcome,
    TimerKey,
    TimerKind,
    TrackerEvent,
)

__all__ = [
    "Aggregator",
    "StatusView",
    "chunk_lines",
    "Catalog",
    "TrackerError",
    "EventHooks",
    "CatalogEntry",
    "OpResult",
    "SweepReport",
    "TrackedEntry",
    "NotificationSink",
    "Notifier",
    "EntryStore",
    "Sweeper",
    "TimerScheduler",
    "Bucket",
    "ErrorKind",
    "HookPoint",
    "NotificationKind",
    "RenderMode",
    "ScheduleOutcome",
    "TimerKey",
    "TimerKind",
    "TrackerEvent",
]
