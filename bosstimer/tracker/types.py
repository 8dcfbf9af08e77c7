"""Core type definitions for the tracker.

This module defines:
- Timer kinds and the composite timer key
- Notification kinds and rendering modes
- Status buckets
- Hook points and events for the observability hooks
- Error kinds surfaced to the command layer
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple


# ============== Timer Types ==============

class TimerKind(str, Enum):
    """Kind of pending timer armed for an entity."""
    WARNING = "warning"   # Fires a fixed lead time before the predicted time
    EVENT = "event"       # Fires at the predicted time


class TimerKey(NamedTuple):
    """Composite key of a pending timer."""
    entity_id: str
    kind: TimerKind


class ScheduleOutcome(str, Enum):
    """What a call to ``TimerScheduler.schedule`` ended up arming."""
    ARMED = "armed"             # Warning and event armed
    EVENT_ONLY = "event_only"   # Warning time already passed, event armed
    SUSPENDED = "suspended"     # Entity suspended, nothing armed
    ELAPSED = "elapsed"         # Predicted time not in the future, nothing armed


# ============== Notification Types ==============

class NotificationKind(str, Enum):
    """Kind of outbound notification."""
    WARNING = "warning"
    OCCURRED = "occurred"
    AUTO_CORRECTED = "auto_corrected"
    DIGEST = "digest"
    REPLY = "reply"


class RenderMode(str, Enum):
    """How the status view is presented."""
    LIVE = "live"           # One continuously edited aggregated board
    DISCRETE = "discrete"   # Per-event messages plus an hourly digest


# ============== Status Buckets ==============

class Bucket(str, Enum):
    """Urgency windows of the status view, in display order."""
    RECENT = "recent"
    DUE_SOON = "due_soon"
    WITHIN_30 = "within_30"
    WITHIN_60 = "within_60"
    WITHIN_120 = "within_120"
    LATER = "later"
    UNTRACKED = "untracked"


# ============== Errors ==============

class ErrorKind(str, Enum):
    """Failure reasons returned to the command layer."""
    UNKNOWN_ENTITY = "unknown_entity"
    NO_RECURRENCE = "no_recurrence"
    INVALID_TIME_INPUT = "invalid_time_input"
    OFFSET_OUT_OF_RANGE = "offset_out_of_range"
    ENTRY_NOT_FOUND = "entry_not_found"
    NOTIFICATION_DELIVERY_FAILED = "notification_delivery_failed"
    PERSISTENCE_WRITE_FAILED = "persistence_write_failed"


# ============== Event Types ==============

class HookPoint(str, Enum):
    """Hook points in the tracker lifecycle."""
    TIMER_ARMED = "timer_armed"
    TIMER_FIRED = "timer_fired"
    NOTIFY_SENT = "notify_sent"
    NOTIFY_FAILED = "notify_failed"
    PERSIST_OK = "persist_ok"
    PERSIST_FAILED = "persist_failed"
    AUTO_CORRECTED = "auto_corrected"


@dataclass
class TrackerEvent:
    """Event emitted to the observability hooks."""
    type: HookPoint
    timestamp_ms: int
    entity_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
