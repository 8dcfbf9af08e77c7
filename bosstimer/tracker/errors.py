"""Tracker exceptions.

Every exception carries an ``ErrorKind`` so the service layer can turn it
into a typed failure result instead of letting it cross the command boundary.
"""
from .types import ErrorKind


class TrackerError(Exception):
    """Base class for tracker failures."""
    kind: ErrorKind

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UnknownEntity(TrackerError):
    kind = ErrorKind.UNKNOWN_ENTITY


class NoRecurrenceDefined(TrackerError):
    kind = ErrorKind.NO_RECURRENCE


class InvalidTimeInput(TrackerError):
    kind = ErrorKind.INVALID_TIME_INPUT


class OffsetOutOfRange(TrackerError):
    kind = ErrorKind.OFFSET_OUT_OF_RANGE


class EntryNotFound(TrackerError):
    kind = ErrorKind.ENTRY_NOT_FOUND


class NotificationDeliveryFailed(TrackerError):
    kind = ErrorKind.NOTIFICATION_DELIVERY_FAILED


class PersistenceWriteFailed(TrackerError):
    kind = ErrorKind.PERSISTENCE_WRITE_FAILED
