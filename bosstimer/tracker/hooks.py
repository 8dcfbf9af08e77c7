"""Observability hooks.

Components publish a ``TrackerEvent`` for every delivery and persistence
outcome. Subscribers are plain callables; a failing subscriber is logged and
never disturbs the publisher.
"""
from collections import defaultdict
from typing import Any, Callable

from loguru import logger

from .clock import now_ms
from .types import HookPoint, TrackerEvent

logger = logger.bind(module="tracker.hooks")

HookCallback = Callable[[TrackerEvent], None]


class EventHooks:
    """Registry of callbacks per hook point."""

    def __init__(self):
        self._callbacks: dict[HookPoint, list[HookCallback]] = defaultdict(list)

    def on(self, point: HookPoint, callback: HookCallback) -> None:
        """Subscribe a callback to a hook point."""
        self._callbacks[point].append(callback)

    def emit(
        self,
        point: HookPoint,
        entity_id: str | None = None,
        **payload: Any,
    ) -> TrackerEvent:
        """Build an event and hand it to every subscriber of ``point``."""
        event = TrackerEvent(
            type=point,
            timestamp_ms=now_ms(),
            entity_id=entity_id,
            payload=payload,
        )
        for callback in list(self._callbacks[point]):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Hook {point.value} subscriber failed: {e}")
        return event
