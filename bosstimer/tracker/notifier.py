"""Outbound notifications.

The tracker only knows the ``NotificationSink`` protocol. Deliveries are
fire-and-forget tasks on the running event loop: the turn that triggered
them never waits, and a failed delivery is logged and published to the
hooks without being retried.
"""
import asyncio
from datetime import datetime
from typing import Iterable, Protocol

from loguru import logger

from .clock import discord_timestamp
from .errors import NotificationDeliveryFailed
from .hooks import EventHooks
from .models import CatalogEntry, TrackedEntry
from .types import HookPoint, NotificationKind

logger = logger.bind(module="tracker.notifier")


# ============== Protocol Definitions ==============

class NotificationSink(Protocol):
    """Protocol for the chat channel announcements go to."""

    async def send(self, content: str) -> str:
        """Post a message and return its handle."""
        ...

    async def edit(self, handle: str, content: str) -> bool:
        """Replace a message's content; False if it no longer exists."""
        ...

    async def delete(self, handle: str) -> bool:
        """Delete a message; False if it no longer exists."""
        ...

    async def fetch(self, handle: str) -> str | None:
        """Get a message's content, or None if it no longer exists."""
        ...


# ============== Message Formatting ==============

def _epic(boss: CatalogEntry, marker: str = " [DROPS EPIC]") -> str:
    return marker if boss.has_high_value_drop else ""


def _chance(boss: CatalogEntry, prefix: str = "\n🎯 Spawn Chance: ") -> str:
    if boss.spawn_chance_percent is None:
        return ""
    return f"{prefix}**{boss.spawn_chance_percent:g}%**"


def format_warning(boss: CatalogEntry, predicted_at: datetime, mention: str = "") -> str:
    return (
        f"{mention} ⚠️ **{boss.id}{_epic(boss)}** will spawn "
        f"**{discord_timestamp(predicted_at, 'R')}** at {boss.location}!\n"
        f"⏰ Spawn Time: **{discord_timestamp(predicted_at)}**{_chance(boss)}"
    ).strip()


def format_occurred(boss: CatalogEntry, predicted_at: datetime, mention: str = "") -> str:
    return (
        f"{mention} 🚨 **{boss.id}{_epic(boss)}** has spawned at {boss.location}! "
        f"[**{discord_timestamp(predicted_at)}**]{_chance(boss)}"
    ).strip()


def format_auto_corrected(boss: CatalogEntry, entry: TrackedEntry, mention: str = "") -> str:
    return (
        f"{mention} 🔄 **AUTO RE-LOG:** **{boss.id}** was not logged. "
        f"New spawn: **{discord_timestamp(entry.predicted_at)}** at {boss.location}. "
        f"Please use `!bk {boss.id} <HH:MM>` to fix the time."
    ).strip()


def format_digest(lines: Iterable[str], now: datetime, mention: str = "") -> str:
    lines = list(lines)
    header = f"{mention} 🔔 **Hourly Boss Summary ({discord_timestamp(now)}):**".strip()
    if not lines:
        return f"{header}\n\nNo bosses are scheduled to spawn in the next hour."
    body = "\n".join(f"• {line}" for line in lines)
    return f"{header}\n\nHere are the bosses that will spawn within the next hour:\n\n{body}"


# ============== Notifier ==============

class Notifier:
    """Formats tracker events and delivers them to a sink in the background."""

    def __init__(
        self,
        sink: NotificationSink,
        hooks: EventHooks | None = None,
        mention: str = "",
        ttls: dict[NotificationKind, int] | None = None,
    ):
        """Initialize notifier.

        Args:
            sink: Channel the messages are posted to
            hooks: Observability hooks for delivery outcomes
            mention: Prefix added to announcements (e.g. ``@everyone``)
            ttls: Seconds each kind of message stays visible; 0 or missing keeps it
        """
        self.sink = sink
        self.hooks = hooks or EventHooks()
        self.mention = mention
        self.ttls = dict(ttls or {})
        self._pending: set[asyncio.Task] = set()
        self._expiring: set[asyncio.Task] = set()

    # ============== Announcements ==============

    def warning(self, boss: CatalogEntry, predicted_at: datetime) -> asyncio.Task | None:
        return self.send(
            NotificationKind.WARNING,
            format_warning(boss, predicted_at, self.mention),
            entity_id=boss.id,
        )

    def occurred(self, boss: CatalogEntry, predicted_at: datetime) -> asyncio.Task | None:
        return self.send(
            NotificationKind.OCCURRED,
            format_occurred(boss, predicted_at, self.mention),
            entity_id=boss.id,
        )

    def auto_corrected(self, boss: CatalogEntry, entry: TrackedEntry) -> asyncio.Task | None:
        return self.send(
            NotificationKind.AUTO_CORRECTED,
            format_auto_corrected(boss, entry, self.mention),
            entity_id=boss.id,
        )

    def digest(self, lines: Iterable[str], now: datetime) -> asyncio.Task | None:
        return self.send(NotificationKind.DIGEST, format_digest(lines, now, self.mention))

    # ============== Delivery ==============

    def send(
        self,
        kind: NotificationKind,
        content: str,
        entity_id: str | None = None,
        ttl: int | None = None,
    ) -> asyncio.Task | None:
        """Schedule a delivery on the running loop without waiting for it.

        Returns:
            The delivery task, or None when no event loop is running
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, dropped {kind.value} notification")
            return None

        task = loop.create_task(self.deliver(kind, content, entity_id=entity_id, ttl=ttl))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def deliver(
        self,
        kind: NotificationKind,
        content: str,
        entity_id: str | None = None,
        ttl: int | None = None,
    ) -> str | None:
        """Post a message now; never raises.

        Returns:
            The message handle, or None if delivery failed
        """
        try:
            handle = await self.sink.send(content)
        except Exception as e:
            error = NotificationDeliveryFailed(f"{kind.value} notification failed: {e}")
            logger.error(error.reason)
            self.hooks.emit(
                HookPoint.NOTIFY_FAILED, entity_id,
                kind=kind.value, error=error.reason,
            )
            return None

        self.hooks.emit(HookPoint.NOTIFY_SENT, entity_id, kind=kind.value, handle=handle)

        ttl = self.ttls.get(kind, 0) if ttl is None else ttl
        if ttl and handle:
            task = asyncio.get_running_loop().create_task(self._expire(handle, ttl))
            self._expiring.add(task)
            task.add_done_callback(self._expiring.discard)
        return handle

    async def _expire(self, handle: str, ttl: int) -> None:
        """Delete a message once its visibility duration is over."""
        await asyncio.sleep(ttl)
        try:
            await self.sink.delete(handle)
        except Exception as e:
            logger.warning(f"Could not delete message {handle}: {e}")

    async def drain(self) -> None:
        """Wait for all in-flight deliveries (not expirations)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Finish deliveries and drop pending expirations."""
        await self.drain()
        for task in list(self._expiring):
            task.cancel()
        if self._expiring:
            await asyncio.gather(*list(self._expiring), return_exceptions=True)
