"""Chat command router.

Parses ``!``-prefixed messages and turns them into tracker calls. Every
handler returns the reply text; unknown commands are ignored.
"""
import re
from typing import Callable, Dict, List, Optional

from loguru import logger

from ..channels.base import Channel, Message
from ..tracker.clock import discord_timestamp, duration_to_human, format_local, parse_clock_time
from ..tracker.errors import TrackerError
from ..tracker.models import OpResult
from .tracker_service import BossTracker

logger = logger.bind(module="services.commands")

COMMAND_PREFIX = "!"

# Alias -> canonical command name
ALIASES: Dict[str, str] = {
    "help": "help", "h": "help",
    "bosskilled": "bosskilled", "bk": "bosskilled",
    "bossoffset": "bossoffset", "bo": "bossoffset",
    "listboss": "listboss", "lb": "listboss",
    "trackedboss": "trackedboss", "tb": "trackedboss",
    "trackedbossinfo": "trackedbossinfo", "tbi": "trackedbossinfo",
    "untrackedboss": "untrackedboss", "ub": "untrackedboss",
    "bosshour": "bosshour", "bh": "bosshour",
    "boss30": "boss30", "b30": "boss30",
    "bossinfo": "bossinfo", "bi": "bossinfo",
    "boss": "boss", "b": "boss",
    "status": "status", "s": "status",
    "maintenancemode": "maintenancemode", "mm": "maintenancemode",
    "mmb": "mmb",
    "clearlogs": "clearlogs",
}

_KILL_RE = re.compile(r"^(.+)\s+(\d{1,2}:\d{2})$")
_OFFSET_RE = re.compile(r"^(.+)\s+(-?\d+)$")

PERSIST_WARNING = "\n⚠️ Could not save tracker data, the change only lives in memory until the next save."


class CommandRouter:
    """Maps chat commands onto ``BossTracker`` operations."""

    def __init__(self, tracker: BossTracker):
        self.tracker = tracker
        self.settings = tracker.settings
        self._handlers: Dict[str, Callable[[str, bool], str]] = {
            "help": self._help,
            "bosskilled": self._boss_killed,
            "bossoffset": self._boss_offset,
            "listboss": self._list_boss,
            "trackedboss": self._tracked_boss,
            "trackedbossinfo": self._tracked_boss_info,
            "untrackedboss": self._untracked_boss,
            "bosshour": lambda args, admin: self._upcoming(60),
            "boss30": lambda args, admin: self._upcoming(30),
            "bossinfo": self._boss_info,
            "boss": self._boss_details,
            "status": self._status,
            "maintenancemode": self._maintenance_mode,
            "mmb": self._suspend_one,
            "clearlogs": self._clear_logs,
        }

    @staticmethod
    def parse(text: str) -> Optional[tuple]:
        """Split a message into ``(command, args)``; None if it is not a command."""
        text = (text or "").strip()
        if not text.startswith(COMMAND_PREFIX):
            return None
        head, _, rest = text[len(COMMAND_PREFIX):].partition(" ")
        command = ALIASES.get(head.lower())
        if command is None:
            return None
        return command, rest.strip()

    def dispatch(self, text: str, is_admin: bool = False) -> Optional[str]:
        """Run a command and return its reply, or None if ``text`` is not a command."""
        parsed = self.parse(text)
        if parsed is None:
            return None

        command, args = parsed
        logger.debug(f"Command {command} args={args!r}")
        try:
            return self._handlers[command](args, is_admin)
        except TrackerError as e:
            return f"❌ {e.reason}"

    async def handle(self, message: Message, channel: Channel) -> Optional[str]:
        """Answer a chat message on the channel it came from."""
        reply = self.dispatch(message.content, bool(message.metadata.get("is_admin")))
        if reply is None:
            return None
        await channel.send(message.channel_id, reply, ttl=self.settings.reply_ttl_seconds)
        if self.settings.purge_commands:
            await channel.delete_message(message.channel_id, message.message_id)
        return reply

    # ============== Helpers ==============

    @staticmethod
    def _failure(result: OpResult) -> str:
        return f"❌ {result.reason}"

    @staticmethod
    def _persist_note(result: OpResult) -> str:
        return "" if result.persisted else PERSIST_WARNING

    def _local(self, dt) -> str:
        return format_local(dt, self.settings.timezone)

    # ============== Handlers ==============

    def _help(self, args: str, is_admin: bool) -> str:
        return (
            "🛠️ **Command List:**\n"
            "!bosskilled <name> <HH:MM> or !bk <name> <HH:MM> - logs the boss kill time and predicts the "
            f"next spawn (24h format, {self.settings.timezone})\n"
            "!bossoffset <name> <minutes> or !bo <name> <minutes> - shifts the predicted spawn time "
            f"(-{self.settings.max_offset_minutes} to {self.settings.max_offset_minutes}, not 0)\n"
            "!trackedboss or !tb - shows list of future boss spawns\n"
            f"!trackedbossinfo or !tbi - same list in {self.settings.secondary_timezone or 'a second timezone'}\n"
            "!untrackedboss or !ub - shows bosses that are not being tracked\n"
            "!listboss or !lb - shows list of bosses\n"
            "!bosshour or !bh - shows bosses spawning within an hour\n"
            "!boss30 or !b30 - shows bosses spawning within 30 minutes\n"
            "!bossinfo <name> or !bi <name> - shows the last kill and next spawn of a boss\n"
            "!boss <name> or !b <name> - shows boss information including dropped items\n"
            "!status or !s - shows the boss timer board\n"
            "!mmb <name> - stops tracking one boss\n"
            "!clearlogs - clears every tracked boss\n"
            "!mm or !maintenancemode - sets all tracked bosses to untracked (auto re-log skipped). "
            "**(Admin only)**"
        )

    def _boss_killed(self, args: str, is_admin: bool) -> str:
        match = _KILL_RE.match(args)
        if not match:
            return "❌ Format: !bosskilled <name> <HH:MM> 24H Format"

        name, time_text = match.group(1).strip(), match.group(2)
        killed_at = parse_clock_time(time_text, self.tracker.clock(), self.settings.timezone)
        result = self.tracker.log_observed(name, killed_at)
        if not result.ok:
            return self._failure(result)

        entry = result.entry
        reply = (
            f"✅ **{entry.entity_id}** logged at **{time_text}**. "
            f"New spawn: **{discord_timestamp(entry.predicted_at)}**!"
        )
        if result.since_previous is not None:
            reply += f"\n⏱️ **Time to Kill**: {duration_to_human(result.since_previous)}"
        reply += f"\n❗**Double Check**: Make sure it's `24h format` **{self.settings.timezone}**"
        return reply + self._persist_note(result)

    def _boss_offset(self, args: str, is_admin: bool) -> str:
        match = _OFFSET_RE.match(args)
        if not match:
            return "❌ Format: `!bossoffset <bossname> <minutes>`. Example: `!bo Felis -10`"

        name, minutes = match.group(1).strip(), int(match.group(2))
        result = self.tracker.adjust_offset(name, minutes)
        if not result.ok:
            return self._failure(result)

        action = "added" if minutes > 0 else "subtracted"
        return (
            f"⏱️ **{result.entry.entity_id}**'s spawn time has been adjusted. "
            f"**{abs(minutes)} minutes** have been **{action}**.\n"
            f"New Spawn Time: **{discord_timestamp(result.predicted_at)}**"
        ) + self._persist_note(result)

    def _list_boss(self, args: str, is_admin: bool) -> str:
        lines = [
            f"📍 {boss.id} ({boss.location}) — Respawn: "
            f"{f'{boss.recurrence_hours:g}' if boss.recurrence_hours else '-'}h"
            for boss in self.tracker.catalog
        ]
        return "\n".join(lines) or "No bosses in the catalog."

    def _future_lines(self, when: Callable) -> List[str]:
        now = self.tracker.clock()
        entries = sorted(
            (e for e in self.tracker.store.list_active() if e.predicted_at > now),
            key=lambda e: e.predicted_at,
        )
        lines: List[str] = []
        for entry in entries:
            boss = self.tracker.catalog.get(entry.entity_id)
            where = f" ({boss.location})" if boss else ""
            lines.append(f"🕒 **{entry.entity_id}**{where} — **{when(entry.predicted_at)}**")
        return lines

    def _tracked_boss(self, args: str, is_admin: bool) -> str:
        lines = self._future_lines(discord_timestamp)
        return "\n".join(lines) or "No bosses are currently being actively tracked for future spawns."

    def _tracked_boss_info(self, args: str, is_admin: bool) -> str:
        tz = self.settings.secondary_timezone
        if not tz:
            return "❌ No secondary timezone is configured."
        if not len(self.tracker.store):
            return "No tracked bosses."

        lines = self._future_lines(lambda dt: format_local(dt, tz, "%I:%M %p"))
        body = "\n".join(lines) or "No bosses are set to respawn in the future."
        return f"**Spawn times in {tz}**\n\n{body}"

    def _untracked_boss(self, args: str, is_admin: bool) -> str:
        if not len(self.tracker.store):
            return "No tracked boss records found."

        entries = sorted(self.tracker.store.list_suspended(), key=lambda e: e.key)
        if not entries:
            return "No bosses are currently untracked."

        lines = ["🔎 **Untracked Bosses**", ""]
        for entry in entries:
            boss = self.tracker.catalog.get(entry.entity_id)
            if boss is None:
                lines.append(f"💀 **{entry.entity_id}**")
                continue
            every = f"{boss.recurrence_hours:g} hours" if boss.recurrence_hours else "-"
            lines.append(f"💀 **{boss.id}** ({boss.location}) | Spawns every: **{every}**")
        return "\n".join(lines)

    def _upcoming(self, minutes: int) -> str:
        lines = []
        for entry in self.tracker.upcoming(minutes):
            boss = self.tracker.catalog.get(entry.entity_id)
            where = f" ({boss.location})" if boss else ""
            lines.append(
                f"⏱️ **{entry.entity_id}** {discord_timestamp(entry.predicted_at, 'R')} "
                f"at **{discord_timestamp(entry.predicted_at)}**{where}"
            )
        return "\n".join(lines) or f"No bosses spawning in the next {minutes} minutes."

    def _boss_info(self, args: str, is_admin: bool) -> str:
        if not args:
            return "❌ Usage: !bossinfo <bossname>"

        entry = self.tracker.store.get(args)
        if entry is None:
            return f"❌ No tracked info found for boss: {args}. Use !bosskilled to track it first."
        boss = self.tracker.catalog.require(args)

        respawn = f"{boss.recurrence_hours:g} hours" if boss.recurrence_hours else "-"
        status = " (untracked)" if entry.suspended else ""
        return (
            f"ℹ️ **{boss.id} Info:**{status}\n"
            f"Killed At: {self._local(entry.observed_at)} ({self.settings.timezone})\n"
            f"Respawn At: {self._local(entry.predicted_at)} ({self.settings.timezone})\n"
            f"Zone: {boss.location_zone}\nLocation: {boss.location_area}\nRespawn Time: {respawn}"
        )

    def _boss_details(self, args: str, is_admin: bool) -> str:
        if not args:
            return "Please provide a boss name, e.g. `!boss Chertuba`"

        boss = self.tracker.catalog.get(args)
        if boss is None:
            return f'Boss "{args}" not found. Try using !listboss to see all trackable bosses.'

        drops = "\n".join(f"• {item}" for item in boss.drops) or "• -"
        respawn = f"{boss.recurrence_hours:g}h" if boss.recurrence_hours else "-"
        return (
            f"🔱 Boss Info: {boss.id} 🔱\n"
            f"📍 Zone: {boss.location_zone}\n"
            f"📌 Location: {boss.location_area}\n"
            f"🎯 Level: {boss.level if boss.level is not None else '-'}\n"
            f"⏳ Respawn Time: {respawn}\n"
            f"\n🎁 Dropped Items:\n{drops}"
        )

    def _status(self, args: str, is_admin: bool) -> str:
        return "\n".join(self.tracker.render_status().lines)

    def _maintenance_mode(self, args: str, is_admin: bool) -> str:
        if not is_admin:
            return "❌ You do not have permission to use this command."

        result = self.tracker.set_suspended(None)
        if not result.affected:
            return "ℹ️ All tracked boss entries are already untracked."
        return (
            f"🛠️ **Maintenance Mode Activated:** Untracked **{result.affected}** boss entries. "
            "Auto re-logging will now skip these bosses."
        ) + self._persist_note(result)

    def _suspend_one(self, args: str, is_admin: bool) -> str:
        if not args:
            return "❌ Usage: !mmb <bossname>"

        result = self.tracker.set_suspended(args)
        if not result.ok:
            return (
                f'❌ Boss "**{args}**" not found in tracked list. '
                "Make sure the name is correct or log it first."
            )
        if not result.affected:
            return f"ℹ️ **{result.entry.entity_id}** is already in untracked mode."
        return (
            f"❓ **{result.entry.entity_id}** has been put into **untracked mode**. "
            "Auto re-logging will now skip this boss."
        ) + self._persist_note(result)

    def _clear_logs(self, args: str, is_admin: bool) -> str:
        result = self.tracker.clear_all()
        return "✅ All tracked boss logs have been cleared." + self._persist_note(result)
