"""Time helpers.

All timestamps inside the tracker are timezone-aware UTC datetimes. The
configured wall-clock timezone only matters when parsing ``HH:MM`` input and
when formatting dates for humans.
"""
import re
import time
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from .errors import InvalidTimeInput

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def utcnow() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)


def to_iso(dt: datetime) -> str:
    """Serialize to ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO-8601 string, got {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def unix_seconds(dt: datetime) -> int:
    return int(dt.timestamp())


def discord_timestamp(dt: datetime, style: str = "t") -> str:
    """Render a Discord dynamic timestamp (``t`` short time, ``R`` relative)."""
    return f"<t:{unix_seconds(dt)}:{style}>"


def parse_clock_time(text: str, now: datetime, tz: str) -> datetime:
    """Interpret a 24h ``HH:MM`` string as the latest such time not after ``now``.

    Args:
        text: Clock time such as ``"09:05"`` or ``"23:40"``
        now: Current aware datetime
        tz: IANA timezone the clock time is expressed in

    Returns:
        Aware UTC datetime

    Raises:
        InvalidTimeInput: if the text is not a valid 24h clock time
    """
    match = _CLOCK_RE.match(text.strip())
    if not match:
        raise InvalidTimeInput(f"'{text}' is not a HH:MM time (24h format)")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeInput(f"'{text}' is not a valid 24h time")

    zone = ZoneInfo(tz)
    local_now = now.astimezone(zone)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)

    # A kill cannot be reported before it happened
    if candidate > local_now:
        candidate -= timedelta(days=1)

    return candidate.astimezone(timezone.utc)


def duration_to_human(delta: timedelta) -> str:
    """Convert a duration to a compact description such as ``1d 2h 5m``."""
    seconds = int(abs(delta.total_seconds()))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if not parts:
        return "less than a minute"
    return " ".join(parts)


def format_local(dt: datetime, tz: str, fmt: str = "%m/%d/%Y %I:%M %p") -> str:
    """Format an aware datetime in the given timezone."""
    return dt.astimezone(ZoneInfo(tz)).strftime(fmt)
