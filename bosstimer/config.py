"""Settings for the boss timer service."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from dotenv import load_dotenv

from .tracker.types import RenderMode


def _env_list(name: str) -> List[str]:
    return [v.strip() for v in os.getenv(name, "").split(",") if v.strip()]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes")


@dataclass
class Settings:
    """Service settings.

    Timing constants below are the values the tracker has always used in
    production; they are exposed so a deployment can tune them.
    """

    debug: bool = False
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # Storage
    data_dir: Path = field(default_factory=lambda: Path.home() / ".bosstimer" / "data")
    catalog_path: Path = field(default_factory=lambda: Path("data/bosses.yaml"))

    # Wall clock used for HH:MM input and human-readable dates
    timezone: str = "Asia/Manila"
    # Second wall clock for !trackedbossinfo (empty disables it)
    secondary_timezone: str = "Asia/Jakarta"

    # Discord
    discord_bot_token: Optional[str] = None
    discord_announce_channel_id: Optional[str] = None
    discord_allowed_users: List[str] = field(default_factory=list)
    discord_allowed_guilds: List[str] = field(default_factory=list)
    purge_commands: bool = False

    # Presentation
    render_mode: RenderMode = RenderMode.LIVE
    mention: str = "@everyone"
    chunk_size: int = 2000

    # Timing (minutes unless noted)
    warning_lead_minutes: int = 10
    grace_minutes: int = 10
    recent_window_minutes: int = 10
    sweep_interval_minutes: int = 5
    sweep_initial_delay_seconds: int = 10
    suspend_sentinel_hours: int = 48
    max_offset_minutes: int = 600

    # How long announcements stay visible, in seconds (0 keeps them)
    warning_ttl_seconds: int = 600
    occurred_ttl_seconds: int = 300
    auto_corrected_ttl_seconds: int = 60
    digest_ttl_seconds: int = 3600
    reply_ttl_seconds: int = 0

    @property
    def entries_path(self) -> Path:
        return self.data_dir / "tracked_entries.json"

    @property
    def board_state_path(self) -> Path:
        return self.data_dir / "live_board.json"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Load settings from the environment (and a .env file if present)."""
        load_dotenv(env_file, override=True)

        log_file = os.getenv("BOSSTIMER_LOG_FILE")
        debug = _env_bool("DEBUG")

        return cls(
            debug=debug,
            log_level=os.getenv("BOSSTIMER_LOG_LEVEL", "DEBUG" if debug else "INFO").upper(),
            log_file=Path(log_file).expanduser() if log_file else None,

            data_dir=Path(os.getenv(
                "BOSSTIMER_DATA_DIR", str(Path.home() / ".bosstimer" / "data")
            )).expanduser(),
            catalog_path=Path(os.getenv("BOSSTIMER_CATALOG", "data/bosses.yaml")).expanduser(),
            timezone=os.getenv("BOSSTIMER_TIMEZONE", "Asia/Manila"),
            secondary_timezone=os.getenv("BOSSTIMER_SECONDARY_TIMEZONE", "Asia/Jakarta"),

            discord_bot_token=os.getenv("DISCORD_TOKEN") or os.getenv("BOT_TOKEN"),
            discord_announce_channel_id=os.getenv("ANNOUNCE_CHANNEL_ID"),
            discord_allowed_users=_env_list("DISCORD_ALLOWED_USERS"),
            discord_allowed_guilds=_env_list("DISCORD_ALLOWED_GUILDS"),
            purge_commands=_env_bool("BOSSTIMER_PURGE_COMMANDS"),

            render_mode=RenderMode(os.getenv("BOSSTIMER_RENDER_MODE", RenderMode.LIVE.value)),
            mention=os.getenv("BOSSTIMER_MENTION", "@everyone"),
            chunk_size=int(os.getenv("BOSSTIMER_CHUNK_SIZE", "2000")),

            warning_lead_minutes=int(os.getenv("BOSSTIMER_WARNING_LEAD_MINUTES", "10")),
            grace_minutes=int(os.getenv("BOSSTIMER_GRACE_MINUTES", "10")),
            recent_window_minutes=int(os.getenv("BOSSTIMER_RECENT_WINDOW_MINUTES", "10")),
            sweep_interval_minutes=int(os.getenv("BOSSTIMER_SWEEP_INTERVAL_MINUTES", "5")),
            sweep_initial_delay_seconds=int(os.getenv("BOSSTIMER_SWEEP_INITIAL_DELAY_SECONDS", "10")),
            suspend_sentinel_hours=int(os.getenv("BOSSTIMER_SUSPEND_SENTINEL_HOURS", "48")),
            max_offset_minutes=int(os.getenv("BOSSTIMER_MAX_OFFSET_MINUTES", "600")),

            warning_ttl_seconds=int(os.getenv("BOSSTIMER_WARNING_TTL", "600")),
            occurred_ttl_seconds=int(os.getenv("BOSSTIMER_OCCURRED_TTL", "300")),
            auto_corrected_ttl_seconds=int(os.getenv("BOSSTIMER_AUTO_CORRECTED_TTL", "60")),
            digest_ttl_seconds=int(os.getenv("BOSSTIMER_DIGEST_TTL", "3600")),
            reply_ttl_seconds=int(os.getenv("BOSSTIMER_REPLY_TTL", "0")),
        )
