"""bosstimer entry point."""
import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .channels import DiscordChannel
from .config import Settings
from .services import BossTracker, CommandRouter
from .tracker import Catalog, EntryStore
from .tracker.types import RenderMode

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> - <level>{message}</level>"
)


def setup_logging(settings: Settings):
    """Configure loguru sinks: stderr plus an optional rotating file."""
    logger.remove()
    logger.configure(extra={"module": "bosstimer"})
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)
    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
        )


async def run(settings: Settings) -> int:
    """Run the bot until SIGINT/SIGTERM."""
    catalog = Catalog.load(settings.catalog_path)
    store = EntryStore(settings.entries_path)

    channel = DiscordChannel(
        bot_token=settings.discord_bot_token,
        announce_channel_id=settings.discord_announce_channel_id,
        allowed_users=settings.discord_allowed_users,
        allowed_guilds=settings.discord_allowed_guilds,
        chunk_size=settings.chunk_size,
    )
    tracker = BossTracker(settings, catalog, store, channel.announcer)
    router = CommandRouter(tracker)

    async def on_message(message):
        await router.handle(message, channel)

    channel.set_handler(on_message)

    if not settings.discord_announce_channel_id:
        logger.error("ANNOUNCE_CHANNEL_ID is not set")
        return 1
    if not await channel.connect():
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    await tracker.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        await tracker.stop()
        await channel.disconnect()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="bosstimer", description="Boss respawn tracker for Discord")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--catalog", help="Boss catalog file (YAML or JSON)")
    parser.add_argument("--data-dir", help="Directory for tracked entries and board state")
    parser.add_argument("--mode", choices=[m.value for m in RenderMode], help="Status render mode")
    args = parser.parse_args(argv)

    settings = Settings.from_env(args.env_file)
    if args.catalog:
        settings.catalog_path = Path(args.catalog).expanduser()
    if args.data_dir:
        settings.data_dir = Path(args.data_dir).expanduser()
    if args.mode:
        settings.render_mode = RenderMode(args.mode)

    setup_logging(settings)

    try:
        return asyncio.run(run(settings))
    except FileNotFoundError as e:
        logger.error(f"Catalog not found: {e}")
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
