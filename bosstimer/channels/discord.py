"""Discord channel: command intake plus the announce channel sink."""
import asyncio
from typing import Optional, List

from loguru import logger

from .base import Channel, Message
from ..tracker.aggregator import DEFAULT_CHUNK_SIZE, chunk_lines

logger = logger.bind(module="channels.discord")

# Discord SDK is imported lazily
discord = None


def _ensure_discord_sdk():
    """Import discord.py on first use."""
    global discord
    if discord is None:
        try:
            import discord as _discord
            discord = _discord
        except ImportError:
            raise ImportError(
                "Discord SDK is not installed, run: pip install bosstimer[discord]"
            )


class DiscordChannel(Channel):
    """Discord channel built on discord.py."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        announce_channel_id: Optional[str] = None,
        allowed_users: Optional[List[str]] = None,
        allowed_guilds: Optional[List[str]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        super().__init__()
        self.bot_token = bot_token
        self.announce_channel_id = announce_channel_id
        self.allowed_users = allowed_users or []
        self.allowed_guilds = allowed_guilds or []
        self.chunk_size = chunk_size
        self._client = None
        self._ready_event = asyncio.Event()
        self.announcer = DiscordAnnounceSink(self)

    async def connect(self) -> bool:
        if not self.bot_token:
            logger.warning("[Discord] Missing bot token, skipped")
            return False

        try:
            _ensure_discord_sdk()

            intents = discord.Intents.default()
            intents.message_content = True
            intents.guilds = True
            intents.members = True

            self._client = discord.Client(intents=intents)

            @self._client.event
            async def on_ready():
                logger.info(f"[Discord] Logged in as {self._client.user}")
                self._ready_event.set()

            @self._client.event
            async def on_message(message):
                await self._on_message(message)

            asyncio.create_task(self._start_client())

            try:
                await asyncio.wait_for(self._ready_event.wait(), timeout=30)
            except asyncio.TimeoutError:
                logger.error("[Discord] Connection timeout")
                return False

            logger.info("[Discord] Connected")
            return True

        except ImportError as e:
            logger.error(f"[Discord] SDK not installed: {e}")
            return False
        except Exception as e:
            logger.error(f"[Discord] Connect failed: {e}")
            return False

    async def _start_client(self):
        try:
            await self._client.start(self.bot_token)
        except Exception as e:
            logger.error(f"[Discord] Client error: {e}")

    async def disconnect(self):
        if self._client:
            try:
                await self._client.close()
            except Exception as e:
                logger.error(f"[Discord] Disconnect error: {e}")

        logger.info("[Discord] Disconnected")

    async def resolve_channel(self, channel_id: str):
        """Get a text channel from the cache, falling back to the API."""
        if not self._client:
            raise RuntimeError("Discord client is not connected")
        channel = self._client.get_channel(int(channel_id))
        if channel is None:
            channel = await self._client.fetch_channel(int(channel_id))
        return channel

    async def send(self, channel_id: str, content: str, **kwargs) -> bool:
        """Post a reply, split on line boundaries to fit Discord's limit."""
        ttl = kwargs.get("ttl") or None
        try:
            channel = await self.resolve_channel(channel_id)
            for chunk in chunk_lines(content.split("\n"), self.chunk_size):
                await channel.send(chunk, delete_after=ttl)
            return True
        except Exception as e:
            logger.error(f"[Discord] Send error: {e}")
            return False

    async def delete_message(self, channel_id: str, message_id: str) -> bool:
        try:
            channel = await self.resolve_channel(channel_id)
            await channel.get_partial_message(int(message_id)).delete()
            return True
        except Exception as e:
            logger.warning(f"[Discord] Could not delete command message {message_id}: {e}")
            return False

    async def _on_message(self, message) -> None:
        try:
            if message.author == self._client.user or message.author.bot:
                return

            user_id = str(message.author.id)
            if self.allowed_users and user_id not in self.allowed_users:
                return
            if self.allowed_guilds and message.guild:
                if str(message.guild.id) not in self.allowed_guilds:
                    return

            # Members outside a guild (DMs) have no permissions
            permissions = getattr(message.author, "guild_permissions", None)
            is_admin = bool(permissions and permissions.administrator)

            msg = Message(
                channel_id=str(message.channel.id),
                sender_id=user_id,
                sender_name=message.author.display_name,
                content=message.content,
                message_id=str(message.id),
                metadata={
                    "guild_id": str(message.guild.id) if message.guild else None,
                    "channel_name": getattr(message.channel, "name", "DM"),
                    "is_admin": is_admin,
                }
            )

            if self._message_handler:
                await self._emit_message(msg)

        except Exception as e:
            logger.error(f"[Discord] Message error: {e}")


class DiscordAnnounceSink:
    """Notification sink bound to the announce channel.

    Handles are Discord message ids. ``edit``/``delete``/``fetch`` return
    False/None for messages that no longer exist and raise on other errors.
    """

    def __init__(self, channel: DiscordChannel):
        self.channel = channel

    async def _target(self):
        if not self.channel.announce_channel_id:
            raise RuntimeError("No announce channel configured")
        return await self.channel.resolve_channel(self.channel.announce_channel_id)

    async def send(self, content: str) -> str:
        target = await self._target()
        message = await target.send(content)
        return str(message.id)

    async def edit(self, handle: str, content: str) -> bool:
        target = await self._target()
        try:
            message = await target.fetch_message(int(handle))
            await message.edit(content=content)
        except discord.NotFound:
            return False
        return True

    async def delete(self, handle: str) -> bool:
        target = await self._target()
        try:
            await target.get_partial_message(int(handle)).delete()
        except discord.NotFound:
            return False
        return True

    async def fetch(self, handle: str) -> Optional[str]:
        target = await self._target()
        try:
            message = await target.fetch_message(int(handle))
        except discord.NotFound:
            return None
        return message.content
