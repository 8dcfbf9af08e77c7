"""Chat channel base class."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional


@dataclass
class Message:
    """An incoming chat command."""
    channel_id: str
    sender_id: str
    sender_name: str
    content: str
    message_id: str
    metadata: dict = field(default_factory=dict)  # guild_id, is_admin


MessageHandler = Callable[[Message], Awaitable[Any]]


class Channel(ABC):
    """Where commands come from and replies go back to."""

    def __init__(self):
        self._message_handler: Optional[MessageHandler] = None

    @abstractmethod
    async def connect(self) -> bool:
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    async def send(self, channel_id: str, content: str, **kwargs) -> bool:
        """Post a reply; ``ttl`` in kwargs asks for deletion after that many seconds."""

    async def delete_message(self, channel_id: str, message_id: str) -> bool:
        return False

    def set_handler(self, handler: MessageHandler):
        self._message_handler = handler

    async def _emit_message(self, message: Message):
        if self._message_handler:
            await self._message_handler(message)
