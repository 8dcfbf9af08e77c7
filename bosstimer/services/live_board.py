"""Live status board: one set of messages edited in place on every refresh."""
import asyncio
import json
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..tracker.notifier import NotificationSink

logger = logger.bind(module="services.live_board")


class LiveStatusBoard:
    """Keeps the announce channel's status messages in sync with the latest chunks.

    Every ``publish`` reuses the previous message handles: existing messages
    are edited, a handle that no longer exists is replaced by a new message,
    and messages left over from a longer previous render are deleted. The
    handle list is saved so a restart keeps editing the same messages.
    """

    def __init__(self, sink: NotificationSink, state_path: Path):
        self.sink = sink
        self.state_path = Path(state_path)
        self.handles: List[str] = []
        self._lock = asyncio.Lock()

    def load(self) -> int:
        """Load saved message handles.

        Returns:
            Number of handles loaded
        """
        if not self.state_path.exists():
            return 0
        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load live board state from {self.state_path}: {e}")
            return 0

        self.handles = [str(h) for h in data.get("messageIds", [])]
        logger.info(f"Loaded {len(self.handles)} live board message ids")
        return len(self.handles)

    def save(self) -> bool:
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.state_path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump({"messageIds": self.handles}, f, indent=2)
            temp_path.replace(self.state_path)
        except OSError as e:
            logger.error(f"Failed to save live board state to {self.state_path}: {e}")
            return False
        return True

    async def publish(self, chunks: List[str]) -> List[str]:
        """Apply a new render to the channel.

        Returns:
            Handles of the messages now showing the board
        """
        async with self._lock:
            previous = list(self.handles)
            handles: List[str] = []

            for index, chunk in enumerate(chunks):
                old = previous[index] if index < len(previous) else None
                handle = await self._apply(old, chunk)
                if handle is not None:
                    handles.append(handle)

            for leftover in previous[len(chunks):]:
                try:
                    await self.sink.delete(leftover)
                except Exception as e:
                    logger.warning(f"Could not delete old board message {leftover}: {e}")

            self.handles = handles
            self.save()
            logger.debug(f"Live board updated ({len(handles)} messages)")
            return handles

    async def _apply(self, handle: Optional[str], content: str) -> Optional[str]:
        """Edit ``handle`` in place, or post a new message if that fails."""
        if handle is not None:
            try:
                if await self.sink.edit(handle, content):
                    return handle
                logger.info(f"Board message {handle} is gone, sending a new one")
            except Exception as e:
                logger.warning(f"Editing board message {handle} failed: {e}")

        try:
            return await self.sink.send(content)
        except Exception as e:
            logger.error(f"Sending board message failed: {e}")
            return None
