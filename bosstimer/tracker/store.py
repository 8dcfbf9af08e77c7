"""JSON-backed store of tracked entries.

Architecture:
- In memory: one ``TrackedEntry`` per boss, keyed by lower-cased id. This is
  the authoritative state for the life of the process.
- On disk (tracked_entries.json): the full collection, rewritten atomically
  after every mutation batch.

A failed write is logged and published to the hooks, but the in-memory change
stands. A crash before the next successful write loses that change.
"""
import json
from pathlib import Path
from typing import Iterable

from loguru import logger

from .errors import PersistenceWriteFailed
from .hooks import EventHooks
from .models import TrackedEntry
from .types import HookPoint

logger = logger.bind(module="tracker.store")


class EntryStore:
    """Holds at most one live record per boss.

    Mutating calls write the whole collection unless ``persist=False`` is
    passed, in which case the caller is expected to ``flush()`` once the
    batch is done.
    """

    def __init__(self, path: str | Path, hooks: EventHooks | None = None):
        """Initialize store.

        Args:
            path: JSON file holding the persisted entries
            hooks: Observability hooks for persistence outcomes
        """
        self.path = Path(path).expanduser()
        self.hooks = hooks or EventHooks()
        self._entries: dict[str, TrackedEntry] = {}

    # ============== Lifecycle ==============

    def load(self) -> int:
        """Load entries from disk, replacing the in-memory state.

        A missing file means an empty store. An unreadable file is logged and
        also yields an empty store; malformed records are skipped.

        Returns:
            Number of entries loaded
        """
        self._entries = {}
        if not self.path.exists():
            return 0

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f) or []
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load tracked entries from {self.path}: {e}")
            return 0
        if not isinstance(data, list):
            logger.error(f"Failed to load tracked entries from {self.path}: expected a list")
            return 0

        for index, record in enumerate(data):
            try:
                entry = TrackedEntry.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed entry #{index} in {self.path}: {e!r}")
                continue
            self._entries[entry.key] = entry

        logger.info(f"Loaded {len(self._entries)} tracked entries from {self.path}")
        return len(self._entries)

    # ============== Persistence ==============

    def _write(self) -> None:
        """Write all entries to disk (atomic)."""
        data = [entry.to_dict() for entry in self._entries.values()]

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp_path.replace(self.path)

    def flush(self) -> bool:
        """Persist the current collection.

        Returns:
            True if the write succeeded
        """
        try:
            self._write()
        except OSError as e:
            error = PersistenceWriteFailed(f"Could not write {self.path}: {e}")
            logger.error(error.reason)
            self.hooks.emit(HookPoint.PERSIST_FAILED, error=error.reason, count=len(self._entries))
            return False

        logger.debug(f"Persisted {len(self._entries)} entries to {self.path}")
        self.hooks.emit(HookPoint.PERSIST_OK, count=len(self._entries))
        return True

    # ============== Entry CRUD ==============

    def upsert(self, entry: TrackedEntry, persist: bool = True) -> bool:
        """Insert or replace the entry for ``entry.entity_id``.

        Returns:
            False only if a requested write failed
        """
        self._entries[entry.key] = entry
        return self.flush() if persist else True

    def upsert_many(self, entries: Iterable[TrackedEntry], persist: bool = True) -> bool:
        for entry in entries:
            self._entries[entry.key] = entry
        return self.flush() if persist else True

    def get(self, entity_id: str) -> TrackedEntry | None:
        """Get an entry by boss id (case-insensitive)."""
        return self._entries.get(entity_id.lower())

    def list_all(self) -> list[TrackedEntry]:
        """Snapshot of all entries in insertion order."""
        return list(self._entries.values())

    def list_active(self) -> list[TrackedEntry]:
        return [e for e in self._entries.values() if not e.suspended]

    def list_suspended(self) -> list[TrackedEntry]:
        return [e for e in self._entries.values() if e.suspended]

    def clear_all(self, persist: bool = True) -> bool:
        """Remove every entry."""
        self._entries = {}
        return self.flush() if persist else True

    def __len__(self) -> int:
        return len(self._entries)
