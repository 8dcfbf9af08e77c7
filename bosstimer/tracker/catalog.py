"""Boss catalog: read-only reference data loaded once at startup."""
from pathlib import Path
from typing import Any, Iterable, Iterator

import yaml
from loguru import logger
from pydantic import ValidationError

from .errors import NoRecurrenceDefined, UnknownEntity
from .models import CatalogEntry

logger = logger.bind(module="tracker.catalog")


class Catalog:
    """Immutable collection of ``CatalogEntry`` with case-insensitive lookup."""

    def __init__(self, entries: Iterable[CatalogEntry] = ()):
        self._entries: dict[str, CatalogEntry] = {}
        for entry in entries:
            key = entry.id.lower()
            if key in self._entries:
                logger.warning(f"Duplicate catalog id '{entry.id}' ignored")
                continue
            self._entries[key] = entry

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]]) -> "Catalog":
        """Build a catalog from raw records, skipping invalid ones."""
        entries = []
        for index, record in enumerate(records):
            try:
                entries.append(CatalogEntry.model_validate(record))
            except ValidationError as e:
                logger.error(f"Invalid catalog record #{index}: {e.errors()[0]['msg']}")
        return cls(entries)

    @classmethod
    def load(cls, path: str | Path) -> "Catalog":
        """Load a catalog file (YAML, or JSON which is a subset of YAML).

        The file holds either a list of records or a mapping with a
        ``bosses`` list.
        """
        path = Path(path).expanduser()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or []

        if isinstance(data, dict):
            data = data.get("bosses", [])
        if not isinstance(data, list):
            raise ValueError(f"Catalog {path} must contain a list of bosses")

        catalog = cls.from_records(data)
        logger.info(f"Loaded {len(catalog)} bosses from {path}")
        return catalog

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries.values())

    def __contains__(self, entity_id: str) -> bool:
        return entity_id.lower() in self._entries

    def get(self, entity_id: str) -> CatalogEntry | None:
        return self._entries.get(entity_id.lower())

    def require(self, entity_id: str) -> CatalogEntry:
        """Look up an entity, raising ``UnknownEntity`` if absent."""
        entry = self.get(entity_id)
        if entry is None:
            raise UnknownEntity(f"Boss '{entity_id}' is not in the catalog")
        return entry

    def require_recurrence(self, entity_id: str) -> CatalogEntry:
        """Look up an entity that has a respawn interval."""
        entry = self.require(entity_id)
        if entry.recurrence is None:
            raise NoRecurrenceDefined(f"Boss '{entry.id}' has no respawn time defined")
        return entry
