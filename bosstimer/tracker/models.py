"""Data models for catalog definitions, tracked entries and operation results."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .clock import parse_iso, to_iso
from .errors import TrackerError
from .types import ErrorKind


class CatalogEntry(BaseModel):
    """Static facts about one trackable boss.

    Accepts both the current field names and the legacy bossData.json names
    (``name``, ``zone``, ``area``, ``respawn``, ``dropEpic``, ``chanceSpawn``).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, validation_alias=AliasChoices("id", "name"))
    location_zone: str = Field(
        default="", validation_alias=AliasChoices("locationZone", "location_zone", "zone"),
    )
    location_area: str = Field(
        default="", validation_alias=AliasChoices("locationArea", "location_area", "area", "location"),
    )
    recurrence_hours: float | None = Field(
        default=None, gt=0,
        validation_alias=AliasChoices("recurrenceHours", "recurrence_hours", "respawn"),
    )
    has_high_value_drop: bool = Field(
        default=False,
        validation_alias=AliasChoices("hasHighValueDrop", "has_high_value_drop", "dropEpic"),
    )
    spawn_chance_percent: float | None = Field(
        default=None, ge=0, le=100,
        validation_alias=AliasChoices("spawnChancePercent", "spawn_chance_percent", "chanceSpawn"),
    )
    level: int | None = None
    drops: tuple[str, ...] = ()

    @field_validator("recurrence_hours", mode="before")
    @classmethod
    def _blank_recurrence(cls, value: Any) -> Any:
        # 0, "" and null all mean "no respawn timer" in hand-edited catalogs
        if value in (None, "", 0):
            return None
        return value

    @property
    def recurrence(self) -> timedelta | None:
        if self.recurrence_hours is None:
            return None
        return timedelta(hours=self.recurrence_hours)

    @property
    def location(self) -> str:
        return f"{self.location_zone} - {self.location_area}"


@dataclass(frozen=True)
class TrackedEntry:
    """The live record of one boss.

    Entries are immutable values: the store replaces them wholesale, so any
    snapshot handed to the scheduler or aggregator stays consistent.
    """
    entity_id: str
    observed_at: datetime
    predicted_at: datetime
    suspended: bool = False

    @property
    def key(self) -> str:
        return self.entity_id.lower()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape."""
        return {
            "entityId": self.entity_id,
            "observedAt": to_iso(self.observed_at),
            "predictedAt": to_iso(self.predicted_at),
            "suspended": 1 if self.suspended else 0,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackedEntry":
        """Create from a persisted record (legacy trackedBosses.json keys accepted).

        Raises:
            KeyError, ValueError: if the record is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {data!r}")
        entity_id = data.get("entityId") or data["bossName"]
        observed = data.get("observedAt") or data.get("killedAt")
        predicted = data.get("predictedAt") or data["spawnAt"]
        suspended = data.get("suspended", data.get("maintenanceMode", 0))

        predicted_at = parse_iso(predicted)
        return cls(
            entity_id=str(entity_id),
            observed_at=parse_iso(observed) if observed else predicted_at,
            predicted_at=predicted_at,
            suspended=bool(int(suspended)),
        )


@dataclass
class OpResult:
    """Result of a mutating tracker operation."""
    ok: bool
    error: ErrorKind | None = None
    reason: str = ""
    entry: TrackedEntry | None = None
    affected: int = 0
    persisted: bool = True
    since_previous: timedelta | None = None

    @property
    def predicted_at(self) -> datetime | None:
        return self.entry.predicted_at if self.entry else None

    @classmethod
    def failure(cls, error: TrackerError) -> "OpResult":
        return cls(ok=False, error=error.kind, reason=error.reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error.value if self.error else None,
            "reason": self.reason,
            "entry": self.entry.to_dict() if self.entry else None,
            "affected": self.affected,
            "persisted": self.persisted,
        }


@dataclass
class SweepReport:
    """Outcome of one reconciliation pass."""
    started_at: datetime
    corrected: list[TrackedEntry] = field(default_factory=list)
    skipped: dict[str, ErrorKind] = field(default_factory=dict)
    persisted: bool = True

    @property
    def changed(self) -> bool:
        return bool(self.corrected)
