"""Location record and derived view models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pymailroom.models._base import MailroomStatus, MailroomTimestamp, format_timestamp


class LocationRecord(BaseModel):
    """Persisted state of one location, one row per name in the store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    name: str
    """Unique location key, matching an entry in the registry."""

    status: MailroomStatus = MailroomStatus.UNKNOWN
    """Raw status as last reported (not decayed)."""

    last_updated: MailroomTimestamp = Field(default=None)
    """When the status was reported, ``None`` if never."""

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("name must be non-empty")
        return name

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> MailroomStatus:
        if value is None:
            return MailroomStatus.UNKNOWN
        return MailroomStatus(value)

    @model_validator(mode="after")
    def _unknown_without_timestamp(self) -> LocationRecord:
        # A status nobody ever reported cannot be open or closed.
        if self.last_updated is None and self.status is not MailroomStatus.UNKNOWN:
            object.__setattr__(self, "status", MailroomStatus.UNKNOWN)
        return self

    @property
    def is_reported(self) -> bool:
        return self.last_updated is not None

    def to_row(self) -> dict[str, Any]:
        """Serialize to the store's column layout."""
        return {
            "name": self.name,
            "status": self.status.value,
            "last_updated": format_timestamp(self.last_updated) if self.last_updated is not None else None,
        }


class EffectiveView(BaseModel):
    """What a location should display at a given instant.

    Derived from a :class:`LocationRecord` and the current time; never
    persisted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    status: MailroomStatus
    """Effective status after applying the freshness window."""
    raw_status: MailroomStatus
    last_updated: datetime | None = None
    """Carried through unchanged from the record, for display."""
    is_stale: bool = False
    """A report exists but has aged past the freshness window."""
