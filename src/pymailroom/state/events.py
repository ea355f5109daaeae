"""Normalized change events.

Every change-feed transport converts its notifications into these events.
Only the state/store layer is allowed to merge them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pymailroom.models.location import LocationRecord


class ChangeKind(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """A single change notification for one location."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    name: str = Field(..., description="Location name the change applies to")
    record: LocationRecord | None = Field(
        default=None,
        description="New record for insert/update; old record (if known) for delete.",
    )
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("name must be non-empty")
        return name

    @field_validator("received_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _record_matches_kind(self) -> ChangeEvent:
        if self.kind is not ChangeKind.DELETE and self.record is None:
            raise ValueError(f"{self.kind.value} event requires a record")
        if self.record is not None and self.record.name != self.name:
            raise ValueError(f"record name {self.record.name!r} does not match event name {self.name!r}")
        return self

    @classmethod
    def inserted(cls, record: LocationRecord) -> ChangeEvent:
        return cls(kind=ChangeKind.INSERT, name=record.name, record=record)

    @classmethod
    def updated(cls, record: LocationRecord) -> ChangeEvent:
        return cls(kind=ChangeKind.UPDATE, name=record.name, record=record)

    @classmethod
    def deleted(cls, name: str, record: LocationRecord | None = None) -> ChangeEvent:
        return cls(kind=ChangeKind.DELETE, name=name, record=record)
