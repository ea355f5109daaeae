"""Base enum and timestamp helpers for store records.

Status values travel as lowercase strings (``"open"``, ``"closed"``,
``"unknown"``).  :class:`MailroomStatus` adds a ``_missing_`` hook so any
value without a mapped member (other casing, stray whitespace, garbage)
resolves to ``UNKNOWN`` instead of raising ``ValueError``.

Timestamps travel as ISO-8601 strings.  :data:`MailroomTimestamp` coerces
them (and epoch seconds/milliseconds) into timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BeforeValidator

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


class MailroomStatus(StrEnum):
    """Open/closed state of a mail room."""

    OPEN = "open"
    CLOSED = "closed"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> MailroomStatus:
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.UNKNOWN


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Convert a store timestamp to a UTC datetime.

    Accepts ISO-8601 strings, datetimes and epoch numbers (seconds **or**
    milliseconds).  Returns ``None`` for ``None`` and blank strings.
    Raises :class:`ValueError` for strings that are not ISO-8601.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    text = str(value).strip()
    if not text:
        return None
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as the ISO-8601 string the store expects."""
    return ensure_utc(value).isoformat()


MailroomTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO-8601 strings or epoch numbers to UTC datetimes."""
