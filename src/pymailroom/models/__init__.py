"""Data models for store records."""

from pymailroom.models._base import (
    MailroomStatus,
    MailroomTimestamp,
    ensure_utc,
    format_timestamp,
    parse_timestamp,
)
from pymailroom.models.location import EffectiveView, LocationRecord

__all__ = [
    "EffectiveView",
    "LocationRecord",
    "MailroomStatus",
    "MailroomTimestamp",
    "ensure_utc",
    "format_timestamp",
    "parse_timestamp",
]
