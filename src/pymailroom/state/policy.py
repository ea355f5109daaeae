"""Freshness and merge policy.

Pure functions only.  This module contains *no* payload parsing; the
ingestion/Pydantic boundary hands it normalized records and aware
datetimes.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pymailroom._constants import FRESHNESS_WINDOW
from pymailroom.models._base import MailroomStatus, ensure_utc
from pymailroom.models.location import EffectiveView, LocationRecord


def is_stale(last_updated: datetime | None, now: datetime, window: timedelta = FRESHNESS_WINDOW) -> bool:
    """Whether a report made at *last_updated* can no longer be trusted at *now*.

    The boundary is closed: exactly ``window`` after the report it is stale.
    A missing report is always stale.  Naive datetimes are taken as UTC.
    """
    if last_updated is None:
        return True
    return ensure_utc(now) - ensure_utc(last_updated) >= window


def effective_status(
    raw_status: MailroomStatus,
    last_updated: datetime | None,
    now: datetime,
) -> MailroomStatus:
    """Status to display: *raw_status* while fresh, ``UNKNOWN`` once stale."""
    if is_stale(last_updated, now):
        return MailroomStatus.UNKNOWN
    return raw_status


def project(record: LocationRecord, now: datetime) -> EffectiveView:
    """Project a stored record onto its effective view at *now*."""
    return EffectiveView(
        name=record.name,
        status=effective_status(record.status, record.last_updated, now),
        raw_status=record.status,
        last_updated=record.last_updated,
        is_stale=record.is_reported and is_stale(record.last_updated, now),
    )


def should_accept_update(
    *,
    cached_last_updated: datetime | None,
    incoming_last_updated: datetime | None,
) -> bool:
    """Decide whether an incoming record may replace the cached one.

    Policy:
    - Nothing cached yet: accept.
    - Reject only when the incoming timestamp is strictly older.  Equal
      timestamps are accepted, so a duplicate delivery is a no-op rewrite.
    - A missing incoming timestamp is older than any real one.
    """
    if cached_last_updated is None:
        return True
    if incoming_last_updated is None:
        return False
    return incoming_last_updated >= cached_last_updated
