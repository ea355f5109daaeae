from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from pymailroom.models import LocationRecord, MailroomStatus, format_timestamp, parse_timestamp
from pymailroom.state.events import ChangeEvent, ChangeKind

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_record_from_store_row() -> None:
    record = LocationRecord.model_validate(
        {"name": " Day Hall ", "status": "open", "last_updated": "2026-01-01T12:00:00Z", "id": 7}
    )

    assert record.name == "Day Hall"
    assert record.status is MailroomStatus.OPEN
    assert record.last_updated == T0
    assert record.last_updated is not None and record.last_updated.tzinfo is not None


def test_status_is_case_insensitive_and_never_raises() -> None:
    assert MailroomStatus("Closed ") is MailroomStatus.CLOSED
    assert MailroomStatus("OPEN") is MailroomStatus.OPEN
    assert MailroomStatus("maybe") is MailroomStatus.UNKNOWN

    record = LocationRecord.model_validate({"name": "Day Hall", "status": 3, "last_updated": T0})
    assert record.status is MailroomStatus.UNKNOWN


def test_status_without_timestamp_is_unknown() -> None:
    record = LocationRecord(name="Flint Hall", status=MailroomStatus.OPEN)

    assert record.status is MailroomStatus.UNKNOWN
    assert record.last_updated is None
    assert not record.is_reported


def test_null_status_column_is_unknown() -> None:
    record = LocationRecord.model_validate({"name": "Flint Hall", "status": None, "last_updated": None})

    assert record.status is MailroomStatus.UNKNOWN


def test_offset_and_naive_timestamps_are_normalized_to_utc() -> None:
    eastern = timezone(timedelta(hours=-5))
    record = LocationRecord(name="Day Hall", status="closed", last_updated=datetime(2026, 1, 1, 7, 0, tzinfo=eastern))
    naive = LocationRecord.model_validate(
        {"name": "Day Hall", "status": "closed", "last_updated": "2026-01-01T12:00:00"}
    )

    assert record.last_updated == T0
    assert record.last_updated is not None and record.last_updated.utcoffset() == timedelta(0)
    assert naive.last_updated == T0


def test_epoch_timestamps_seconds_and_millis() -> None:
    seconds = int(T0.timestamp())

    assert parse_timestamp(seconds) == T0
    assert parse_timestamp(seconds * 1000) == T0
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None


def test_invalid_rows_are_rejected() -> None:
    with pytest.raises(ValidationError):
        LocationRecord.model_validate({"name": "   ", "status": "open"})
    with pytest.raises(ValidationError):
        LocationRecord.model_validate({"name": "Day Hall", "status": "open", "last_updated": "yesterday"})


def test_to_row_uses_store_columns() -> None:
    record = LocationRecord(name="Day Hall", status=MailroomStatus.CLOSED, last_updated=T0)

    assert record.to_row() == {
        "name": "Day Hall",
        "status": "closed",
        "last_updated": "2026-01-01T12:00:00+00:00",
    }
    assert LocationRecord(name="Day Hall").to_row()["last_updated"] is None
    assert format_timestamp(datetime(2026, 1, 1, 12, 0)) == "2026-01-01T12:00:00+00:00"


def test_records_are_frozen() -> None:
    record = LocationRecord(name="Day Hall", status=MailroomStatus.OPEN, last_updated=T0)

    with pytest.raises(ValidationError):
        record.status = MailroomStatus.CLOSED  # type: ignore[misc]


def test_change_event_requires_record_for_updates() -> None:
    with pytest.raises(ValidationError):
        ChangeEvent(kind=ChangeKind.UPDATE, name="Day Hall")

    deleted = ChangeEvent.deleted("Day Hall")
    assert deleted.kind is ChangeKind.DELETE
    assert deleted.record is None


def test_change_event_name_must_match_record() -> None:
    record = LocationRecord(name="Day Hall", status=MailroomStatus.OPEN, last_updated=T0)

    with pytest.raises(ValidationError):
        ChangeEvent(kind=ChangeKind.INSERT, name="Flint Hall", record=record)

    event = ChangeEvent.updated(record)
    assert event.name == "Day Hall"
    assert event.received_at.tzinfo is not None
