from __future__ import annotations

from datetime import UTC, datetime

from pymailroom._redact import redact_for_log
from pymailroom.models import LocationRecord, MailroomStatus


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "name": "Day Hall",
        "apikey": "key-123",
        "Authorization": "Bearer key-123",
        "feed": {"password": "pw"},
        "rows": [{"name": "Flint Hall", "token": "tok"}],
    }

    redacted = redact_for_log(payload)
    assert redacted["name"] == "Day Hall"
    assert redacted["apikey"] == "<redacted>"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["feed"]["password"] == "<redacted>"
    assert redacted["rows"][0] == {"name": "Flint Hall", "token": "<redacted>"}


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_masks_bearer_tokens_in_text() -> None:
    message = "request failed with header Authorization: Bearer abc.def.ghi"

    assert redact_for_log(message) == "request failed with header Authorization: Bearer <redacted>"


def test_redact_for_log_dumps_models() -> None:
    stamp = datetime(2026, 1, 1, tzinfo=UTC)
    record = LocationRecord(name="Day Hall", status=MailroomStatus.OPEN, last_updated=stamp)

    redacted = redact_for_log({"record": record, "API-Key": "k"})

    assert redacted["API-Key"] == "<redacted>"
    assert redacted["record"]["name"] == "Day Hall"
    assert redacted["record"]["status"] == "open"
    assert redacted["record"]["last_updated"].startswith("2026-01-01T00:00:00")
