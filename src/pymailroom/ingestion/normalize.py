"""Normalization helpers.

Centralizes defensive parsing of raw store rows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from pymailroom._redact import redact_for_log
from pymailroom.models.location import LocationRecord

_logger = logging.getLogger(__name__)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def parse_record(row: Any) -> LocationRecord | None:
    """Validate one store row, returning ``None`` if it is unusable."""
    if not isinstance(row, dict):
        _logger.debug("Skipping non-object row: %r", redact_for_log(row))
        return None
    try:
        return LocationRecord.model_validate(row)
    except ValidationError:
        _logger.debug("Skipping invalid row: %s", redact_for_log(row), exc_info=True)
        return None


def parse_records(rows: Iterable[Any]) -> list[LocationRecord]:
    """Validate store rows, dropping the ones that fail."""
    records: list[LocationRecord] = []
    for row in rows:
        record = parse_record(row)
        if record is not None:
            records.append(record)
    return records
