"""Change-feed ingestion helpers.

This module translates decoded change-feed payloads into normalized
state-store events.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from pymailroom._redact import redact_for_log
from pymailroom.ingestion.normalize import parse_record, safe_str
from pymailroom.state.events import ChangeEvent, ChangeKind

_logger = logging.getLogger(__name__)


class _ChangeEnvelope(BaseModel):
    """Minimal Pydantic envelope for change-feed messages.

    Accepts both ``type``/``record``/``old_record`` and the
    ``eventType``/``new``/``old`` spelling.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: ChangeKind = Field(..., validation_alias=AliasChoices("type", "eventType", "event_type"))
    table: str | None = None
    record: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("record", "new"))
    old_record: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("old_record", "old"))

    @field_validator("kind", mode="before")
    @classmethod
    def _lower_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("record", "old_record", mode="before")
    @classmethod
    def _empty_to_none(cls, value: Any) -> Any:
        if isinstance(value, dict) and not value:
            return None
        return value


def build_change_event(payload: dict[str, Any], *, table: str | None = None) -> ChangeEvent | None:
    """Build a change event from a decoded feed payload.

    Returns ``None`` for payloads that are malformed, belong to another
    table, or do not carry enough data to identify the location.
    """
    try:
        envelope = _ChangeEnvelope.model_validate(payload)
    except ValidationError:
        _logger.debug("Dropping malformed change payload: %s", redact_for_log(payload), exc_info=True)
        return None

    if table is not None and envelope.table is not None and envelope.table != table:
        _logger.debug("Dropping change for table %s (want %s)", envelope.table, table)
        return None

    if envelope.kind is ChangeKind.DELETE:
        source = envelope.old_record or envelope.record or {}
        name = safe_str(source.get("name"))
        if name is None:
            _logger.debug("Dropping delete without name: %s", redact_for_log(payload))
            return None
        old = parse_record(source)
        return ChangeEvent.deleted(name, old)

    if envelope.record is None:
        _logger.debug("Dropping %s without record", envelope.kind.value)
        return None
    record = parse_record(envelope.record)
    if record is None:
        return None
    return ChangeEvent(kind=envelope.kind, name=record.name, record=record)
