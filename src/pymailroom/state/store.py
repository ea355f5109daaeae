"""Deterministic in-memory location cache.

This is the only component allowed to merge incoming change events and
local optimistic reports.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pymailroom.models.location import LocationRecord
from pymailroom.state.events import ChangeEvent, ChangeKind
from pymailroom.state.policy import should_accept_update

_logger = logging.getLogger(__name__)


class LocationCache:
    """In-memory mirror of the store, keyed by location name.

    Records are frozen models, so handing them out never exposes a mutable
    handle.  Given the same sequence of operations the cache always ends
    in the same state.
    """

    def __init__(self) -> None:
        self._records: dict[str, LocationRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def get(self, name: str) -> LocationRecord | None:
        return self._records.get(name)

    def records(self) -> dict[str, LocationRecord]:
        """Shallow copy of the current mapping."""
        return dict(self._records)

    def replace_all(self, records: Iterable[LocationRecord]) -> None:
        """Replace the whole cache with an authoritative snapshot."""
        fresh: dict[str, LocationRecord] = {}
        for record in records:
            # Duplicate rows should not exist; keep the newest if they do.
            existing = fresh.get(record.name)
            if existing is None or should_accept_update(
                cached_last_updated=existing.last_updated,
                incoming_last_updated=record.last_updated,
            ):
                fresh[record.name] = record
        self._records = fresh

    def put(self, record: LocationRecord) -> None:
        """Unconditionally store *record* (local optimistic write)."""
        self._records[record.name] = record

    def restore(self, name: str, previous: LocationRecord | None, *, expected: LocationRecord) -> bool:
        """Roll *name* back to *previous* if it still holds *expected*.

        Returns ``False`` (and leaves the cache alone) when something newer
        has replaced *expected* in the meantime.
        """
        if self._records.get(name) != expected:
            return False
        if previous is None:
            self._records.pop(name, None)
        else:
            self._records[name] = previous
        return True

    def apply(self, event: ChangeEvent) -> bool:
        """Apply a change event.  Returns whether the cache changed."""
        if event.kind is ChangeKind.DELETE:
            removed = self._records.pop(event.name, None)
            return removed is not None

        incoming = event.record
        if incoming is None:  # pragma: no cover - rejected by ChangeEvent validation
            return False

        cached = self._records.get(event.name)
        if cached is not None and not should_accept_update(
            cached_last_updated=cached.last_updated,
            incoming_last_updated=incoming.last_updated,
        ):
            _logger.debug(
                "Ignoring out-of-order %s for %s (incoming=%s cached=%s)",
                event.kind.value,
                event.name,
                incoming.last_updated,
                cached.last_updated,
            )
            return False

        if cached == incoming:
            return False
        self._records[event.name] = incoming
        return True
