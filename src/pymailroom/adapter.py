"""State store adapters.

The synchronization core only talks to the persistent store through the
:class:`StoreAdapter` protocol: one full snapshot read, one atomic per-record
upsert, and a change-feed subscription.  Two implementations live here:

* :class:`RemoteStoreAdapter` -- HTTP table access plus the MQTT change feed.
* :class:`InMemoryStoreAdapter` -- a complete process-local store, used for
  local mode and tests.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, Protocol

from pymailroom._feed import ChangeFeedRuntime, FeedBootstrap
from pymailroom._transport import Transport
from pymailroom.exceptions import (
    MailroomLoadError,
    MailroomSubscriptionError,
    MailroomTransportError,
    MailroomWriteError,
)
from pymailroom.ingestion.feed import build_change_event
from pymailroom.ingestion.normalize import parse_records
from pymailroom.models._base import MailroomStatus
from pymailroom.models.location import LocationRecord
from pymailroom.registry import LocationRegistry
from pymailroom.state.events import ChangeEvent

_logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[MailroomSubscriptionError], None]


class Subscription(Protocol):
    """Handle for a change-feed subscription."""

    @property
    def active(self) -> bool: ...

    async def close(self) -> None: ...


class StoreAdapter(Protocol):
    """Operations the synchronization core needs from the persistent store."""

    async def load_all(self) -> list[LocationRecord]:
        """Full snapshot read.  Raises :class:`MailroomLoadError`."""
        ...

    async def write_status(self, name: str, status: MailroomStatus, timestamp: datetime) -> None:
        """Atomic upsert of one record.  Raises :class:`MailroomWriteError`."""
        ...

    async def subscribe_to_changes(
        self,
        on_event: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Register for change events, delivered on the running event loop.

        Blocking network setup must not run on the event loop.  Raises
        :class:`MailroomSubscriptionError` if the feed cannot be joined.
        """
        ...


class NullSubscription:
    """Subscription used when no change feed is configured."""

    @property
    def active(self) -> bool:
        return False

    async def close(self) -> None:
        return None


class FeedSubscription:
    """Subscription backed by a running :class:`ChangeFeedRuntime`."""

    def __init__(self, runtime: ChangeFeedRuntime, loop: asyncio.AbstractEventLoop) -> None:
        self._runtime: ChangeFeedRuntime | None = runtime
        self._loop = loop

    @property
    def active(self) -> bool:
        return self._runtime is not None and self._runtime.is_running

    async def close(self) -> None:
        runtime = self._runtime
        self._runtime = None
        if runtime is not None:
            # Joins the paho network thread.
            await self._loop.run_in_executor(None, runtime.stop)


class RemoteStoreAdapter:
    """Store adapter over the HTTP table API and the MQTT change feed."""

    def __init__(
        self,
        transport: Transport,
        *,
        feed: FeedBootstrap | None = None,
        table: str | None = None,
        feed_keepalive: int = 60,
    ) -> None:
        self._transport = transport
        self._feed = feed
        self._table = table
        self._feed_keepalive = feed_keepalive

    async def load_all(self) -> list[LocationRecord]:
        try:
            rows = await self._transport.fetch_rows()
        except MailroomTransportError as exc:
            raise MailroomLoadError(f"Could not load locations: {exc}") from exc
        records = parse_records(rows)
        _logger.debug("Loaded %d of %d rows", len(records), len(rows))
        return records

    async def write_status(self, name: str, status: MailroomStatus, timestamp: datetime) -> None:
        record = LocationRecord(name=name, status=status, last_updated=timestamp)
        try:
            await self._transport.upsert_row(record.to_row())
        except MailroomTransportError as exc:
            raise MailroomWriteError(f"Could not write status for {name!r}: {exc}", name=name) from exc

    async def subscribe_to_changes(
        self,
        on_event: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        if self._feed is None:
            _logger.debug("Change feed disabled; relying on decay only")
            return NullSubscription()

        table = self._table

        def _dispatch(payload: dict[str, Any]) -> None:
            event = build_change_event(payload, table=table)
            if event is not None:
                on_event(event)

        loop = asyncio.get_running_loop()
        runtime = ChangeFeedRuntime(
            loop=loop,
            on_payload=_dispatch,
            on_error=on_error,
            keepalive=self._feed_keepalive,
            logger=_logger,
        )
        # paho connects (DNS, TCP, TLS) synchronously.
        await loop.run_in_executor(None, runtime.start, self._feed)
        return FeedSubscription(runtime, loop)


class _LocalSubscription:
    def __init__(
        self,
        owner: InMemoryStoreAdapter,
        on_event: ChangeCallback,
    ) -> None:
        self._owner = owner
        self._on_event = on_event
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, event: ChangeEvent) -> None:
        if self._active:
            self._on_event(event)

    async def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._owner._detach(self)


class InMemoryStoreAdapter:
    """Process-local store with an asynchronous change feed.

    Change notifications are scheduled with ``loop.call_soon`` rather than
    delivered inline, so subscribers observe the same interleavings they
    would with a remote feed.
    """

    def __init__(
        self,
        records: Iterable[LocationRecord] = (),
        *,
        registry: LocationRegistry | None = None,
    ) -> None:
        self._rows: dict[str, LocationRecord] = {}
        if registry is not None:
            for default in registry.default_records():
                self._rows[default.name] = default
        for record in records:
            self._rows[record.name] = record
        self._subscriptions: list[_LocalSubscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def rows(self) -> dict[str, LocationRecord]:
        return dict(self._rows)

    async def load_all(self) -> list[LocationRecord]:
        return list(self._rows.values())

    async def write_status(self, name: str, status: MailroomStatus, timestamp: datetime) -> None:
        record = LocationRecord(name=name, status=status, last_updated=timestamp)
        existed = name in self._rows
        self._rows[name] = record
        self._publish(ChangeEvent.updated(record) if existed else ChangeEvent.inserted(record))

    async def delete(self, name: str) -> None:
        old = self._rows.pop(name, None)
        if old is not None:
            self._publish(ChangeEvent.deleted(name, old))

    async def subscribe_to_changes(
        self,
        on_event: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        # A local store never disconnects, so on_error is never called.
        subscription = _LocalSubscription(self, on_event)
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: _LocalSubscription) -> None:
        self._subscriptions = [sub for sub in self._subscriptions if sub is not subscription]

    def _publish(self, event: ChangeEvent) -> None:
        loop = asyncio.get_running_loop()
        for subscription in list(self._subscriptions):
            loop.call_soon(subscription.deliver, event)
