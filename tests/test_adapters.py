from __future__ import annotations

import asyncio
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import pytest

from pymailroom import adapter as _adapter_module
from pymailroom._feed import FeedBootstrap
from pymailroom.adapter import InMemoryStoreAdapter, NullSubscription, RemoteStoreAdapter
from pymailroom.exceptions import (
    MailroomLoadError,
    MailroomSubscriptionError,
    MailroomTransportError,
    MailroomWriteError,
)
from pymailroom.models import LocationRecord, MailroomStatus
from pymailroom.registry import LocationRegistry
from pymailroom.state.events import ChangeEvent, ChangeKind

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@dataclass
class FakeTransport:
    rows: list[Any] = field(default_factory=list)
    fail_fetch: bool = False
    fail_upsert: bool = False
    upserts: list[dict[str, Any]] = field(default_factory=list)

    async def fetch_rows(self) -> list[dict[str, Any]]:
        if self.fail_fetch:
            raise MailroomTransportError("HTTP 503 from /rest/v1/mail_rooms", status_code=503)
        return list(self.rows)

    async def upsert_row(self, row: Mapping[str, Any]) -> None:
        if self.fail_upsert:
            raise MailroomTransportError("Request to /rest/v1/mail_rooms failed")
        self.upserts.append(dict(row))


@pytest.mark.asyncio
async def test_remote_load_all_skips_invalid_rows() -> None:
    transport = FakeTransport(
        rows=[
            {"name": "Day Hall", "status": "open", "last_updated": "2026-01-01T12:00:00+00:00"},
            {"name": "", "status": "open"},
            {"status": "closed"},
            {"name": "Flint Hall", "status": None, "last_updated": None},
        ]
    )
    adapter = RemoteStoreAdapter(transport)

    records = await adapter.load_all()

    assert records == [
        LocationRecord(name="Day Hall", status=MailroomStatus.OPEN, last_updated=T0),
        LocationRecord(name="Flint Hall"),
    ]


@pytest.mark.asyncio
async def test_remote_load_failure_is_a_load_error() -> None:
    adapter = RemoteStoreAdapter(FakeTransport(fail_fetch=True))

    with pytest.raises(MailroomLoadError) as excinfo:
        await adapter.load_all()

    assert isinstance(excinfo.value.__cause__, MailroomTransportError)


@pytest.mark.asyncio
async def test_remote_write_upserts_one_row() -> None:
    transport = FakeTransport()
    adapter = RemoteStoreAdapter(transport)

    await adapter.write_status("Day Hall", MailroomStatus.CLOSED, T0)

    assert transport.upserts == [
        {"name": "Day Hall", "status": "closed", "last_updated": "2026-01-01T12:00:00+00:00"},
    ]


@pytest.mark.asyncio
async def test_remote_write_failure_is_a_write_error() -> None:
    adapter = RemoteStoreAdapter(FakeTransport(fail_upsert=True))

    with pytest.raises(MailroomWriteError) as excinfo:
        await adapter.write_status("Day Hall", MailroomStatus.OPEN, T0)

    assert excinfo.value.name == "Day Hall"
    assert isinstance(excinfo.value.__cause__, MailroomTransportError)


@pytest.mark.asyncio
async def test_remote_without_feed_returns_inactive_subscription() -> None:
    adapter = RemoteStoreAdapter(FakeTransport())

    subscription = await adapter.subscribe_to_changes(lambda _event: None)

    assert isinstance(subscription, NullSubscription)
    assert not subscription.active
    await subscription.close()


@pytest.mark.asyncio
async def test_in_memory_seeds_registry_defaults() -> None:
    registry = LocationRegistry({"North": ["Booth Hall", "Haven Hall"]})
    seeded = LocationRecord(name="Haven Hall", status=MailroomStatus.OPEN, last_updated=T0)
    adapter = InMemoryStoreAdapter([seeded], registry=registry)

    records = {r.name: r for r in await adapter.load_all()}

    assert records == {"Booth Hall": LocationRecord(name="Booth Hall"), "Haven Hall": seeded}


@pytest.mark.asyncio
async def test_in_memory_notifies_subscribers_asynchronously() -> None:
    adapter = InMemoryStoreAdapter()
    events: list[ChangeEvent] = []
    subscription = await adapter.subscribe_to_changes(events.append)

    await adapter.write_status("Day Hall", MailroomStatus.OPEN, T0)
    assert events == []
    await asyncio.sleep(0)
    assert [e.kind for e in events] == [ChangeKind.INSERT]

    await adapter.write_status("Day Hall", MailroomStatus.CLOSED, T0)
    await asyncio.sleep(0)
    assert [e.kind for e in events] == [ChangeKind.INSERT, ChangeKind.UPDATE]
    assert adapter.rows()["Day Hall"].status is MailroomStatus.CLOSED

    await subscription.close()
    await subscription.close()
    assert adapter.subscriber_count == 0
    await adapter.delete("Day Hall")
    await asyncio.sleep(0)
    assert len(events) == 2
    assert adapter.rows() == {}


@pytest.mark.asyncio
async def test_in_memory_close_drops_pending_delivery() -> None:
    adapter = InMemoryStoreAdapter()
    events: list[ChangeEvent] = []
    subscription = await adapter.subscribe_to_changes(events.append)

    await adapter.write_status("Day Hall", MailroomStatus.OPEN, T0)
    await subscription.close()
    await asyncio.sleep(0)

    assert events == []
    assert not subscription.active


class _FakeRuntime:
    instances: list[_FakeRuntime] = []
    connect_error: Exception | None = None

    def __init__(self, *, loop: Any, on_payload: Any, on_error: Any, keepalive: int, logger: Any) -> None:
        self.on_payload = on_payload
        self.on_error = on_error
        self.keepalive = keepalive
        self.bootstrap: FeedBootstrap | None = None
        self.is_running = False
        self.start_thread: int | None = None
        self.stop_thread: int | None = None
        _FakeRuntime.instances.append(self)

    def start(self, bootstrap: FeedBootstrap) -> None:
        self.start_thread = threading.get_ident()
        if _FakeRuntime.connect_error is not None:
            raise _FakeRuntime.connect_error
        self.bootstrap = bootstrap
        self.is_running = True

    def stop(self) -> None:
        self.stop_thread = threading.get_ident()
        self.is_running = False


@pytest.fixture
def fake_runtime(monkeypatch: pytest.MonkeyPatch) -> type[_FakeRuntime]:
    monkeypatch.setattr(_adapter_module, "ChangeFeedRuntime", _FakeRuntime)
    _FakeRuntime.instances.clear()
    _FakeRuntime.connect_error = None
    return _FakeRuntime


def _feed_bootstrap() -> FeedBootstrap:
    return FeedBootstrap(broker_host="broker.test", broker_port=8883, topic="t", client_id="pymailroom_x")


@pytest.mark.asyncio
async def test_remote_feed_dispatches_matching_table_only(fake_runtime: type[_FakeRuntime]) -> None:
    bootstrap = _feed_bootstrap()
    adapter = RemoteStoreAdapter(FakeTransport(), feed=bootstrap, table="mail_rooms", feed_keepalive=30)
    events: list[ChangeEvent] = []

    subscription = await adapter.subscribe_to_changes(events.append)
    runtime = fake_runtime.instances[0]
    assert subscription.active
    assert runtime.bootstrap is bootstrap
    assert runtime.keepalive == 30

    row = {"name": "Day Hall", "status": "open", "last_updated": "2026-01-01T12:00:00+00:00"}
    runtime.on_payload({"type": "INSERT", "table": "mail_rooms", "record": row})
    runtime.on_payload({"type": "INSERT", "table": "other", "record": row})
    runtime.on_payload({"type": "bogus"})

    assert [e.name for e in events] == ["Day Hall"]

    await subscription.close()
    assert not subscription.active
    assert not runtime.is_running


@pytest.mark.asyncio
async def test_remote_feed_connects_and_disconnects_off_the_loop_thread(fake_runtime: type[_FakeRuntime]) -> None:
    adapter = RemoteStoreAdapter(FakeTransport(), feed=_feed_bootstrap())
    loop_thread = threading.get_ident()

    subscription = await adapter.subscribe_to_changes(lambda _event: None)
    await subscription.close()

    runtime = fake_runtime.instances[0]
    assert runtime.start_thread is not None and runtime.start_thread != loop_thread
    assert runtime.stop_thread is not None and runtime.stop_thread != loop_thread


@pytest.mark.asyncio
async def test_remote_feed_connect_failure_is_a_subscription_error(fake_runtime: type[_FakeRuntime]) -> None:
    fake_runtime.connect_error = MailroomSubscriptionError("Change feed connect to broker.test:8883 failed")
    adapter = RemoteStoreAdapter(FakeTransport(), feed=_feed_bootstrap())

    with pytest.raises(MailroomSubscriptionError):
        await adapter.subscribe_to_changes(lambda _event: None)
