"""Synchronization core and high-level async client."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import aiohttp

from pymailroom._constants import DEFAULT_TICK_INTERVAL, validate_tick_interval
from pymailroom._feed import build_feed_bootstrap
from pymailroom._transport import RestTransport
from pymailroom.adapter import RemoteStoreAdapter, StoreAdapter, Subscription
from pymailroom.config import MailroomConfig
from pymailroom.exceptions import (
    MailroomConfigError,
    MailroomError,
    MailroomLoadError,
    MailroomSubscriptionError,
    MailroomWriteError,
    UnknownLocationError,
)
from pymailroom.models._base import MailroomStatus, ensure_utc
from pymailroom.models.location import EffectiveView, LocationRecord
from pymailroom.registry import DEFAULT_REGISTRY, LocationRegistry
from pymailroom.state.events import ChangeEvent
from pymailroom.state.policy import project
from pymailroom.state.store import LocationCache

_logger = logging.getLogger(__name__)

Listener = Callable[[list[str]], None]
ErrorSink = Callable[[MailroomError], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StatusBoard:
    """Client-side view of every location's status.

    Reconciles three independent inputs into one cache: the full snapshot
    load, change-feed events, and local reports (applied optimistically).
    Effective status is recomputed from the cached record on every read, so
    decay needs no background work; the optional ticker only exists to
    announce decay flips to push-based consumers.

    All methods must be called from the event loop that owns the board.

    Usage::

        async with StatusBoard(adapter) as board:
            await board.report_status("Shaw Hall", MailroomStatus.OPEN)
            print(board.view("Shaw Hall").status)
    """

    def __init__(
        self,
        adapter: StoreAdapter,
        *,
        registry: LocationRegistry = DEFAULT_REGISTRY,
        clock: Callable[[], datetime] = _utcnow,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        on_error: ErrorSink | None = None,
    ) -> None:
        try:
            self._tick_interval = validate_tick_interval(tick_interval)
        except ValueError as exc:
            raise MailroomConfigError(str(exc)) from exc
        self._adapter = adapter
        self._registry = registry
        self._clock = clock
        self._on_error = on_error
        self._cache = LocationCache()
        self._listeners: list[Listener] = []
        self._last_effective: dict[str, MailroomStatus] = {}
        self._subscription: Subscription | None = None
        self._ticker: asyncio.Task[None] | None = None
        self._loaded = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> StatusBoard:
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Subscribe, start the decay ticker, then load the snapshot.

        The subscription comes first so no change is missed between the
        snapshot read and the first event.  A feed that cannot be joined is
        reported to ``on_error`` and the board runs on decay alone until
        :meth:`resubscribe` succeeds.
        """
        try:
            await self.subscribe()
        except MailroomSubscriptionError:
            _logger.warning("Change feed unavailable; continuing without live updates")
        if self._tick_interval > 0 and self._ticker is None:
            self._ticker = asyncio.create_task(self._run_ticker())
        await self.initialize()

    async def stop(self) -> None:
        """Release the subscription and the ticker.  Safe to call twice."""
        ticker = self._ticker
        self._ticker = None
        if ticker is not None:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
        await self._close_subscription()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def registry(self) -> LocationRegistry:
        return self._registry

    @property
    def loaded(self) -> bool:
        """Whether at least one snapshot load has succeeded."""
        return self._loaded

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def ticking(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Replace the cache wholesale with the store's snapshot.

        On failure the cache keeps its last good state (empty on the first
        load) and :class:`MailroomLoadError` is raised.
        """
        try:
            records = await self._adapter.load_all()
        except MailroomLoadError as exc:
            _logger.debug("Snapshot load failed", exc_info=True)
            self._report(exc)
            raise

        before = self._cache.records()
        self._cache.replace_all(records)
        self._loaded = True
        after = self._cache.records()
        order = {name: index for index, name in enumerate(self._registry.ordered_names)}
        changed = sorted(
            (name for name in set(before) | set(after) if before.get(name) != after.get(name)),
            key=lambda name: (order.get(name, len(order)), name),
        )
        _logger.debug("Snapshot loaded: %d records, %d changed", len(after), len(changed))
        if changed:
            self._notify(changed)

    def on_change_event(self, event: ChangeEvent) -> bool:
        """Merge one change-feed event.  Returns whether the cache changed."""
        changed = self._cache.apply(event)
        if changed:
            _logger.debug("Applied %s for %s", event.kind.value, event.name)
            self._notify([event.name])
        return changed

    def tick(self, now: datetime | None = None) -> list[str]:
        """Recompute effective status and announce the names that flipped.

        Returns the names whose effective status differs from the previous
        pulse, in display order.
        """
        instant = self._now(now)
        flipped: list[str] = []
        for name in self._known_names():
            status = self.view(name, instant).status
            if self._last_effective.get(name, MailroomStatus.UNKNOWN) != status:
                flipped.append(name)
            self._last_effective[name] = status
        if flipped:
            _logger.debug("Tick at %s flipped %s", instant.isoformat(), flipped)
            self._fire(flipped)
        return flipped

    async def report_status(
        self,
        name: str,
        status: MailroomStatus | str,
        now: datetime | None = None,
    ) -> EffectiveView:
        """Report a status for *name*.

        The cache reflects the report immediately; the write follows.  If the
        write fails the board reloads the full snapshot to drop the
        unconfirmed entry (or, if that reload fails too, rolls the entry back
        locally) and raises :class:`MailroomWriteError`.
        """
        if name not in self._registry:
            raise UnknownLocationError(name)
        status = MailroomStatus(status)
        timestamp = self._now(now)

        previous = self._cache.get(name)
        optimistic = LocationRecord(name=name, status=status, last_updated=timestamp)
        self._cache.put(optimistic)
        self._notify([name], timestamp)

        try:
            await self._adapter.write_status(name, status, timestamp)
        except MailroomError as exc:
            _logger.debug("Write for %s failed; resynchronizing", name, exc_info=True)
            resynced = True
            try:
                await self.initialize()
            except MailroomLoadError:
                resynced = False
                if self._cache.restore(name, previous, expected=optimistic):
                    self._notify([name])
            error = MailroomWriteError(
                f"Status report for {name!r} was not saved: {exc}",
                name=name,
                resynced=resynced,
            )
            self._report(error)
            raise error from exc

        return self.view(name, timestamp)

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    async def subscribe(self) -> None:
        """Join the change feed if not already joined."""
        if self.subscribed:
            return
        await self._close_subscription()
        try:
            self._subscription = await self._adapter.subscribe_to_changes(
                self.on_change_event,
                self._on_subscription_error,
            )
        except MailroomSubscriptionError as exc:
            self._report(exc)
            raise

    async def resubscribe(self) -> None:
        """Rejoin the change feed and catch up with a full reload."""
        await self._close_subscription()
        await self.subscribe()
        await self.initialize()

    async def _close_subscription(self) -> None:
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            await subscription.close()

    def _on_subscription_error(self, error: MailroomSubscriptionError) -> None:
        _logger.debug("Change feed error: %s", error)
        self._report(error)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def view(self, name: str, now: datetime | None = None) -> EffectiveView:
        """Effective view of *name*; the registry default if nothing is cached."""
        record = self._cache.get(name)
        if record is None:
            record = self._registry.default_record(name)
        return project(record, self._now(now))

    def snapshot(self, now: datetime | None = None) -> dict[str, EffectiveView]:
        """Views of every registry location plus any extra cached names."""
        instant = self._now(now)
        return {name: self.view(name, instant) for name in self._known_names()}

    def grouped(self, now: datetime | None = None) -> dict[str, list[EffectiveView]]:
        """Registry locations grouped by neighborhood, in registry order."""
        instant = self._now(now)
        return {
            neighborhood: [self.view(name, instant) for name in names]
            for neighborhood, names in self._registry.neighborhoods.items()
        }

    def ungrouped(self, now: datetime | None = None) -> list[EffectiveView]:
        """Cached records whose name is not in the registry."""
        instant = self._now(now)
        return [self.view(name, instant) for name in self._cache.records() if name not in self._registry]

    def records(self) -> dict[str, LocationRecord]:
        """Raw cached records (a copy)."""
        return self._cache.records()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the changed names whenever the view changes.

        Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else self._clock()

    def _known_names(self) -> list[str]:
        names = list(self._registry.ordered_names)
        names.extend(name for name in self._cache.records() if name not in self._registry)
        return names

    def _notify(self, names: Iterable[str], now: datetime | None = None) -> None:
        changed = list(names)
        instant = self._now(now)
        for name in changed:
            self._last_effective[name] = self.view(name, instant).status
        self._fire(changed)

    def _fire(self, names: list[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(list(names))
            except Exception:
                _logger.debug("Board listener failed", exc_info=True)

    def _report(self, error: MailroomError) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            _logger.debug("on_error callback failed", exc_info=True)

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            self.tick()


class MailroomClient:
    """Async client wiring the HTTP store and change feed into status boards.

    Usage::

        async with MailroomClient(config) as client:
            async with client.board() as board:
                await board.report_status("Day Hall", "open")
    """

    def __init__(
        self,
        config: MailroomConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        registry: LocationRegistry = DEFAULT_REGISTRY,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._registry = registry
        self._adapter: RemoteStoreAdapter | None = None
        self._boards: list[StatusBoard] = []

    async def __aenter__(self) -> MailroomClient:
        if not self._config.base_url:
            raise MailroomConfigError("base_url is required")
        feed = build_feed_bootstrap(self._config) if self._config.feed_enabled else None
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._adapter = RemoteStoreAdapter(
            RestTransport(self._config, self._http_session),
            feed=feed,
            table=self._config.table,
            feed_keepalive=self._config.feed_keepalive,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        boards = self._boards
        self._boards = []
        for board in boards:
            await board.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._adapter = None

    @property
    def adapter(self) -> RemoteStoreAdapter:
        if self._adapter is None:
            raise MailroomError("Client not initialized. Use 'async with MailroomClient(...) as client:'")
        return self._adapter

    def board(self, *, on_error: ErrorSink | None = None) -> StatusBoard:
        """Create a (not yet started) board bound to this client's store.

        Boards still running when the client closes are stopped with it.
        """
        board = StatusBoard(
            self.adapter,
            registry=self._registry,
            tick_interval=self._config.tick_interval,
            on_error=on_error,
        )
        self._boards.append(board)
        return board
