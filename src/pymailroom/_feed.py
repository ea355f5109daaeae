"""Internal MQTT change-feed bootstrap, parsing, and runtime helpers."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from pymailroom.config import MailroomConfig
from pymailroom.exceptions import MailroomConfigError, MailroomSubscriptionError


@dataclass(frozen=True)
class FeedBootstrap:
    """Broker data required to connect to the change feed."""

    broker_host: str
    broker_port: int
    topic: str
    client_id: str
    tls: bool = True
    username: str | None = None
    password: str | None = None


def build_feed_bootstrap(config: MailroomConfig) -> FeedBootstrap:
    """Build broker connection details from configuration."""
    host = config.resolved_feed_host
    if not host:
        raise MailroomConfigError("No change-feed host (set feed_host or base_url)")
    return FeedBootstrap(
        broker_host=host,
        broker_port=config.feed_port,
        topic=config.resolved_feed_topic,
        client_id=f"pymailroom_{secrets.token_hex(6)}",
        tls=config.feed_tls,
        username=config.feed_username,
        password=config.feed_password,
    )


def decode_feed_payload(payload: bytes) -> dict[str, Any]:
    """Parse change-feed payload bytes into a JSON object."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("Change-feed payload is not a JSON object")
    return parsed


class ChangeFeedRuntime:
    """Threaded paho-mqtt runtime that emits parsed payloads onto an asyncio loop.

    The paho network thread never calls back into pymailroom state directly;
    every callback is marshalled with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_payload: Callable[[dict[str, Any]], None],
        on_error: Callable[[MailroomSubscriptionError], None] | None = None,
        keepalive: int = 60,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_payload = on_payload
        self._on_error = on_error
        self._keepalive = keepalive
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topic: str | None = None

    @property
    def is_running(self) -> bool:
        """Whether the feed runtime is actively running."""
        return self._running

    def _report_error(self, message: str) -> None:
        if self._on_error is None:
            return
        self._loop.call_soon_threadsafe(self._on_error, MailroomSubscriptionError(message))

    def start(self, bootstrap: FeedBootstrap) -> None:
        """Connect and subscribe with provided broker details."""
        self.stop()
        self._logger.debug(
            "Change feed start requested host=%s port=%s topic=%s client_id=%s",
            bootstrap.broker_host,
            bootstrap.broker_port,
            bootstrap.topic,
            bootstrap.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=bootstrap.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if bootstrap.username:
            client.username_pw_set(bootstrap.username, bootstrap.password)
        if bootstrap.tls:
            client.tls_set()

        self._topic = bootstrap.topic

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("Change feed connect failed: %s", reason_code)
                self._report_error(f"Change feed connect failed: {reason_code}")
                return
            self._logger.debug("Change feed connected reason=%s", reason_code)
            if self._topic:
                self._logger.debug("Change feed subscribing topic=%s", self._topic)
                c.subscribe(self._topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                parsed = decode_feed_payload(msg.payload)
            except (UnicodeDecodeError, ValueError):
                self._logger.debug("Change feed payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._logger.debug("Change feed message topic=%s type=%s", msg.topic, parsed.get("type"))
            self._loop.call_soon_threadsafe(self._on_payload, parsed)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("Change feed disconnected: %s", reason_code)
                self._report_error(f"Change feed disconnected: {reason_code}")

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(bootstrap.broker_host, bootstrap.broker_port, keepalive=self._keepalive)
        except OSError as exc:
            self._topic = None
            raise MailroomSubscriptionError(
                f"Change feed connect to {bootstrap.broker_host}:{bootstrap.broker_port} failed: {exc}"
            ) from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("Change feed network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._topic = None

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("Change feed disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Change feed network loop stopped")
