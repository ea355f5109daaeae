"""Client configuration for pymailroom."""

from __future__ import annotations

import dataclasses
import os
from typing import Any
from urllib.parse import urlsplit

from pymailroom._constants import DEFAULT_TABLE, DEFAULT_TICK_INTERVAL, validate_tick_interval
from pymailroom.exceptions import MailroomConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MailroomConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Store API base URL (PostgREST-style, e.g. ``https://xyz.example.co``).
    api_key : str
        API key sent as ``apikey`` and bearer token with every request.
    table : str
        Table holding one row per location.
    request_timeout : float
        Total timeout in seconds for a single store request.  The
        synchronization core imposes no timeout of its own.
    tick_interval : float
        Seconds between decay pulses.  ``0`` disables the ticker;
        otherwise must be between 1 and 60.
    feed_enabled : bool
        Subscribe to the MQTT change feed.
    feed_host : str or None
        MQTT broker host.  Defaults to the host of ``base_url``.
    feed_port : int
        MQTT broker port.
    feed_tls : bool
        Use TLS for the broker connection.
    feed_topic : str or None
        Topic carrying change events.  Defaults to ``mailroom/changes/<table>``.
    feed_keepalive : int
        MQTT keepalive in seconds.
    feed_username : str or None
        Broker username, if the broker requires one.
    feed_password : str or None
        Broker password.
    """

    base_url: str = ""
    api_key: str = ""
    table: str = DEFAULT_TABLE
    request_timeout: float = 10.0
    tick_interval: float = DEFAULT_TICK_INTERVAL
    feed_enabled: bool = True
    feed_host: str | None = None
    feed_port: int = 8883
    feed_tls: bool = True
    feed_topic: str | None = None
    feed_keepalive: int = 60
    feed_username: str | None = None
    feed_password: str | None = None

    def __post_init__(self) -> None:
        try:
            validate_tick_interval(self.tick_interval)
        except ValueError as exc:
            raise MailroomConfigError(str(exc)) from exc
        if self.request_timeout <= 0:
            raise MailroomConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if not self.table.strip():
            raise MailroomConfigError("table must be non-empty")

    @property
    def resolved_feed_host(self) -> str | None:
        """Broker host, falling back to the host of ``base_url``."""
        if self.feed_host:
            return self.feed_host
        if not self.base_url:
            return None
        return urlsplit(self.base_url).hostname

    @property
    def resolved_feed_topic(self) -> str:
        return self.feed_topic or f"mailroom/changes/{self.table}"

    @classmethod
    def from_env(cls, **overrides: Any) -> MailroomConfig:
        """Create configuration from environment variables.

        Reads ``MAILROOM_BASE_URL``, ``MAILROOM_API_KEY`` and the optional
        ``MAILROOM_*`` variables below.  Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        MailroomConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "MAILROOM_BASE_URL": "base_url",
            "MAILROOM_API_KEY": "api_key",
            "MAILROOM_TABLE": "table",
            "MAILROOM_FEED_HOST": "feed_host",
            "MAILROOM_FEED_TOPIC": "feed_topic",
            "MAILROOM_FEED_USERNAME": "feed_username",
            "MAILROOM_FEED_PASSWORD": "feed_password",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields, handled separately
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "MAILROOM_REQUEST_TIMEOUT": ("request_timeout", float),
            "MAILROOM_TICK_INTERVAL": ("tick_interval", float),
            "MAILROOM_FEED_PORT": ("feed_port", int),
            "MAILROOM_FEED_KEEPALIVE": ("feed_keepalive", int),
        }
        for env_key, (field_name, caster) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise MailroomConfigError(f"{env_key} is not a valid number: {val!r}") from exc

        if "feed_enabled" not in overrides:
            config_kwargs["feed_enabled"] = _env_bool(env.get("MAILROOM_FEED_ENABLED"), True)
        if "feed_tls" not in overrides:
            config_kwargs["feed_tls"] = _env_bool(env.get("MAILROOM_FEED_TLS"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
