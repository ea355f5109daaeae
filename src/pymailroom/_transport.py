"""HTTP transport for the PostgREST-style location table."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pymailroom._constants import REST_PATH_PREFIX, USER_AGENT
from pymailroom._redact import redact_for_log
from pymailroom.config import MailroomConfig
from pymailroom.exceptions import MailroomTransportError

_logger = logging.getLogger(__name__)

_SELECT_COLUMNS = "name,status,last_updated"


class Transport(Protocol):
    """Structural transport interface used by the store adapter.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestTransport`) concrete.
    """

    async def fetch_rows(self) -> list[dict[str, Any]]:
        ...

    async def upsert_row(self, row: Mapping[str, Any]) -> None:
        ...


class RestTransport:
    """Reads and upserts rows of one table over HTTP."""

    def __init__(self, config: MailroomConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    @property
    def endpoint(self) -> str:
        return f"{REST_PATH_PREFIX}/{self._config.table}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._config.api_key:
            headers["apikey"] = self._config.api_key
            headers["authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        *,
        params: Mapping[str, str],
        headers: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> str:
        url = f"{self._config.base_url.rstrip('/')}{self.endpoint}"
        merged = self._headers()
        if headers:
            merged.update(headers)
        data = json.dumps(body, separators=(",", ":")) if body is not None else None

        _logger.debug("%s %s params=%s body=%s", method, url, params, redact_for_log(body))

        try:
            async with self._http.request(
                method,
                url,
                params=dict(params),
                data=data,
                headers=merged,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise MailroomTransportError(
                        f"HTTP {resp.status} from {self.endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=self.endpoint,
                    )
        except MailroomTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise MailroomTransportError(
                f"Request to {self.endpoint} failed: {exc!r}",
                endpoint=self.endpoint,
            ) from exc
        return text

    async def fetch_rows(self) -> list[dict[str, Any]]:
        """Fetch every row of the table (no pagination; the table is small)."""
        text = await self._request("GET", params={"select": _SELECT_COLUMNS})
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MailroomTransportError(
                f"Invalid JSON from {self.endpoint}: {text[:200]}",
                endpoint=self.endpoint,
            ) from exc
        if not isinstance(body, list):
            raise MailroomTransportError(
                f"Expected a JSON array from {self.endpoint}, got {type(body).__name__}",
                endpoint=self.endpoint,
            )
        return [row for row in body if isinstance(row, dict)]

    async def upsert_row(self, row: Mapping[str, Any]) -> None:
        """Insert or update one row keyed by ``name`` in a single statement."""
        await self._request(
            "POST",
            params={"on_conflict": "name"},
            headers={"prefer": "resolution=merge-duplicates,return=minimal"},
            body=[dict(row)],
        )
