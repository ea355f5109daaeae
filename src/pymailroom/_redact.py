"""Redaction for debug logs.

Every store request carries the API key twice (``apikey`` header and bearer
token) and the feed may hold broker credentials.  Rows and payloads are
passed through :func:`redact_for_log` before they reach a DEBUG record.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "apikey",
        "api_key",
        "authorization",
        "password",
        "feed_password",
        "token",
        "access_token",
        "refresh_token",
        "cookie",
    }
)

_BEARER_RE = re.compile(r"(?i)\bbearer\s+\S+")

_MAX_DEPTH = 20


def _is_secret_key(key: str) -> bool:
    return key.strip().lower().replace("-", "_") in _SECRET_KEYS


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* that is safe to log.

    Secret-named keys are replaced, bearer tokens embedded in free text are
    masked and long strings are cut at *max_string* characters.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        masked = _BEARER_RE.sub("Bearer <redacted>", value)
        if len(masked) > max_string:
            return f"{masked[:max_string]}…<truncated>"
        return masked

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if _is_secret_key(key):
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    return repr(value)
