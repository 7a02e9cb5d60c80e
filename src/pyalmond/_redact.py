"""Helpers for safe debug logging.

The hub's WebSocket URL carries the API password in its path, and some
commands echo credentials back. This module scrubs both before they reach
DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit, urlunsplit

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "pass",
        "passwd",
        "secret",
        "token",
    }
)


def redact_url(url: str) -> str:
    """Return *url* with the trailing password path segment replaced.

    ``ws://10.0.0.2:7681/root/hunter2`` becomes
    ``ws://10.0.0.2:7681/root/<redacted>``.
    """
    parts = urlsplit(url)
    segments = parts.path.split("/")
    if len(segments) >= 3 and segments[-1]:
        segments[-1] = "<redacted>"
    return urlunsplit(parts._replace(path="/".join(segments)))


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of a hub message that is safe for DEBUG logs.

    - values under credential keys (``Password`` in account commands) are
      replaced by ``<redacted>``
    - ``ws://`` URLs lose their password path segment
    - long strings, such as a raw ``DeviceList`` frame, are truncated

    Decoded scalars (``bool``/``int``/``float``) pass through unchanged.
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if value.startswith(("ws://", "wss://")):
            value = redact_url(value)
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, Mapping):
        return {
            str(key): "<redacted>"
            if str(key).lower() in _SENSITIVE_VALUE_KEYS
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }

    if isinstance(value, (list, tuple)):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    if isinstance(value, (bytes, bytearray)):
        # Undecodable binary frame.
        return f"<bytes:{len(value)}b>"

    return repr(value)
