"""Client configuration for pyalmond."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

from pyalmond._constants import (
    CONFIRM_TIMEOUT_S,
    CONNECT_TIMEOUT_S,
    DEFAULT_PORT,
    DEFAULT_USERNAME,
    HYSTERESIS_S,
    KEEPALIVE_INTERVAL_S,
    MAX_SEND_RETRIES,
    RECONNECT_DELAY_S,
    SEND_TIMEOUT_S,
)
from pyalmond.exceptions import AlmondConfigError


def _env_number(env_key: str, value: str, convert: Callable[[str], Any]) -> Any:
    try:
        return convert(value.strip())
    except ValueError as exc:
        raise AlmondConfigError(f"{env_key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class AlmondConfig:
    """Client configuration.

    Parameters
    ----------
    host : str
        Hostname or IP address of the Almond+ hub.
    password : str
        Password of the hub's local WebSocket API.
    port : int
        WebSocket port. Defaults to ``7681``.
    username : str
        Local API user. Defaults to ``"root"``.
    keepalive_interval : float
        Seconds between liveness pings. A ping whose pong has not been
        seen by the next tick marks the socket dead.
    reconnect_delay : float
        Seconds to wait after a close or a failed connect before trying
        again.
    send_timeout : float
        Seconds to wait for a response before a request is re-sent.
    max_send_retries : int
        How many times an unanswered request is re-sent before the caller
        receives a retries-exhausted result.
    hysteresis : float
        Seconds a connection may stay down before ``disconnected`` is
        reported. A reconnect inside this window is not reported at all.
    confirm_timeout : float
        Seconds :meth:`AlmondClient.set_property` waits for the hub to push
        the applied value after acknowledging the command.  Set to ``0``
        to wait indefinitely.
    connect_timeout : float
        Seconds allowed for a single WebSocket handshake.
    """

    host: str
    password: str
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    keepalive_interval: float = KEEPALIVE_INTERVAL_S
    reconnect_delay: float = RECONNECT_DELAY_S
    send_timeout: float = SEND_TIMEOUT_S
    max_send_retries: int = MAX_SEND_RETRIES
    hysteresis: float = HYSTERESIS_S
    confirm_timeout: float = CONFIRM_TIMEOUT_S
    connect_timeout: float = CONNECT_TIMEOUT_S

    def __post_init__(self) -> None:
        if not self.host or not self.host.strip():
            raise AlmondConfigError("host must be non-empty")
        if not 0 < self.port < 65536:
            raise AlmondConfigError(f"port must be between 1 and 65535, got {self.port}")
        if self.max_send_retries < 0:
            raise AlmondConfigError("max_send_retries must not be negative")
        for name in ("keepalive_interval", "send_timeout", "connect_timeout"):
            if getattr(self, name) <= 0:
                raise AlmondConfigError(f"{name} must be positive")
        for name in ("reconnect_delay", "hysteresis", "confirm_timeout"):
            if getattr(self, name) < 0:
                raise AlmondConfigError(f"{name} must not be negative")

    @property
    def url(self) -> str:
        """WebSocket URL; the credentials are part of the path."""
        username = quote(self.username, safe="")
        password = quote(self.password, safe="")
        return f"ws://{self.host}:{self.port}/{username}/{password}"

    @classmethod
    def from_env(cls, **overrides: Any) -> AlmondConfig:
        """Create configuration from environment variables.

        Reads ``ALMOND_HOST`` and ``ALMOND_PASSWORD`` plus the optional
        ``ALMOND_*`` variables below. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        AlmondConfig
            Populated configuration.

        Raises
        ------
        AlmondConfigError
            If a required value is missing or a numeric value is malformed.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "ALMOND_HOST": "host",
            "ALMOND_PASSWORD": "password",
            "ALMOND_USERNAME": "username",
        }
        _ENV_NUMERIC_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "ALMOND_PORT": ("port", int),
            "ALMOND_KEEPALIVE_INTERVAL": ("keepalive_interval", float),
            "ALMOND_RECONNECT_DELAY": ("reconnect_delay", float),
            "ALMOND_SEND_TIMEOUT": ("send_timeout", float),
            "ALMOND_MAX_SEND_RETRIES": ("max_send_retries", int),
            "ALMOND_HYSTERESIS": ("hysteresis", float),
            "ALMOND_CONFIRM_TIMEOUT": ("confirm_timeout", float),
            "ALMOND_CONNECT_TIMEOUT": ("connect_timeout", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, convert) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, convert)

        config_kwargs.update(overrides)

        missing = [name for name in ("host", "password") if name not in config_kwargs]
        if missing:
            raise AlmondConfigError(f"Missing configuration: {', '.join(missing)}")

        return cls(**config_kwargs)
