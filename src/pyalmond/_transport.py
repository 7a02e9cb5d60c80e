"""WebSocket transport with keepalive, reconnect and debounced up/down events."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

import aiohttp

from pyalmond._redact import redact_url
from pyalmond.config import AlmondConfig
from pyalmond.exceptions import AlmondTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the correlation engine needs from a socket.

    ``send`` writes one text frame or raises :class:`AlmondTransportError`.
    """

    async def send(self, text: str) -> None:
        ...


class SessionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


def _safe_call(callback: Callable[..., None] | None, *args: object) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        _logger.warning("Transport callback %r failed", callback, exc_info=True)


class AlmondWebSocket:
    """One logical connection to the hub, hiding physical reconnects.

    The socket is reopened ``reconnect_delay`` seconds after every close or
    failed attempt until :meth:`stop` is called.  ``on_open`` fires on every
    physical open (the owner re-syncs state there), while ``on_connected``
    and ``on_disconnected`` are debounced by the hysteresis window: an
    outage shorter than ``hysteresis`` seconds is never reported.
    """

    def __init__(
        self,
        config: AlmondConfig,
        http_session: aiohttp.ClientSession,
        *,
        on_message: Callable[[str], None] | None = None,
        on_open: Callable[[], None] | None = None,
        on_connected: Callable[[], None] | None = None,
        on_disconnected: Callable[[], None] | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self.on_message = on_message
        self.on_open = on_open
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected

        self._state = SessionState.DISCONNECTED
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._hysteresis: asyncio.TimerHandle | None = None
        self._alive = False
        self._stopped = True
        self._ever_connected = False
        self._down_reported = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SessionState.OPEN

    @property
    def url(self) -> str:
        return self._config.url

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start connecting in the background. Must run inside an event loop."""
        if self._task is not None and not self._task.done():
            return
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name="almond-websocket")

    async def stop(self) -> None:
        """Close the socket and stop reconnecting."""
        self._stopped = True
        self._cancel_hysteresis()
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._stop_keepalive()
        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()
        self._state = SessionState.DISCONNECTED
        _logger.debug("WebSocket session stopped")

    async def _run(self) -> None:
        while not self._stopped:
            self._state = SessionState.CONNECTING
            _logger.debug("Opening WebSocket %s", redact_url(self.url))
            try:
                ws = await asyncio.wait_for(
                    self._http.ws_connect(self.url, autoping=False, heartbeat=None),
                    self._config.connect_timeout,
                )
            except (aiohttp.ClientError, OSError, TimeoutError) as exc:
                _logger.debug("WebSocket connect failed: %s", exc)
                self._mark_closed()
                await asyncio.sleep(self._config.reconnect_delay)
                continue

            self._ws = ws
            self._mark_open()
            self._keepalive_task = asyncio.get_running_loop().create_task(
                self._keepalive(ws),
                name="almond-keepalive",
            )
            try:
                await self._read_loop(ws)
            except (ConnectionError, aiohttp.ClientError, RuntimeError) as exc:
                _logger.debug("WebSocket read failed: %s", exc)
            finally:
                await self._stop_keepalive()
                self._ws = None
                if not ws.closed:
                    await ws.close()

            if self._stopped:
                break
            _logger.debug("WebSocket closed (code=%s)", ws.close_code)
            self._mark_closed()
            await asyncio.sleep(self._config.reconnect_delay)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                _safe_call(self.on_message, msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                try:
                    text = msg.data.decode("utf-8")
                except UnicodeDecodeError:
                    _logger.debug("Dropping undecodable binary frame (%d bytes)", len(msg.data))
                    continue
                _safe_call(self.on_message, text)
            elif msg.type == aiohttp.WSMsgType.PING:
                await ws.pong(msg.data)
            elif msg.type == aiohttp.WSMsgType.PONG:
                self._alive = True
            elif msg.type == aiohttp.WSMsgType.ERROR:
                _logger.debug("WebSocket error: %s", ws.exception())
                break

    # ------------------------------------------------------------------
    # Keepalive
    # ------------------------------------------------------------------

    async def _keepalive(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._alive = True
        while not ws.closed:
            await asyncio.sleep(self._config.keepalive_interval)
            if not self._alive:
                _logger.info("Hub stopped answering pings; dropping connection")
                await ws.close(code=aiohttp.WSCloseCode.GOING_AWAY)
                return
            self._alive = False
            try:
                await ws.ping()
            except (ConnectionError, aiohttp.ClientError, RuntimeError) as exc:
                _logger.debug("Keepalive ping failed: %s", exc)
                await ws.close(code=aiohttp.WSCloseCode.GOING_AWAY)
                return

    async def _stop_keepalive(self) -> None:
        task = self._keepalive_task
        self._keepalive_task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------
    # Up/down reporting
    # ------------------------------------------------------------------

    def _mark_open(self) -> None:
        self._state = SessionState.OPEN
        self._cancel_hysteresis()
        _logger.debug("WebSocket opened")
        if not self._ever_connected or self._down_reported:
            self._ever_connected = True
            self._down_reported = False
            _logger.info("Connected to hub at %s", redact_url(self.url))
            _safe_call(self.on_connected)
        _safe_call(self.on_open)

    def _mark_closed(self) -> None:
        # Between attempts; only stop() leaves the session DISCONNECTED.
        self._state = SessionState.CONNECTING
        if self._hysteresis is None and not self._down_reported:
            loop = asyncio.get_running_loop()
            self._hysteresis = loop.call_later(self._config.hysteresis, self._on_hysteresis_elapsed)

    def _on_hysteresis_elapsed(self) -> None:
        self._hysteresis = None
        if self._stopped or self._state == SessionState.OPEN or self._down_reported:
            return
        self._down_reported = True
        _logger.info("Lost connection to hub at %s", redact_url(self.url))
        _safe_call(self.on_disconnected)

    def _cancel_hysteresis(self) -> None:
        if self._hysteresis is not None:
            self._hysteresis.cancel()
            self._hysteresis = None

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def send(self, text: str) -> None:
        """Write one text frame.

        Raises
        ------
        AlmondTransportError
            If the socket is not open or the write fails.  Nothing is
            retried here.
        """
        ws = self._ws
        if ws is None or ws.closed or self._state != SessionState.OPEN:
            raise AlmondTransportError("WebSocket is not connected", url=redact_url(self.url))
        try:
            await ws.send_str(text)
        except (ConnectionError, aiohttp.ClientError, RuntimeError) as exc:
            raise AlmondTransportError(f"WebSocket send failed: {exc}", url=redact_url(self.url)) from exc
