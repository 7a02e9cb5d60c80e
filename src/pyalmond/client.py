"""High-level async client for the Almond+ hub WebSocket API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from pyalmond._codec import decode_value, encode_value
from pyalmond._correlation import CompletionCallback, CorrelationEngine
from pyalmond._transport import AlmondWebSocket
from pyalmond.catalog import DeviceCatalog
from pyalmond.config import AlmondConfig
from pyalmond.exceptions import AlmondError
from pyalmond.models.command import CommandResult, CommandStatus, CommandType
from pyalmond.models.device import Device
from pyalmond.state.events import AlmondEvent, EventListeners, Listener
from pyalmond.state.policy import values_differ
from pyalmond.state.registry import DeviceRegistry

_logger = logging.getLogger(__name__)

# Resolves pending property confirmations when the client closes.
_CLOSED = object()


def _invoke(callback: CompletionCallback | None, result: CommandResult) -> None:
    if callback is None:
        return
    try:
        callback(result)
    except Exception:
        _logger.warning("Completion callback for %s failed", result.command_type, exc_info=True)


class AlmondClient:
    """Async client for one Almond+ hub.

    Usage::

        async with AlmondClient(config, catalog=catalog) as client:
            await client.wait_ready()
            for device in client.list_devices():
                print(device.name, device.properties)
            await client.set_property("7", 1, True)

    The connection is kept open in the background for the lifetime of the
    ``async with`` block.  Every (re)connect refreshes the device list; the
    first refresh fires ``ready``.
    """

    def __init__(
        self,
        config: AlmondConfig,
        *,
        catalog: DeviceCatalog | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._listeners = EventListeners()
        self._registry = DeviceRegistry(
            catalog,
            listeners=self._listeners,
            on_unknown_device=self._on_unknown_device,
        )
        self._ws: AlmondWebSocket | None = None
        self._engine: CorrelationEngine | None = None
        self._ready = asyncio.Event()
        self._refresh_task: asyncio.Task[CommandResult] | None = None
        self._confirmations: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AlmondClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._ws = AlmondWebSocket(
            self._config,
            self._http_session,
            on_message=self._on_message,
            on_open=self._on_open,
            on_connected=lambda: self._listeners.emit(AlmondEvent.CONNECTED),
            on_disconnected=lambda: self._listeners.emit(AlmondEvent.DISCONNECTED),
        )
        self._engine = CorrelationEngine(
            self._ws,
            send_timeout=self._config.send_timeout,
            max_retries=self._config.max_send_retries,
            on_push=self._registry.dispatch,
        )
        self._ws.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Disconnect and fail every outstanding request."""
        if self._ws is not None:
            await self._ws.stop()
            self._ws = None
        if self._engine is not None:
            self._engine.cancel_all()
            self._engine = None
        for confirmed in list(self._confirmations):
            if not confirmed.done():
                confirmed.set_result(_CLOSED)
        self._confirmations.clear()
        refresh = self._refresh_task
        self._refresh_task = None
        if refresh is not None and not refresh.done():
            refresh.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await refresh
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: AlmondEvent | str, listener: Listener) -> Callable[[], None]:
        """Register *listener* for *event*; returns an unsubscribe callable.

        See :class:`~pyalmond.state.events.AlmondEvent` for the arguments
        each event passes.
        """
        return self._listeners.on(event, listener)

    def off(self, event: AlmondEvent | str, listener: Listener) -> bool:
        return self._listeners.off(event, listener)

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._ws.is_open

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until the first device list has been loaded.

        Raises :class:`TimeoutError` if *timeout* elapses first.
        """
        await asyncio.wait_for(self._ready.wait(), timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_engine(self) -> CorrelationEngine:
        if self._engine is None:
            raise AlmondError("Client not initialized. Use 'async with AlmondClient(...) as client:'")
        return self._engine

    def _on_message(self, text: str) -> None:
        if self._engine is not None:
            self._engine.handle_message(text)

    def _on_open(self) -> None:
        self._schedule_refresh()

    def _on_unknown_device(self, device_id: str) -> None:
        _logger.debug("Device %s not known yet; refreshing device list", device_id)
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self.refresh_device_list())

    # ------------------------------------------------------------------
    # Device list
    # ------------------------------------------------------------------

    async def refresh_device_list(self) -> CommandResult:
        """Request the full device list and merge it into the registry."""
        engine = self._require_engine()
        result = await engine.request({"CommandType": CommandType.DEVICE_LIST})
        if not result.success:
            _logger.warning("Couldn't get device list: %s", result.error or result.status.value)
            return result
        self._registry.load_device_list(result.response)
        if not self._ready.is_set():
            self._ready.set()
            self._listeners.emit(AlmondEvent.READY)
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_devices(self) -> list[Device]:
        """Snapshots of all known devices."""
        return self._registry.list_devices()

    def get_device_by_id(self, device_id: str) -> Device | None:
        """Snapshot of one device, or ``None`` if unknown."""
        return self._registry.find_device(device_id)

    def get_prop(self, device_id: str, index: int) -> Any:
        """Current value of a device property.

        Raises :class:`~pyalmond.exceptions.AlmondDeviceNotFoundError` if
        the device or property is unknown.
        """
        return self._registry.get_prop(device_id, index)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_command(
        self,
        request: Mapping[str, Any],
        on_complete: CompletionCallback | None = None,
    ) -> CommandResult:
        """Send a raw command and wait for its response."""
        engine = self._require_engine()
        return await engine.send(request, on_complete)

    async def set_property(
        self,
        device_id: str,
        index: int,
        value: Any,
        on_complete: CompletionCallback | None = None,
    ) -> CommandResult:
        """Set a device property and wait until the hub reports it applied.

        The hub acknowledges ``UpdateDeviceIndex`` before the device has
        acted on it.  After a successful acknowledgement this waits for the
        push that reports the property at *value*, bounded by
        ``config.confirm_timeout``.  The returned result carries the
        confirmed value in ``value``.

        Raises :class:`~pyalmond.exceptions.AlmondDeviceNotFoundError` if
        the device or property is unknown; every other failure is reported
        through the result's ``status``.
        """
        engine = self._require_engine()
        device_id = str(device_id)
        current = self._registry.get_prop(device_id, index)
        target = decode_value(encode_value(value))

        if not values_differ(current, target):
            result = CommandResult(
                status=CommandStatus.OK,
                command_type=CommandType.UPDATE_DEVICE_INDEX.value,
                value=current,
            )
            _invoke(on_complete, result)
            return result

        confirmed: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._confirmations.add(confirmed)

        def _on_value(updated_id: str, updated_index: int, new_value: Any) -> None:
            if updated_id != device_id or updated_index != index or confirmed.done():
                return
            if not values_differ(new_value, target):
                confirmed.set_result(new_value)

        # Watch before sending: the push may overtake the acknowledgement.
        # Every stored value counts, whatever the update policy reports.
        unwatch = self._registry.watch_values(_on_value)
        try:
            result = await engine.request(
                {
                    "CommandType": CommandType.UPDATE_DEVICE_INDEX,
                    "ID": device_id,
                    "Index": index,
                    "Value": value,
                }
            )
            if result.success:
                _logger.debug("Hub accepted device %s value [%s] update [%r]", device_id, index, value)
                timeout = self._config.confirm_timeout or None
                try:
                    applied = await asyncio.wait_for(confirmed, timeout)
                except TimeoutError:
                    result = result.model_copy(
                        update={
                            "status": CommandStatus.CONFIRMATION_TIMEOUT,
                            "error": f"Device {device_id} did not report value [{index}] = {value!r}",
                        }
                    )
                else:
                    if applied is _CLOSED:
                        result = result.model_copy(
                            update={
                                "status": CommandStatus.TRANSPORT_ERROR,
                                "error": "Client closed before the value was confirmed",
                            }
                        )
                    else:
                        result = result.model_copy(update={"value": applied})
        finally:
            unwatch()
            self._confirmations.discard(confirmed)

        _invoke(on_complete, result)
        return result
