"""Client and registry events, and the listener table that delivers them."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

_logger = logging.getLogger(__name__)

Listener = Callable[..., None]


class AlmondEvent(StrEnum):
    READY = "ready"
    """The first device list has been loaded. No arguments."""
    CONNECTED = "connected"
    """The hub became reachable. No arguments."""
    DISCONNECTED = "disconnected"
    """The hub stayed unreachable past the hysteresis window. No arguments."""
    DEVICE_ADDED = "device_added"
    """``(device: Device)``"""
    DEVICE_UPDATED = "device_updated"
    """``(device: Device)``, identity fields changed."""
    DEVICE_REMOVED = "device_removed"
    """``(device: Device)``, the last snapshot before removal."""
    VALUE_UPDATED = "value_updated"
    """``(device_id: str, index: int, value: Any)``"""


class EventListeners:
    """Listener table keyed by :class:`AlmondEvent`.

    Listeners run synchronously in registration order.  A listener that
    raises is logged and skipped; it never interrupts message dispatch.
    """

    def __init__(self) -> None:
        self._listeners: dict[AlmondEvent, list[Listener]] = {}

    def on(self, event: AlmondEvent | str, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        key = AlmondEvent(event)
        self._listeners.setdefault(key, []).append(listener)

        def _unsubscribe() -> None:
            self.off(key, listener)

        return _unsubscribe

    def off(self, event: AlmondEvent | str, listener: Listener) -> bool:
        """Unregister *listener*; returns whether it was registered."""
        listeners = self._listeners.get(AlmondEvent(event), [])
        try:
            listeners.remove(listener)
        except ValueError:
            return False
        return True

    def emit(self, event: AlmondEvent, *args: Any) -> None:
        # Copy so listeners may unsubscribe themselves while being called.
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except Exception:
                _logger.warning("%s listener %r failed", event.value, listener, exc_info=True)

    def count(self, event: AlmondEvent | str) -> int:
        return len(self._listeners.get(AlmondEvent(event), []))
