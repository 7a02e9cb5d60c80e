"""Device registry.

This is the only component allowed to mutate the local device mirror.
Callers receive frozen :class:`~pyalmond.models.device.Device` snapshots,
never the entities themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from pyalmond._constants import COMMAND_TYPE_KEY, DEVICES_KEY, UNKNOWN_MANUFACTURER, UNKNOWN_MODEL
from pyalmond._redact import redact_for_log
from pyalmond.catalog import DeviceCatalog
from pyalmond.exceptions import AlmondDeviceNotFoundError
from pyalmond.models.command import CommandType
from pyalmond.models.device import Device, DeviceProperty, DeviceRecord, DeviceValue, UpdatePolicy
from pyalmond.state.events import AlmondEvent, EventListeners
from pyalmond.state.policy import should_notify, values_differ

_logger = logging.getLogger(__name__)

_IDENTITY_DEFAULTS = {"manufacturer": UNKNOWN_MANUFACTURER, "model": UNKNOWN_MODEL}

ValueWatcher = Callable[[str, int, Any], None]


@dataclass(slots=True)
class _PropertyState:
    index: int
    name: str | None
    value: Any
    policy: UpdatePolicy


class DeviceEntity:
    """Mutable state of one device. Owned by :class:`DeviceRegistry`."""

    def __init__(self, device_id: str, record: DeviceRecord, catalog: DeviceCatalog) -> None:
        self.id = device_id
        self.name = ""
        self.type = ""
        self.location = ""
        self.manufacturer = UNKNOWN_MANUFACTURER
        self.model = UNKNOWN_MODEL
        self.set_identity(record)

        self._properties: dict[int, _PropertyState] = {}
        for index, entry in record.values.items():
            descriptor = catalog.descriptor(self.type, index)
            self._properties[index] = _PropertyState(
                index=index,
                name=entry.name if entry.name is not None else descriptor.name,
                value=entry.value,
                policy=descriptor.policy,
            )

    def set_identity(self, record: DeviceRecord) -> bool:
        """Replace identity fields carried by *record*; returns whether any changed."""
        changed = False
        for field_name, value in record.identity().items():
            if not value and field_name in _IDENTITY_DEFAULTS:
                value = _IDENTITY_DEFAULTS[field_name]
            if getattr(self, field_name) != value:
                setattr(self, field_name, value)
                changed = True
        return changed

    def apply_values(self, values: Mapping[int, DeviceValue], *, forced: bool) -> list[tuple[int, Any, bool]]:
        """Store incoming values.

        Returns ``(index, value, report)`` for every stored value, *report*
        being the policy's verdict on notifying listeners.

        Indices the device was not created with are ignored.
        """
        applied: list[tuple[int, Any, bool]] = []
        for index, entry in values.items():
            prop = self._properties.get(index)
            if prop is None:
                _logger.debug("Ignoring value for unknown index %s on device %s", index, self.id)
                continue
            report = should_notify(prop.policy, current=prop.value, incoming=entry.value, forced=forced)
            if values_differ(prop.value, entry.value):
                _logger.debug(
                    "Updating device %s value %s from %r to %r",
                    self.id,
                    index,
                    prop.value,
                    entry.value,
                )
            prop.value = entry.value
            applied.append((index, entry.value, report))
        return applied

    def get_prop(self, index: int) -> Any:
        prop = self._properties.get(index)
        if prop is None:
            raise AlmondDeviceNotFoundError(self.id, index)
        return prop.value

    def snapshot(self) -> Device:
        return Device(
            id=self.id,
            name=self.name,
            type=self.type,
            location=self.location,
            manufacturer=self.manufacturer,
            model=self.model,
            properties={
                index: DeviceProperty(index=index, name=prop.name, value=prop.value, policy=prop.policy)
                for index, prop in self._properties.items()
            },
        )


class DeviceRegistry:
    """Authoritative in-memory mirror of the hub's devices.

    Parameters
    ----------
    catalog
        Property catalog used to name properties and pick their update
        policy.  Defaults to an empty catalog (every property ``ON_CHANGE``).
    listeners
        Where change events are emitted.  A private table is created when
        omitted.
    on_unknown_device
        Called with the device id when an index update names a device the
        registry has never seen; the owner normally refreshes the device
        list in response.
    """

    def __init__(
        self,
        catalog: DeviceCatalog | None = None,
        *,
        listeners: EventListeners | None = None,
        on_unknown_device: Callable[[str], None] | None = None,
    ) -> None:
        self._catalog = catalog or DeviceCatalog()
        self._listeners = listeners or EventListeners()
        self._on_unknown_device = on_unknown_device
        self._devices: dict[str, DeviceEntity] = {}
        self._value_watchers: list[ValueWatcher] = []

    @property
    def listeners(self) -> EventListeners:
        return self._listeners

    @property
    def catalog(self) -> DeviceCatalog:
        return self._catalog

    def watch_values(self, watcher: ValueWatcher) -> Callable[[], None]:
        """Call *watcher* with ``(device_id, index, value)`` for every stored value.

        Unlike ``value_updated`` listeners, watchers see every value a
        message carries, whatever the property's update policy decides.
        Returns a callable that removes the watcher.
        """
        self._value_watchers.append(watcher)

        def _unwatch() -> None:
            if watcher in self._value_watchers:
                self._value_watchers.remove(watcher)

        return _unwatch

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def dispatch(self, message: Mapping[str, Any]) -> None:
        """Apply a decoded push (or device list) message."""
        command = message.get(COMMAND_TYPE_KEY)
        if command == CommandType.INDEX_UPDATED:
            self._apply_index_update(message)
        elif command in (CommandType.DEVICE_LIST, CommandType.DEVICE_ADDED, CommandType.DEVICE_UPDATED):
            self._apply_devices(message)
        elif command == CommandType.DEVICE_REMOVED:
            self._apply_removal(message)
        else:
            _logger.warning("Ignoring unsupported message type %r", command)
            _logger.debug("Unsupported message: %s", redact_for_log(message))

    def load_device_list(self, message: Mapping[str, Any]) -> None:
        """Apply the response to a ``DeviceList`` request."""
        self._apply_devices(message)

    def _records(self, message: Mapping[str, Any]) -> Iterator[tuple[str, DeviceRecord]]:
        devices = message.get(DEVICES_KEY)
        if not isinstance(devices, Mapping):
            _logger.debug("Message without %s map: %s", DEVICES_KEY, redact_for_log(message))
            return
        for key, entry in devices.items():
            try:
                record = DeviceRecord.model_validate(entry)
            except ValidationError:
                _logger.warning("Dropping malformed device entry %r", key, exc_info=True)
                continue
            yield str(key), record

    def _apply_devices(self, message: Mapping[str, Any]) -> None:
        for device_id, record in self._records(message):
            if device_id in self._devices:
                self._update_device(device_id, record)
            else:
                self._add_device(device_id, record)

    def _apply_index_update(self, message: Mapping[str, Any]) -> None:
        unknown: list[str] = []
        for device_id, record in self._records(message):
            entity = self._devices.get(device_id)
            if entity is None:
                unknown.append(device_id)
                continue
            self._emit_values(entity, entity.apply_values(record.values, forced=True))

        if unknown:
            _logger.debug("Index update for unknown devices %s", unknown)
            if self._on_unknown_device is not None:
                for device_id in unknown:
                    self._on_unknown_device(device_id)

    def _apply_removal(self, message: Mapping[str, Any]) -> None:
        for device_id, record in self._records(message):
            entity = self._devices.get(device_id)
            if entity is None:
                continue
            if record.type != entity.type:
                # The id may have been reused by a newer device already.
                _logger.debug(
                    "Ignoring removal of %s: type %r does not match stored type %r",
                    device_id,
                    record.type,
                    entity.type,
                )
                continue
            self._remove_device(device_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _add_device(self, device_id: str, record: DeviceRecord) -> None:
        _logger.debug("Adding device %s: %s", device_id, redact_for_log(record.raw))
        entity = DeviceEntity(device_id, record, self._catalog)
        self._devices[device_id] = entity
        self._listeners.emit(AlmondEvent.DEVICE_ADDED, entity.snapshot())

    def _update_device(self, device_id: str, record: DeviceRecord) -> None:
        entity = self._devices[device_id]
        self._emit_values(entity, entity.apply_values(record.values, forced=False))
        if entity.set_identity(record):
            _logger.debug("Device %s identity changed", device_id)
            self._listeners.emit(AlmondEvent.DEVICE_UPDATED, entity.snapshot())

    def _remove_device(self, device_id: str) -> None:
        _logger.debug("Removing device %s", device_id)
        entity = self._devices.pop(device_id)
        self._listeners.emit(AlmondEvent.DEVICE_REMOVED, entity.snapshot())

    def _emit_values(self, entity: DeviceEntity, applied: list[tuple[int, Any, bool]]) -> None:
        for index, value, report in applied:
            for watcher in list(self._value_watchers):
                try:
                    watcher(entity.id, index, value)
                except Exception:
                    _logger.warning("Value watcher %r failed", watcher, exc_info=True)
            if report:
                self._listeners.emit(AlmondEvent.VALUE_UPDATED, entity.id, index, value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_devices(self) -> list[Device]:
        return [entity.snapshot() for entity in self._devices.values()]

    def get_device(self, device_id: str) -> Device:
        """Snapshot of *device_id*; raises :class:`AlmondDeviceNotFoundError`."""
        entity = self._devices.get(str(device_id))
        if entity is None:
            raise AlmondDeviceNotFoundError(str(device_id))
        return entity.snapshot()

    def find_device(self, device_id: str) -> Device | None:
        entity = self._devices.get(str(device_id))
        return entity.snapshot() if entity is not None else None

    def get_prop(self, device_id: str, index: int) -> Any:
        """Current value of a property; raises :class:`AlmondDeviceNotFoundError`."""
        entity = self._devices.get(str(device_id))
        if entity is None:
            raise AlmondDeviceNotFoundError(str(device_id))
        return entity.get_prop(index)

    def __contains__(self, device_id: object) -> bool:
        return str(device_id) in self._devices

    def __len__(self) -> int:
        return len(self._devices)
