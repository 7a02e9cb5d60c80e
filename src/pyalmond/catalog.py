"""Per-device-type property catalog.

The hub does not say how each property should be tracked; that knowledge
lives in a static table keyed by device type code.  The table itself is
supplied by the application.  This module only defines its shape and how
to load it.

Two input shapes are understood::

    {"12": {"1": {"name": "Switch", "policy": "on_trigger"}}}

and the Almond+ "personality" export::

    {"12": {"DeviceProperties": {"1": {"Name": "Switch", "ShouldAlwaysUpdate": true}}}}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pyalmond.exceptions import AlmondConfigError
from pyalmond.models.device import UpdatePolicy

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PropertyDescriptor:
    name: str | None = None
    policy: UpdatePolicy = UpdatePolicy.ON_CHANGE


_DEFAULT_DESCRIPTOR = PropertyDescriptor()


def _parse_policy(entry: Mapping[str, Any]) -> UpdatePolicy:
    raw_policy = entry.get("policy", entry.get("UpdatePolicy"))
    if raw_policy is not None:
        try:
            return UpdatePolicy(str(raw_policy).strip().lower())
        except ValueError as exc:
            raise AlmondConfigError(f"Unknown update policy {raw_policy!r}") from exc
    if entry.get("ShouldAlwaysUpdate") in (True, "true"):
        return UpdatePolicy.ALWAYS
    return UpdatePolicy.ON_CHANGE


def _parse_descriptor(entry: Any) -> PropertyDescriptor:
    if not isinstance(entry, Mapping):
        raise AlmondConfigError(f"Property descriptor must be an object, got {entry!r}")
    name = entry.get("name", entry.get("Name"))
    return PropertyDescriptor(
        name=str(name) if name is not None else None,
        policy=_parse_policy(entry),
    )


@dataclass
class DeviceCatalog:
    """Lookup of property descriptors by device type and property index."""

    types: dict[str, dict[int, PropertyDescriptor]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DeviceCatalog:
        """Build a catalog from a parsed JSON-style mapping."""
        types: dict[str, dict[int, PropertyDescriptor]] = {}
        for type_code, properties in data.items():
            if isinstance(properties, Mapping) and "DeviceProperties" in properties:
                properties = properties["DeviceProperties"]
            if not isinstance(properties, Mapping):
                raise AlmondConfigError(f"Catalog entry for type {type_code!r} must be an object")
            table: dict[int, PropertyDescriptor] = {}
            for index, entry in properties.items():
                try:
                    table[int(index)] = _parse_descriptor(entry)
                except ValueError as exc:
                    raise AlmondConfigError(f"Property index {index!r} of type {type_code!r} is not an integer") from exc
            types[str(type_code)] = table
        _logger.debug("Loaded catalog with %d device types", len(types))
        return cls(types=types)

    @classmethod
    def from_json_file(cls, path: str | Path) -> DeviceCatalog:
        """Load a catalog from a JSON file on disk."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise AlmondConfigError(f"Could not load device catalog from {path}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise AlmondConfigError(f"Device catalog {path} must contain a JSON object")
        return cls.from_mapping(data)

    def descriptor(self, device_type: str | None, index: int) -> PropertyDescriptor:
        """Descriptor for *index* on *device_type*, falling back to ``ON_CHANGE``."""
        if device_type is None:
            return _DEFAULT_DESCRIPTOR
        return self.types.get(device_type, {}).get(index, _DEFAULT_DESCRIPTOR)

    def __contains__(self, device_type: object) -> bool:
        return device_type in self.types
