"""Device models.

``DeviceRecord`` parses one entry of a ``Devices`` map as the hub sends it
(after value decoding).  ``Device`` and ``DeviceProperty`` are the frozen
snapshots the registry hands to callers.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from pyalmond._codec import encode_value


class UpdatePolicy(StrEnum):
    """When a received property value is reported as an update."""

    ALWAYS = "always"
    """Every received value is reported, equal or not."""
    ON_CHANGE = "on_change"
    """Only values different from the stored one are reported."""
    ON_TRIGGER = "on_trigger"
    """Only values carried by an explicit index-update push are reported."""


def _coerce_text(value: Any) -> str | None:
    # The codec turns "12" into 12 and "true" into True; identity fields
    # are text, so undo that losslessly.
    if value is None:
        return None
    return encode_value(value)


class DeviceValue(BaseModel):
    """One entry of a ``DeviceValues`` map."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    name: str | None = Field(default=None, validation_alias=AliasChoices("Name", "name"))
    """Property name as reported by the hub."""
    value: Any = Field(default=None, validation_alias=AliasChoices("Value", "value"))
    """Decoded property value."""

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str | None:
        return _coerce_text(value)


class DeviceRecord(BaseModel):
    """A device entry from a ``DeviceList`` result or a dynamic push.

    Identity fields normally sit under ``Data`` and values under
    ``DeviceValues``; removal pushes put ``ID`` and ``Type`` directly on
    the entry.  Both shapes are accepted.  Identity fields that are absent
    stay ``None`` so an update only compares what it actually carries.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    id: str | None = Field(default=None, validation_alias=AliasChoices("ID", "id"))
    name: str | None = Field(default=None, validation_alias=AliasChoices("Name", "name"))
    type: str | None = Field(default=None, validation_alias=AliasChoices("Type", "type"))
    location: str | None = Field(default=None, validation_alias=AliasChoices("Location", "location"))
    manufacturer: str | None = Field(
        default=None,
        validation_alias=AliasChoices("Manufacturer", "manufacturer"),
    )
    model: str | None = Field(default=None, validation_alias=AliasChoices("Model", "model"))
    values: dict[int, DeviceValue] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("DeviceValues", "values"),
    )
    raw: dict[str, Any] = Field(default_factory=dict)
    """Entry as received."""

    @model_validator(mode="before")
    @classmethod
    def _flatten_data(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = {key: value for key, value in values.items() if key != "Data"}
        data = values.get("Data")
        if isinstance(data, dict):
            merged.update(data)
        if not isinstance(merged.get("DeviceValues", {}), dict):
            merged.pop("DeviceValues")
        merged.setdefault("raw", values)
        return merged

    @field_validator("id", "name", "type", "location", "manufacturer", "model", mode="before")
    @classmethod
    def _coerce_identity(cls, value: Any) -> str | None:
        return _coerce_text(value)

    def identity(self) -> dict[str, str]:
        """Identity fields present in this record, keyed by field name."""
        fields = ("name", "type", "location", "manufacturer", "model")
        return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}


class DeviceProperty(BaseModel):
    """Read-only view of one property of a device."""

    model_config = ConfigDict(frozen=True)

    index: int
    name: str | None = None
    value: Any = None
    policy: UpdatePolicy = UpdatePolicy.ON_CHANGE


class Device(BaseModel):
    """Read-only snapshot of a device held by the registry.

    Snapshots do not follow later updates; fetch a new one from the client
    (or listen for ``value_updated``) to observe changes.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    type: str = ""
    location: str = ""
    manufacturer: str = ""
    model: str = ""
    properties: dict[int, DeviceProperty] = Field(default_factory=dict)

    def get_prop(self, index: int) -> Any:
        """Value of property *index*, or ``None`` if the device has none."""
        prop = self.properties.get(index)
        return prop.value if prop is not None else None

    @property
    def props(self) -> dict[str, int]:
        """Property name to index lookup."""
        return {prop.name: index for index, prop in self.properties.items() if prop.name}
