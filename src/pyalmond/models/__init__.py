"""Typed models for hub messages and registry snapshots."""

from pyalmond.models.command import CommandResult, CommandStatus, CommandType
from pyalmond.models.device import Device, DeviceProperty, DeviceRecord, DeviceValue, UpdatePolicy

__all__ = [
    "CommandResult",
    "CommandStatus",
    "CommandType",
    "Device",
    "DeviceProperty",
    "DeviceRecord",
    "DeviceValue",
    "UpdatePolicy",
]
