"""Command envelope types and request outcomes."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyalmond.exceptions import (
    AlmondCommandError,
    AlmondConfirmationTimeoutError,
    AlmondRetriesExhaustedError,
    AlmondTransportError,
)


class CommandType(StrEnum):
    """``CommandType`` values used on the wire."""

    DEVICE_LIST = "DeviceList"
    UPDATE_DEVICE_INDEX = "UpdateDeviceIndex"
    DEVICE_ADDED = "DynamicDeviceAdded"
    DEVICE_UPDATED = "DynamicDeviceUpdated"
    DEVICE_REMOVED = "DynamicDeviceRemoved"
    INDEX_UPDATED = "DynamicIndexUpdated"


class CommandStatus(StrEnum):
    OK = "ok"
    FAILED = "failed"
    TRANSPORT_ERROR = "transport_error"
    RETRIES_EXHAUSTED = "retries_exhausted"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"


class CommandResult(BaseModel):
    """Outcome of one request to the hub.

    Failures are reported here rather than raised so a lost response or a
    dropped socket never propagates into the session; callers that prefer
    exceptions can call :meth:`raise_for_status`.
    """

    model_config = ConfigDict(frozen=True)

    status: CommandStatus
    command_type: str = ""
    response: dict[str, Any] = Field(default_factory=dict)
    """Decoded response message (empty unless the hub answered)."""
    error: str | None = None
    value: Any = None
    """Confirmed value for property updates."""

    @property
    def success(self) -> bool:
        return self.status == CommandStatus.OK

    def raise_for_status(self) -> CommandResult:
        """Raise the matching :mod:`pyalmond.exceptions` error unless OK."""
        message = self.error or f"{self.command_type or 'command'} {self.status.value}"
        if self.status == CommandStatus.OK:
            return self
        if self.status == CommandStatus.TRANSPORT_ERROR:
            raise AlmondTransportError(message)
        if self.status == CommandStatus.RETRIES_EXHAUSTED:
            raise AlmondRetriesExhaustedError(message, command_type=self.command_type)
        if self.status == CommandStatus.CONFIRMATION_TIMEOUT:
            raise AlmondConfirmationTimeoutError(
                message,
                command_type=self.command_type,
                response=self.response,
            )
        raise AlmondCommandError(message, command_type=self.command_type, response=self.response)
