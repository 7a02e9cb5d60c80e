"""Custom exception hierarchy for pyalmond."""

from __future__ import annotations


class AlmondError(Exception):
    """Base exception for all pyalmond errors."""


class AlmondConfigError(AlmondError):
    """Invalid or missing configuration."""


class AlmondTransportError(AlmondError):
    """WebSocket-level failure (not connected, socket closing, write error)."""

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class AlmondCommandError(AlmondError):
    """The hub answered a command with ``Success: false``."""

    def __init__(
        self,
        message: str,
        *,
        command_type: str = "",
        response: dict[str, object] | None = None,
    ) -> None:
        self.command_type = command_type
        self.response = response or {}
        super().__init__(message)


class AlmondRetriesExhaustedError(AlmondCommandError):
    """No response arrived after the last allowed retry."""


class AlmondConfirmationTimeoutError(AlmondCommandError):
    """A property update was acknowledged but never reported as applied.

    The hub acknowledges receipt of ``UpdateDeviceIndex`` first and pushes
    the new value later; this is raised when that push does not arrive
    within ``AlmondConfig.confirm_timeout``.
    """


class AlmondDeviceNotFoundError(AlmondError, KeyError):
    """No device (or property) with the requested identifier is known."""

    def __init__(self, device_id: str, index: int | None = None) -> None:
        self.device_id = device_id
        self.index = index
        if index is None:
            message = f"Unknown device {device_id!r}"
        else:
            message = f"Unknown property {index} on device {device_id!r}"
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0])
