"""pyalmond - Async Python client for the Almond+ hub WebSocket API."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyalmond")
except PackageNotFoundError:
    __version__ = "0+local"
from pyalmond._transport import SessionState
from pyalmond.catalog import DeviceCatalog, PropertyDescriptor
from pyalmond.client import AlmondClient
from pyalmond.config import AlmondConfig
from pyalmond.exceptions import (
    AlmondCommandError,
    AlmondConfigError,
    AlmondConfirmationTimeoutError,
    AlmondDeviceNotFoundError,
    AlmondError,
    AlmondRetriesExhaustedError,
    AlmondTransportError,
)
from pyalmond.models import (
    CommandResult,
    CommandStatus,
    CommandType,
    Device,
    DeviceProperty,
    UpdatePolicy,
)
from pyalmond.state.events import AlmondEvent

__all__ = [
    "__version__",
    "AlmondClient",
    "AlmondCommandError",
    "AlmondConfig",
    "AlmondConfigError",
    "AlmondConfirmationTimeoutError",
    "AlmondDeviceNotFoundError",
    "AlmondError",
    "AlmondEvent",
    "AlmondRetriesExhaustedError",
    "AlmondTransportError",
    "CommandResult",
    "CommandStatus",
    "CommandType",
    "Device",
    "DeviceCatalog",
    "DeviceProperty",
    "PropertyDescriptor",
    "SessionState",
    "UpdatePolicy",
]
