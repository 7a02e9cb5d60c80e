"""Internal constants shared across the library."""

DEFAULT_PORT = 7681
DEFAULT_USERNAME = "root"

# ------------------------------------------------------------------
# Session timing (seconds)
# ------------------------------------------------------------------

KEEPALIVE_INTERVAL_S = 1.0
RECONNECT_DELAY_S = 0.977
SEND_TIMEOUT_S = 1.982
MAX_SEND_RETRIES = 10
HYSTERESIS_S = 5.0
CONFIRM_TIMEOUT_S = 10.0
CONNECT_TIMEOUT_S = 10.0

# ------------------------------------------------------------------
# Wire envelope keys
# ------------------------------------------------------------------

CORRELATION_KEY = "MobileInternalIndex"
COMMAND_TYPE_KEY = "CommandType"
SUCCESS_KEY = "Success"
DEVICES_KEY = "Devices"

UNKNOWN_MANUFACTURER = "Unknown Manufacturer"
UNKNOWN_MODEL = "Unknown Model"
