"""Shared constants for Toolwatch."""

SERVER_NAME = "Toolwatch"
SERVER_VERSION = "0.1.0"

# Network defaults
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9100

# Management API mount point
MANAGEMENT_API_PREFIX = "/manage/v1"

# Logging defaults
LOG_DIR = "logs"
DEFAULT_LOG_FILE = "unknown_toolwatch.log"
DEFAULT_LOG_LEVEL = "INFO"

# Probe defaults
DEFAULT_CHECK_INTERVAL = 30.0  # seconds
DEFAULT_PROBE_TIMEOUT = 5.0  # seconds
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_SUCCESS_THRESHOLD = 2
DEFAULT_COOLDOWN_SECONDS = 60.0

# Result retention
DEFAULT_HISTORY_SIZE = 100
DEFAULT_RESOLVE_AFTER = 3

# Webhook delivery ratio window
DEFAULT_DELIVERY_WINDOW_HOURS = 24
