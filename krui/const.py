"""Constants for the krui printer link."""

from __future__ import annotations

from typing import Final

DOMAIN: Final = "krui"

# Client identity announced during the handshake
CLIENT_NAME: Final = "krui"
CLIENT_VERSION: Final = "0.1.0"
CLIENT_TYPE: Final = "display"
CLIENT_URL: Final = "https://pypi.org/project/krui/"

# Websocket endpoint
DEFAULT_WS_SCHEME: Final = "ws"
WS_PATH: Final = "/websocket"

JSONRPC_VERSION: Final = "2.0"

# --- Outgoing JSON-RPC methods ---
METHOD_IDENTIFY: Final = "server.connection.identify"
METHOD_SERVER_INFO: Final = "server.info"
METHOD_OBJECTS_LIST: Final = "printer.objects.list"
METHOD_OBJECTS_QUERY: Final = "printer.objects.query"
METHOD_OBJECTS_SUBSCRIBE: Final = "printer.objects.subscribe"
METHOD_HISTORY_LIST: Final = "server.history.list"
METHOD_FILE_METADATA: Final = "server.files.metadata"
METHOD_GCODE_SCRIPT: Final = "printer.gcode.script"
METHOD_PRINT_START: Final = "printer.print.start"
METHOD_PRINT_PAUSE: Final = "printer.print.pause"
METHOD_PRINT_RESUME: Final = "printer.print.resume"
METHOD_PRINT_CANCEL: Final = "printer.print.cancel"
METHOD_EMERGENCY_STOP: Final = "printer.emergency_stop"

# --- Server notifications ---
NOTIFY_KLIPPY_SHUTDOWN: Final = "notify_klippy_shutdown"
NOTIFY_KLIPPY_READY: Final = "notify_klippy_ready"
NOTIFY_KLIPPY_DISCONNECTED: Final = "notify_klippy_disconnected"
NOTIFY_STATUS_UPDATE: Final = "notify_status_update"
NOTIFY_HISTORY_CHANGED: Final = "notify_history_changed"
NOTIFY_GCODE_RESPONSE: Final = "notify_gcode_response"

HISTORY_ACTION_ADDED: Final = "added"

# --- Printer object naming ---
TEMPERATURE_FAN_MARKER: Final = "temperature_fan"
FILAMENT_SENSOR_MARKER: Final = "filament_switch_sensor"

KLIPPY_STATE_READY: Final = "ready"
PRINT_STATE_STANDBY: Final = "standby"
PRINT_STATE_PRINTING: Final = "printing"
PRINT_STATE_ERROR: Final = "error"
DEVICE_STATE_UNKNOWN: Final = "unknown"

# Filament diameter used for volumetric flow estimates (mm)
FILAMENT_DIAMETER: Final = 1.75

# --- Defaults ---
DEFAULT_HISTORY_LIMIT: Final = 50
DEFAULT_CONNECT_TIMEOUT: Final = 15.0  # seconds
DEFAULT_RECONNECT_INTERVAL: Final = 0.0  # seconds; immediate retry
DEFAULT_RECONNECT_BACKOFF_MAX: Final = 0.0  # seconds; 0 disables backoff
DEFAULT_FAIL_WARN_THRESHOLD: Final = 5
DEFAULT_TICK_INTERVAL: Final = 0.1  # seconds
DEFAULT_SUMMARY_INTERVAL: Final = 10.0  # seconds
DEFAULT_LOG_FILE: Final = "output.log"
DEFAULT_LOG_LEVEL: Final = "INFO"
