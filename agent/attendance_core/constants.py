"""
Constants, thresholds, endpoint paths, and event vocabularies.
"""

AGENT_VERSION = "1.2.0"

# ─── Thresholds ──────────────────────────────────────────────────
DRIFT_THRESHOLD_SEC = 120      # Correct device clock only above 2 minutes
MAX_BATCH_SIZE = 1000          # Must match the server's accepted batch size
POLL_INTERVAL_SEC = 60         # Pause between cycles
HEARTBEAT_EVERY_CYCLES = 5     # Heartbeat after every 5th cycle

# ─── Network ─────────────────────────────────────────────────────
API_TIMEOUT = (5, 30)          # Connect, read seconds per attempt (ingest payloads can be large)
DEVICE_TIMEOUT = 10            # Seconds for the device socket
DEFAULT_DEVICE_PORT = 4370

API_REGISTER = "/api/attendance/agents/register"
API_HEARTBEAT = "/api/attendance/agents/{agent_id}/heartbeat"
API_DEVICES = "/api/attendance/agents/{agent_id}/devices"
API_INGEST = "/api/attendance/ingest/batch/"
API_CURSOR = "/api/attendance/devices/{device_id}/cursor/"

# ─── Cursor ──────────────────────────────────────────────────────
CURSOR_LAST_ID = "last_id"
CURSOR_LAST_DEVICE_TIME = "last_device_time"
CURSOR_BOUNDARY_IDS = "boundary_ids"        # comma-joined keys of events at last_device_time
DEVICE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"   # device-native, no offset

# ─── Event vocabularies ──────────────────────────────────────────
METHOD_CARD = "CARD"
METHOD_FINGERPRINT = "FINGERPRINT"
METHOD_FACE = "FACE"
METHOD_PASSWORD = "PASSWORD"
METHOD_OTHER = "OTHER"
AUTH_METHODS = frozenset({
    METHOD_CARD, METHOD_FINGERPRINT, METHOD_FACE, METHOD_PASSWORD, METHOD_OTHER,
})

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"
DIRECTION_UNKNOWN = "UNKNOWN"
DIRECTIONS = frozenset({DIRECTION_IN, DIRECTION_OUT, DIRECTION_UNKNOWN})

# ZKTeco verify modes (Attendance.status) → method
ZK_VERIFY_METHODS = {
    0: METHOD_PASSWORD,
    1: METHOD_FINGERPRINT,
    2: METHOD_CARD,
    3: METHOD_PASSWORD,
    4: METHOD_CARD,
    15: METHOD_FACE,
}

# ZKTeco punch states (Attendance.punch) → direction
ZK_PUNCH_DIRECTIONS = {
    0: DIRECTION_IN,      # check-in
    1: DIRECTION_OUT,     # check-out
    2: DIRECTION_OUT,     # break-out
    3: DIRECTION_IN,      # break-in
    4: DIRECTION_IN,      # overtime-in
    5: DIRECTION_OUT,     # overtime-out
}
