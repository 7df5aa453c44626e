"""
Wire models: devices, attendance events, batches, server answers.

Every model converts to/from the snake_case JSON the server speaks.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .constants import (
    AUTH_METHODS, DIRECTIONS, METHOD_OTHER, DIRECTION_UNKNOWN,
    DEFAULT_DEVICE_PORT,
)


@dataclass
class Device:
    id: int
    host: str = ""
    port: int = DEFAULT_DEVICE_PORT
    is_active: bool = False
    timezone: Optional[str] = None
    last_cursor: Optional[Dict[str, Any]] = None
    password: int = 0

    @classmethod
    def from_dict(cls, data):
        cursor = data.get("last_cursor_json")
        if cursor is None:
            cursor = data.get("cursor")
        return cls(
            id=data["id"],
            host=data.get("host") or data.get("ip") or "",
            port=int(data.get("port") or DEFAULT_DEVICE_PORT),
            is_active=bool(data.get("is_active", False)),
            timezone=data.get("timezone") or None,
            last_cursor=dict(cursor) if cursor else None,
            password=int(data.get("password") or 0),
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class AttendanceEvent:
    device_user_id: str
    event_time_local: str            # 2026-01-12T19:00:00+07:00
    event_time_utc: str              # 2026-01-12T12:00:00+00:00
    method: str = METHOD_OTHER
    direction: str = DIRECTION_UNKNOWN
    device_event_id: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.method not in AUTH_METHODS:
            object.__setattr__(self, "method", METHOD_OTHER)
        if self.direction not in DIRECTIONS:
            object.__setattr__(self, "direction", DIRECTION_UNKNOWN)

    def to_dict(self):
        data = {
            "device_user_id": self.device_user_id,
            "event_time_local": self.event_time_local,
            "event_time_utc": self.event_time_utc,
            "method": self.method,
            "direction": self.direction,
        }
        if self.device_event_id is not None:
            data["device_event_id"] = self.device_event_id
        if self.meta:
            data["meta"] = dict(self.meta)
        return data


@dataclass
class Batch:
    device_id: int
    batch_id: str
    events: List[AttendanceEvent]
    cursor: Dict[str, Any]

    def to_payload(self):
        return {
            "device_id": str(self.device_id),
            "batch_id": self.batch_id,
            "cursor": dict(self.cursor),
            "events": [e.to_dict() for e in self.events],
        }


@dataclass
class IngestResult:
    ok: bool
    processed: int = 0
    duplicates: int = 0
    rejected: int = 0
    accepted_cursor: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        accepted = data.get("accepted_cursor")
        return cls(
            ok=bool(data.get("ok", False)),
            processed=int(data.get("processed") or 0),
            duplicates=int(data.get("duplicates") or 0),
            rejected=int(data.get("rejected") or 0),
            accepted_cursor=dict(accepted) if accepted else None,
            error=data.get("error"),
        )


@dataclass
class Registration:
    agent_id: int
    api_key: str


@dataclass
class HeartbeatReport:
    version: str
    pulled: int = 0
    pushed: int = 0
    errors: int = 0
    drift_minutes: int = 0

    def to_payload(self):
        return {
            "version": self.version,
            "stats": {
                "pulled": self.pulled,
                "pushed": self.pushed,
                "errors": self.errors,
            },
            "drift_minutes": self.drift_minutes,
        }
