"""
Device access: the narrow reader interface plus the ZKTeco adapter.

The orchestrator only sees DeviceReader (and optionally ClockCapable). The
ZKTeco adapter talks to terminals through pyzk, one session per call, so only
one device is ever connected at a time.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from zk import ZK

from .config import log
from .constants import (
    DEVICE_TIMEOUT, ZK_VERIFY_METHODS, ZK_PUNCH_DIRECTIONS, METHOD_OTHER,
    DIRECTION_UNKNOWN,
)
from .cursor import events_after, resume_point
from .errors import DeviceError
from .models import AttendanceEvent, Device


@runtime_checkable
class DeviceReader(Protocol):
    def read_events(self, device: Device, cursor: Optional[Dict[str, Any]]) -> List[AttendanceEvent]:
        ...


@runtime_checkable
class ClockCapable(Protocol):
    def get_time(self, device: Device) -> datetime:
        """Device wall-clock time (naive, device-local)."""
        ...

    def set_time(self, device: Device, moment: datetime) -> None:
        ...


def device_zone(device):
    """tzinfo for the device, falling back to the agent's local zone."""
    if device.timezone:
        try:
            return ZoneInfo(device.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            log.warning("Unknown timezone %r for device %s, using agent local time",
                        device.timezone, device.id)
    return datetime.now().astimezone().tzinfo


def device_now(device):
    """Agent's current time expressed as device-local naive wall clock."""
    return datetime.now(device_zone(device)).replace(tzinfo=None)


def to_event(device, record):
    """Convert one pyzk Attendance record into an AttendanceEvent."""
    local = record.timestamp.replace(tzinfo=device_zone(device))
    status = getattr(record, "status", None)
    punch = getattr(record, "punch", None)
    return AttendanceEvent(
        device_user_id=str(record.user_id),
        event_time_local=local.isoformat(timespec="seconds"),
        event_time_utc=local.astimezone(timezone.utc).isoformat(timespec="seconds"),
        method=ZK_VERIFY_METHODS.get(status, METHOD_OTHER),
        direction=ZK_PUNCH_DIRECTIONS.get(punch, DIRECTION_UNKNOWN),
        device_event_id=f"{device.id}-{record.user_id}-{record.timestamp:%Y%m%d%H%M%S}",
        meta={"uid": getattr(record, "uid", None), "status": status, "punch": punch},
    )


class ZKDeviceReader:
    """
    pyzk-backed reader. pyzk has no ranged read, so every call downloads the
    whole log and filters it against the cursor. Events the cursor already
    covers are dropped here; later ones may still be resent after a partial
    failure (the server counts those as duplicates).
    """

    def __init__(self, timeout=DEVICE_TIMEOUT, force_udp=False):
        self._timeout = timeout
        self._force_udp = force_udp

    @contextmanager
    def _session(self, device):
        zk = ZK(
            device.host,
            port=device.port,
            timeout=self._timeout,
            password=device.password,
            force_udp=self._force_udp,
            ommit_ping=True,
        )
        try:
            conn = zk.connect()
        except Exception as e:
            raise DeviceError(f"Cannot connect to device {device.id} ({device.address}): {e}") from e
        try:
            yield conn
        finally:
            try:
                conn.disconnect()
            except Exception as e:
                log.warning("Disconnect from device %s failed: %s", device.id, e)

    def read_events(self, device, cursor):
        since, _ = resume_point(cursor)
        with self._session(device) as conn:
            conn.disable_device()
            try:
                records = conn.get_attendance() or []
            finally:
                conn.enable_device()

        recent = [r for r in records if since is None or r.timestamp.replace(tzinfo=None) >= since]
        recent.sort(key=lambda r: r.timestamp)
        fresh = events_after([to_event(device, r) for r in recent], cursor)
        log.info("Device %s: %d log records, %d new since %s",
                 device.id, len(records), len(fresh), since or "start")
        return fresh

    def get_time(self, device):
        with self._session(device) as conn:
            return conn.get_time().replace(tzinfo=None)

    def set_time(self, device, moment):
        with self._session(device) as conn:
            conn.set_time(moment.replace(tzinfo=None))
        log.info("Device %s clock set to %s", device.id, moment.replace(tzinfo=None))
