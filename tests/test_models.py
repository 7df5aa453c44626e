from dataclasses import FrozenInstanceError

import pytest

from attendance_core.models import AttendanceEvent, Device, IngestResult


def test_device_from_server_row():
    device = Device.from_dict({
        "id": 11, "host": "10.1.1.5", "port": "4371", "is_active": True,
        "timezone": "Asia/Bangkok", "last_cursor_json": {"last_id": 1},
    })
    assert device.address == "10.1.1.5:4371"
    assert device.last_cursor == {"last_id": 1}
    assert device.timezone == "Asia/Bangkok"


def test_device_defaults():
    device = Device.from_dict({"id": 2})
    assert device.port == 4370
    assert not device.is_active
    assert device.last_cursor is None
    assert device.timezone is None


def test_event_is_immutable():
    event = AttendanceEvent("1", "2026-01-12T08:00:00+07:00", "2026-01-12T01:00:00+00:00")
    with pytest.raises(FrozenInstanceError):
        event.method = "CARD"


def test_event_normalizes_unknown_vocabulary():
    event = AttendanceEvent("1", "t", "t", method="IRIS", direction="SIDEWAYS")
    assert (event.method, event.direction) == ("OTHER", "UNKNOWN")


def test_event_to_dict_omits_empty_optionals():
    data = AttendanceEvent("1", "a", "b", method="FACE", direction="IN").to_dict()
    assert data == {
        "device_user_id": "1",
        "event_time_local": "a",
        "event_time_utc": "b",
        "method": "FACE",
        "direction": "IN",
    }


def test_ingest_result_defaults():
    result = IngestResult.from_dict({"ok": True})
    assert result.ok
    assert (result.processed, result.duplicates, result.rejected) == (0, 0, 0)
    assert result.accepted_cursor is None
