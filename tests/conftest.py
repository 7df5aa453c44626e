import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure the agent directory is on the path for imports
root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(root / "agent"))

from attendance_core.cursor import events_after  # noqa: E402
from attendance_core.models import AttendanceEvent, Device, IngestResult  # noqa: E402
from attendance_core.store import CursorStore  # noqa: E402

BASE_TIME = datetime(2026, 1, 12, 8, 0, 0)


def make_events(count, start=BASE_TIME, step=timedelta(seconds=1)):
    events = []
    for i in range(count):
        local = start + i * step
        events.append(AttendanceEvent(
            device_user_id=str(100 + i % 7),
            event_time_local=local.isoformat() + "+07:00",
            event_time_utc=(local - timedelta(hours=7)).isoformat() + "+00:00",
            method="CARD",
            direction="IN",
            device_event_id=f"evt-{i}",
        ))
    return events


class FakeReader:
    """Serves the events the cursor does not cover yet."""

    def __init__(self, events=None, fail=None):
        self.events = list(events or [])
        self.fail = fail or {}
        self.calls = []

    def read_events(self, device, cursor):
        self.calls.append((device.id, dict(cursor) if cursor else cursor))
        if device.id in self.fail:
            raise self.fail[device.id]
        return events_after(self.events, cursor)


class FakeClockReader(FakeReader):
    def __init__(self, device_time, events=None, set_error=None, get_error=None):
        super().__init__(events)
        self.device_time = device_time
        self.set_error = set_error
        self.get_error = get_error
        self.set_calls = []

    def get_time(self, device):
        if self.get_error:
            raise self.get_error
        return self.device_time

    def set_time(self, device, moment):
        self.set_calls.append((device.id, moment))
        if self.set_error:
            raise self.set_error
        self.device_time = moment


class FakeApi:
    def __init__(self, devices=None):
        self.devices = list(devices or [])
        self.devices_error = None
        self.ingest_calls = []
        self.cursor_updates = []
        self.heartbeats = []
        self.heartbeat_error = None
        self.registrations = []
        self.register_error = None
        self.credentials = None
        # batch number (1-based, across the whole run) → IngestResult or exception
        self.ingest_answers = {}
        self.accepted_cursor = None

    def register(self, name, version):
        from attendance_core.models import Registration
        self.registrations.append((name, version))
        if self.register_error:
            raise self.register_error
        self.credentials = (7, "key-7")
        return Registration(agent_id=7, api_key="key-7")

    def set_credentials(self, agent_id, api_key):
        self.credentials = (agent_id, api_key)

    def list_devices(self):
        if self.devices_error:
            raise self.devices_error
        return list(self.devices)

    def ingest_batch(self, batch):
        self.ingest_calls.append(batch)
        answer = self.ingest_answers.get(len(self.ingest_calls))
        if isinstance(answer, Exception):
            raise answer
        if answer is not None:
            return answer
        return IngestResult(
            ok=True,
            processed=len(batch.events),
            accepted_cursor=self.accepted_cursor,
        )

    def update_cursor(self, device_id, cursor):
        self.cursor_updates.append((device_id, dict(cursor)))

    def send_heartbeat(self, report):
        self.heartbeats.append(report)
        if self.heartbeat_error:
            raise self.heartbeat_error
        return {"pulled": report.pulled}


@pytest.fixture
def store(tmp_path):
    s = CursorStore(tmp_path / "agent.db")
    s.initialize()
    return s


@pytest.fixture
def device():
    return Device(id=1, host="10.0.0.21", port=4370, is_active=True, timezone="Asia/Ho_Chi_Minh")


@pytest.fixture
def config():
    return {
        "serverUrl": "https://attendance.example.com",
        "agentName": "edge-01",
        "agentId": 7,
        "apiKey": "key-7",
        "secretKey": "s3cret",
        "version": "1.2.0",
        "maxBatchSize": 1000,
    }
