"""
Server API calls: register, heartbeat, device list, batch ingest, cursor update.

All calls are blocking. Transport retry/backoff lives in the session
(http_client); every failure that survives it is raised as ApiError, except
an ingest answer with ``ok=false``, which is returned so the caller can apply
its chunk policy.
"""

import platform

import requests

from .config import log
from .constants import (
    API_TIMEOUT, API_REGISTER, API_HEARTBEAT, API_DEVICES, API_INGEST, API_CURSOR,
)
from .errors import ApiError, Cancelled, RegistrationError
from .models import Device, IngestResult, Registration


class RemoteClient:
    def __init__(self, session, server_url, agent_id=None, timeout=API_TIMEOUT,
                 stop_event=None):
        self._session = session
        self._server_url = server_url.rstrip("/")
        self.agent_id = agent_id
        self._timeout = timeout
        self._stop = stop_event

    def _stopping(self):
        return self._stop is not None and self._stop.is_set()

    def set_credentials(self, agent_id, api_key):
        self.agent_id = agent_id
        auth = getattr(self._session, "auth", None)
        if auth is not None and hasattr(auth, "api_key"):
            auth.api_key = api_key

    # ─── Plumbing ────────────────────────────────────────────

    def _request(self, method, path, payload=None, error_cls=ApiError):
        if self._stopping():
            raise Cancelled(f"Stop requested before {method} {path}")
        url = f"{self._server_url}{path}"
        try:
            resp = self._session.request(method, url, json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            if self._stopping():
                raise Cancelled(f"Stop requested during {method} {path}") from e
            raise error_cls(f"{method} {path} network error: {e}") from e

        if resp.status_code == 401:
            raise error_cls(f"{method} {path} rejected (401), credentials revoked?", 401)
        if not 200 <= resp.status_code < 300:
            raise error_cls(
                f"{method} {path} failed: HTTP {resp.status_code}: {resp.text[:200]}",
                resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise error_cls(f"{method} {path} returned invalid JSON", resp.status_code) from e

    def _require_agent(self):
        if self.agent_id is None:
            raise ApiError("Agent is not registered")
        return self.agent_id

    # ─── Operations ──────────────────────────────────────────

    def register(self, name, version):
        payload = {
            "name": name,
            "hostname": platform.node(),
            "version": version,
        }
        log.info("Registering agent %s (v%s) ...", name, version)
        data = self._request("POST", API_REGISTER, payload, error_cls=RegistrationError)
        if not data.get("ok") or data.get("agent_id") is None or not data.get("api_key"):
            raise RegistrationError(f"Registration refused: {data.get('error', 'Unknown error')}")

        registration = Registration(agent_id=data["agent_id"], api_key=data["api_key"])
        self.set_credentials(registration.agent_id, registration.api_key)
        log.info("Agent registered successfully: ID=%s", registration.agent_id)
        return registration

    def send_heartbeat(self, report):
        path = API_HEARTBEAT.format(agent_id=self._require_agent())
        data = self._request("POST", path, report.to_payload())
        if not data.get("ok"):
            raise ApiError(f"Heartbeat refused: {data.get('error', 'Unknown error')}")
        return data.get("received")

    def list_devices(self):
        path = API_DEVICES.format(agent_id=self._require_agent())
        data = self._request("GET", path)
        if isinstance(data, list):
            rows = data
        else:
            if not data.get("ok", True):
                raise ApiError(f"Device list refused: {data.get('error', 'Unknown error')}")
            rows = data.get("devices") or []
        devices = [Device.from_dict(row) for row in rows]
        log.info("Fetched %d devices", len(devices))
        return devices

    def ingest_batch(self, batch):
        data = self._request("POST", API_INGEST, batch.to_payload())
        return IngestResult.from_dict(data)

    def update_cursor(self, device_id, cursor):
        path = API_CURSOR.format(device_id=device_id)
        data = self._request("POST", path, {"cursor": dict(cursor)})
        if not data.get("ok"):
            raise ApiError(f"Cursor update refused for device {device_id}")
