import base64
import hashlib
import hmac
import threading
import time

import pytest
import requests
from urllib3.exceptions import MaxRetryError

from attendance_core.http_client import (
    HmacAuth, content_hash, create_session, retry_strategy, sign,
)


def prepared(method, url, **kwargs):
    return requests.Request(method, url, **kwargs).prepare()


def test_sign_is_lowercase_hex_hmac():
    expected = hmac.new(b"key", b"message", hashlib.sha256).hexdigest()
    assert sign("key", "message") == expected
    assert expected == expected.lower()


def test_content_hash():
    assert content_hash(None) == ""
    assert content_hash(b"") == ""
    assert content_hash("abc") == base64.b64encode(hashlib.sha256(b"abc").digest()).decode()


def test_hmac_auth_signs_body_and_path():
    auth = HmacAuth("edge-01", "secret", api_key="k-1")
    r = auth(prepared("POST", "https://srv.example.com/api/attendance/ingest/batch/?x=1",
                      json={"device_id": "1"}))

    h = r.headers
    body_hash = content_hash(r.body)
    message = ":".join([
        "edge-01", "POST", "/api/attendance/ingest/batch/?x=1",
        h["X-Timestamp"], h["X-Nonce"], body_hash,
    ])
    assert h["X-Client-Id"] == "edge-01"
    assert h["X-Content-Hash"] == body_hash
    assert h["X-Signature"] == sign("secret", message)
    assert h["Authorization"] == "Bearer k-1"
    assert len(h["X-Nonce"]) == 32


def test_hmac_auth_without_body_or_key():
    auth = HmacAuth("edge-01", "secret")
    r = auth(prepared("GET", "https://srv.example.com/api/attendance/agents/7/devices"))

    message = ":".join([
        "edge-01", "GET", "/api/attendance/agents/7/devices",
        r.headers["X-Timestamp"], r.headers["X-Nonce"], "",
    ])
    assert r.headers["X-Signature"] == sign("secret", message)
    assert "X-Content-Hash" not in r.headers
    assert "Authorization" not in r.headers


def test_nonce_changes_per_request():
    auth = HmacAuth("edge-01", "secret")
    first = auth(prepared("GET", "https://srv/a")).headers["X-Nonce"]
    second = auth(prepared("GET", "https://srv/a")).headers["X-Nonce"]
    assert first != second


@pytest.mark.parametrize("client_id,secret", [("", "s"), ("id", "")])
def test_hmac_auth_requires_credentials(client_id, secret):
    with pytest.raises(ValueError):
        HmacAuth(client_id, secret)


def test_session_retries_transient_errors():
    auth = HmacAuth("edge-01", "secret")
    session = create_session(auth)

    adapter = session.get_adapter("https://srv.example.com")
    retry = adapter.max_retries
    assert retry.total == 3
    assert 503 in retry.status_forcelist
    assert "POST" in retry.allowed_methods
    assert session.auth is auth


def test_retry_gives_up_once_stop_is_requested():
    stop = threading.Event()
    retry = create_session(stop_event=stop).get_adapter("https://srv").max_retries

    # still retrying while running
    again = retry.increment("GET", "/x", error=ConnectionResetError())
    assert again.total == 2
    assert again.stop_event is stop

    stop.set()
    with pytest.raises(MaxRetryError):
        again.increment("GET", "/x", error=ConnectionResetError())


def test_retry_backoff_ends_when_stopping(monkeypatch):
    stop = threading.Event()
    stop.set()
    retry = retry_strategy(stop).new(total=1)
    monkeypatch.setattr(retry, "get_backoff_time", lambda: 3600)
    monkeypatch.setattr(time, "sleep", lambda seconds: pytest.fail("slept during shutdown"))

    retry.sleep()
