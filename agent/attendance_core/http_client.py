"""
HTTP session with connection pooling, automatic retry, and HMAC signing.

Transient failures (connection errors, 429/502/503/504) are retried by urllib3
with exponential backoff; anything still failing after that surfaces to the
caller as a normal error. Setting the stop event cuts the retry budget to
the attempt already in flight.
"""

import base64
import hashlib
import hmac
import time
import uuid
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter
from requests.auth import AuthBase
from urllib3.exceptions import MaxRetryError, ResponseError
from urllib3.util.retry import Retry


class StoppableRetry(Retry):
    """
    Retry that gives up as soon as the agent is asked to stop.

    Once ``stop_event`` is set no further attempt is made and backoff waits
    end early, so a call in flight costs at most one attempt's timeout.
    """

    def __init__(self, *args, stop_event=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.stop_event = stop_event

    def new(self, **kw):
        retry = super().new(**kw)
        retry.stop_event = self.stop_event
        return retry

    def _stopping(self):
        return self.stop_event is not None and self.stop_event.is_set()

    def increment(self, method=None, url=None, response=None, error=None,
                  _pool=None, _stacktrace=None):
        if self._stopping():
            raise MaxRetryError(_pool, url, error or ResponseError("stop requested"))
        return super().increment(method, url, response=response, error=error,
                                 _pool=_pool, _stacktrace=_stacktrace)

    def sleep(self, response=None):
        if self.stop_event is None:
            return super().sleep(response)
        backoff = self.get_backoff_time()
        if backoff > 0:
            self.stop_event.wait(backoff)


def retry_strategy(stop_event=None):
    return StoppableRetry(
        total=3,
        backoff_factor=2,                           # Wait 2s, 4s, 8s between retries
        status_forcelist=[429, 502, 503, 504],
        allowed_methods=["HEAD", "GET", "POST", "PATCH"],
        raise_on_status=False,
        stop_event=stop_event,
    )


def sign(secret_key, message):
    """Lowercase hex HMAC-SHA256 of ``message`` under ``secret_key``."""
    return hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def content_hash(body):
    if not body:
        return ""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")


class HmacAuth(AuthBase):
    """
    Signs every request:

        X-Signature = hex(HMAC_SHA256(secret,
            "client_id:METHOD:path?query:timestamp:nonce:content_hash"))

    and adds ``Authorization: Bearer <api_key>`` once the agent has one.
    """

    def __init__(self, client_id, secret_key, api_key=None):
        if not client_id:
            raise ValueError("client_id is required")
        if not secret_key:
            raise ValueError("secret_key is required")
        self.client_id = client_id
        self.secret_key = secret_key
        self.api_key = api_key

    def __call__(self, r):
        timestamp = str(int(time.time()))
        nonce = uuid.uuid4().hex
        body_hash = content_hash(r.body)

        parts = urlsplit(r.url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"

        message = ":".join([
            self.client_id, r.method.upper(), path, timestamp, nonce, body_hash,
        ])

        r.headers["X-Client-Id"] = self.client_id
        r.headers["X-Timestamp"] = timestamp
        r.headers["X-Nonce"] = nonce
        r.headers["X-Signature"] = sign(self.secret_key, message)
        if body_hash:
            r.headers["X-Content-Hash"] = body_hash
        if self.api_key:
            r.headers["Authorization"] = f"Bearer {self.api_key}"
        return r


def create_session(auth=None, stop_event=None):
    """Create a new requests.Session with connection pooling and retry."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=3,
        max_retries=retry_strategy(stop_event),
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = "AttendanceAgent"
    if auth is not None:
        session.auth = auth
    return session

