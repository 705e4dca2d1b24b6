"""Pytest shared fixtures: in-memory redis, HTTP stubs, Flask test client."""
import json
import os
import pathlib
import sys
import threading
import time

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import pytest
import redis
import requests

from gatekeeper.config import AppConfig, CaptchaSettings
from gatekeeper.core.accounts import InMemoryAccountService
from gatekeeper.core.messaging import LoggingMessageDispatcher
from gatekeeper.flask_app import create_app


# ─────────────────────────────────────────────────────────────────────────────
# In-memory redis
# ─────────────────────────────────────────────────────────────────────────────
class FakeRedis:
    """Subset of redis.Redis used by the application (bytes in, bytes out)."""

    def __init__(self):
        self._data = {}
        self._offset = 0.0
        self._lock = threading.Lock()

    def advance(self, seconds: float) -> None:
        self._offset += seconds

    def _now(self) -> float:
        return time.monotonic() + self._offset

    def _alive(self, name) -> bool:
        entry = self._data.get(name)
        if entry is None:
            return False
        _, expires_at = entry
        if expires_at is not None and self._now() >= expires_at:
            del self._data[name]
            return False
        return True

    def set(self, name, value, ex=None, px=None, nx=False):
        if nx and self._alive(name):
            return None
        if isinstance(value, str):
            value = value.encode("utf-8")
        expires_at = None
        if ex is not None:
            expires_at = self._now() + ex
        elif px is not None:
            expires_at = self._now() + px / 1000
        self._data[name] = (value, expires_at)
        return True

    def get(self, name):
        if not self._alive(name):
            return None
        return self._data[name][0]

    def getdel(self, name):
        with self._lock:
            value = self.get(name)
            if value is not None:
                del self._data[name]
            return value

    def delete(self, *names):
        removed = 0
        for name in names:
            if self._alive(name):
                del self._data[name]
                removed += 1
        return removed

    def pttl(self, name):
        if not self._alive(name):
            return -2
        _, expires_at = self._data[name]
        if expires_at is None:
            return -1
        return int((expires_at - self._now()) * 1000)

    def ttl(self, name):
        remaining = self.pttl(name)
        return remaining if remaining < 0 else int(remaining / 1000)

    def ping(self):
        return True

    def keys(self):
        return [name for name in list(self._data) if self._alive(name)]


class BrokenRedis:
    """Every command fails as if the server were down."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")
        return _fail


@pytest.fixture()
def fake_redis():
    return FakeRedis()


@pytest.fixture()
def broken_redis():
    return BrokenRedis()


# ─────────────────────────────────────────────────────────────────────────────
# HTTP stubs
# ─────────────────────────────────────────────────────────────────────────────
class _StubResponse:
    def __init__(self, payload, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload) if not isinstance(payload, str) else payload

    def json(self):
        if isinstance(self._payload, str):
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


class HttpStub:
    """Route table for monkeypatched ``requests.get`` / ``requests.post``.

    Routes match on method and URL prefix. Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, method: str, url: str, payload, status_code: int = 200):
        self.routes.append((method.upper(), url, payload, status_code))

    def fail(self, method: str, url: str, exc: Exception):
        self.routes.append((method.upper(), url, exc, None))

    def _dispatch(self, method: str, url: str, kwargs: dict):
        self.calls.append({"method": method, "url": url, **kwargs})
        for route_method, route_url, payload, status_code in self.routes:
            if route_method == method and url.startswith(route_url):
                if isinstance(payload, Exception):
                    raise payload
                return _StubResponse(payload, status_code)
        raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")

    def calls_to(self, url: str):
        return [call for call in self.calls if call["url"].startswith(url)]


@pytest.fixture(autouse=True)
def http_stub(monkeypatch, request):
    """Prevent unit tests from hitting live endpoints.

    Tests register the responses they expect with ``http_stub.add``.
    """
    stub = HttpStub()
    if request.node.get_closest_marker("integration"):
        return stub

    def _stub_get(url, *args, **kwargs):
        return stub._dispatch("GET", url, kwargs)

    def _stub_post(url, *args, **kwargs):
        return stub._dispatch("POST", url, kwargs)

    monkeypatch.setattr(requests, "get", _stub_get)
    monkeypatch.setattr(requests, "post", _stub_post)
    return stub


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────
DEMO_PASSWORD = "Temp123!"
DEMO_MOBILE = "13800000000"


def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=True,
        secret_key="test-secret-key",
        session_type="cookie",
        session_cookie_secure=False,
        redis_url="redis://localhost:6379/15",
        captcha=CaptchaSettings(),
        oauth2_registrations={
            "feishu": {"client_id": "cli_test", "client_secret": "feishu-secret"},
            "github": {
                "client_id": "gh-client",
                "client_secret": "gh-secret",
                "authorization_uri": "https://github.com/login/oauth/authorize",
                "token_uri": "https://github.com/login/oauth/access_token",
                "user_info_uri": "https://api.github.com/user",
                "user_name_attribute": "id",
                "scopes": ["read:user"],
            },
        },
        demo_users=[
            {"username": "alice", "password": DEMO_PASSWORD, "mobile": DEMO_MOBILE, "account_id": "acct-alice"},
        ],
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def app_config():
    return make_config()


@pytest.fixture()
def dispatcher():
    return LoggingMessageDispatcher()


@pytest.fixture()
def flask_app(app_config, fake_redis, dispatcher):
    app = create_app(app_config, redis_client=fake_redis, dispatcher=dispatcher)
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(flask_app):
    """Flask test client backed by the in-memory redis."""
    with flask_app.test_client() as client:
        yield client


@pytest.fixture()
def accounts():
    return InMemoryAccountService.from_config(
        [{"username": "alice", "password": DEMO_PASSWORD, "mobile": DEMO_MOBILE, "account_id": "acct-alice"}]
    )


@pytest.fixture()
def config_factory():
    """Build an AppConfig with overrides: ``config_factory(demo_users=[])``."""
    return make_config
