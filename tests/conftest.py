"""
tests/conftest.py -- Shared test fixtures for Roster unit and integration tests.

This module provides:
  - FakeRedis: in-memory stand-in for the redis client behind CodeCache
  - RecordingMailer: EmailSender that records messages instead of sending them
  - make_store(): isolated named shared-memory SQLite DirectoryStore
  - _patch_lifespan(): wires test doubles into app.state, bypassing real startup
  - api: TestClient plus a bearer token for an active admin profile

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import threading
import time
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.tokens import create_access_token
from cache.store import CodeCache
from core.config import get_settings
from core.errors import DeliveryFailed
from directory.models import Profile
from directory.store import DirectoryStore
from mail.sender import EmailSender

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeRedis:
    """Thread-safe dict with expiry, exposing the redis-py methods CodeCache calls.

    delete() reports how many keys it removed, like the real DEL, so the
    single-use guarantee of code consumption can be tested concurrently.
    """

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()
        self.up = True

    def _live(self, key: str):
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires = entry
        if expires is not None and expires <= time.monotonic():
            del self._data[key]
            return None
        return value

    def get(self, key):
        with self._lock:
            return self._live(key)

    def set(self, key, value, ex=None):
        with self._lock:
            self._data[key] = (str(value), time.monotonic() + ex if ex else None)
        return True

    def exists(self, key):
        with self._lock:
            return 1 if self._live(key) is not None else 0

    def delete(self, key):
        with self._lock:
            if self._live(key) is None:
                return 0
            del self._data[key]
            return 1

    def ttl(self, key):
        with self._lock:
            if self._live(key) is None:
                return -2
            expires = self._data[key][1]
            return -1 if expires is None else max(0, int(round(expires - time.monotonic())))

    def expire_now(self, key) -> None:
        """Test helper: make key disappear as if its TTL ran out."""
        with self._lock:
            self._data.pop(key, None)

    def ping(self):
        import redis

        if not self.up:
            raise redis.ConnectionError("fake redis is down")
        return True

    def close(self):
        pass


@dataclass
class SentMail:
    kind: str
    to: str
    payload: str | None


class RecordingMailer(EmailSender):
    """EmailSender that appends to .sent instead of talking SMTP.

    fail_verification makes send_verification_code raise DeliveryFailed;
    fail_welcome makes send_welcome report failure.
    """

    def __init__(self) -> None:
        super().__init__(host="", debug=True)
        self.sent: list[SentMail] = []
        self.fail_verification = False
        self.fail_welcome = False

    def send_verification_code(self, email: str, code: str) -> None:
        if self.fail_verification:
            raise DeliveryFailed("Failed to send verification email")
        self.sent.append(SentMail("code", email, code))

    def send_welcome(self, email: str, full_name: str | None) -> bool:
        if self.fail_welcome:
            return False
        self.sent.append(SentMail("welcome", email, full_name))
        return True

    def codes_for(self, email: str) -> list[str]:
        return [m.payload for m in self.sent if m.kind == "code" and m.to == email]


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_store(db_suffix: str | None = None) -> DirectoryStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state. A random suffix is used when omitted.
    """
    suffix = db_suffix or uuid.uuid4().hex[:12]
    return DirectoryStore(db_url=f"sqlite:///file:test_roster_{suffix}?mode=memory&cache=shared&uri=true")


def make_profile(store: DirectoryStore, email: str, status: str = "active", **fields) -> Profile:
    return store.create_profile(
        Profile(user_id=str(uuid.uuid4()), email=email, full_name=email.split("@")[0], status=status, **fields)
    )


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(store: DirectoryStore, cache: CodeCache, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires the test doubles through the same wire_services() the real lifespan
    uses, so routes see production services over in-memory leaves.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, store, cache, mailer, get_settings())
        app.state.directory.seed_default_settings()
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Per-IP route limits are process-wide; start every test with fresh counters."""
    limiter.reset()
    yield


@pytest.fixture
def store() -> Generator[DirectoryStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> CodeCache:
    return CodeCache(fake_redis)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@dataclass
class ApiHarness:
    client: TestClient
    token: str
    admin: Profile
    store: DirectoryStore
    redis: FakeRedis
    mailer: RecordingMailer


@pytest.fixture(scope="module")
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers over an isolated in-memory store and fake redis.
    An active admin profile exists before the client starts and its JWT is
    generated for use in Authorization headers.
    """
    store = make_store()
    fake = FakeRedis()
    mailer = RecordingMailer()
    admin = make_profile(store, "admin@example.com")
    token = create_access_token(admin.user_id, admin.email, admin.id, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(store, CodeCache(fake), mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client, token, admin, store, fake, mailer)

    store.close()
