"""
tests/conftest.py -- Shared test fixtures for Postboard tests.

This module provides:
  - FakeClock: a controllable clock injected into every store
  - memory_engine(): isolated named shared-memory SQLite engine with schema
  - Store fixtures (identity_store, ledger, sessions, api_key_issuer, lifecycle)
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api: ApiHarness with a TestClient and login helpers for route tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any core/auth/api import: DEBUG so
get_settings() auto-generates SECRET_KEY, ALLOWED_HOSTS so TrustedHost
accepts the TestClient host, ADMIN_USER_IDS for the static allow-list, and
generous rate limits so tests never trip them.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# CRITICAL: Set env before any auth/core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")
os.environ.setdefault("ADMIN_USER_IDS", "1001")
os.environ.setdefault("OPENINGS_RATE_LIMIT", "1000/minute")
os.environ.setdefault("OAUTH_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ADMIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_state
from audit.store import AuditLog
from auth.api_keys import ApiKeyIssuer
from auth.ledger import PermissionLedger
from auth.models import Identity
from auth.sessions import SessionManager
from auth.store import IdentityStore
from core.config import get_settings
from core.db import build_engine, init_db
from openings.lifecycle import OpeningLifecycle
from openings.store import OpeningStore

ADMIN_ID = "1001"

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def memory_engine(name: str | None = None):
    """Create an isolated named shared-memory SQLite engine with the schema applied."""
    db_name = name or f"test_{uuid.uuid4().hex}"
    engine = build_engine(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    init_db(engine)
    return engine


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    eng = memory_engine()
    yield eng
    eng.dispose()


@pytest.fixture
def identity_store(engine, clock) -> IdentityStore:
    return IdentityStore(engine, clock=clock)


@pytest.fixture
def ledger(engine, identity_store, clock) -> PermissionLedger:
    return PermissionLedger(engine, identity_store, admin_ids=frozenset({ADMIN_ID}), clock=clock)


@pytest.fixture
def sessions(engine, identity_store, clock) -> SessionManager:
    return SessionManager(engine, identity_store, clock=clock)


@pytest.fixture
def api_key_issuer(engine, identity_store, clock) -> ApiKeyIssuer:
    return ApiKeyIssuer(engine, identity_store, clock=clock)


@pytest.fixture
def lifecycle(engine, clock) -> OpeningLifecycle:
    return OpeningLifecycle(OpeningStore(engine), clock=clock)


@pytest.fixture
def audit_log(engine, clock) -> AuditLog:
    return AuditLog(engine, clock=clock)


# ---------------------------------------------------------------------------
# App harness
# ---------------------------------------------------------------------------


def _patch_lifespan(engine, clock: FakeClock):
    """Return an async context manager that replaces the real lifespan.

    Wires stores built on the test engine and clock into app.state, and mocks
    the OAuth registry to prevent real network calls.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_state(app, engine, clock=clock)
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


class ApiHarness:
    """TestClient plus helpers to act as a given identity."""

    def __init__(self, client: TestClient, clock: FakeClock) -> None:
        self.client = client
        self.clock = clock

    @property
    def state(self):
        return self.client.app.state

    def login(self, identity_id: str, username: str | None = None) -> dict[str, str]:
        """Open a session for identity_id and return headers carrying its cookie."""
        session_id = self.state.sessions.create(Identity(id=identity_id, username=username or f"user{identity_id}"))
        return {"Cookie": f"{get_settings().session_cookie_name}={session_id}"}

    def admin(self) -> dict[str, str]:
        return self.login(ADMIN_ID, "boss")


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness over a per-module in-memory database.

    follow_redirects=False so OAuth and logout tests can assert on redirect
    locations.
    """
    module_name = request.module.__name__.rsplit(".", 1)[-1]
    eng = memory_engine(f"api_{module_name}")
    fake_clock = FakeClock()
    app.router.lifespan_context = _patch_lifespan(eng, fake_clock)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiHarness(client, fake_clock)

    eng.dispose()
