"""
tests/conftest.py -- Shared test fixtures for AgentDesk auth tests.

This module provides:
  - FakeMailer / FrozenClock: in-process stand-ins for the mail relay and the clock
  - store / service: a fresh in-memory UserStore and an AuthService over it
  - manager: a registered manager account agents can be attached to
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.errors import DeliveryFailed
from auth.models import User
from auth.permissions import PermissionPolicy
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import DEFAULT_ROLE_PERMISSIONS, DEFAULT_UNIVERSAL_PERMISSIONS

MANAGER_PASSWORD = "manager-pass-1"

# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class FakeMailer:
    """Records messages instead of sending them. Set fail=True to simulate an outage."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryFailed()
        self.sent.append((to, subject, body))

    def last_code(self) -> str:
        """Extract the 6-digit code from the most recent message."""
        _to, _subject, body = self.sent[-1]
        match = re.search(r"\b(\d{6})\b", body)
        assert match, f"no code in mail body: {body!r}"
        return match.group(1)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def policy() -> PermissionPolicy:
    return PermissionPolicy.from_tables(DEFAULT_ROLE_PERMISSIONS, DEFAULT_UNIVERSAL_PERMISSIONS)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def service(store: UserStore, mailer: FakeMailer, policy: PermissionPolicy, clock: FrozenClock) -> AuthService:
    return AuthService(store=store, mailer=mailer, policy=policy, otp_ttl_seconds=600, clock=clock)


@pytest.fixture
def manager(store: UserStore) -> User:
    """A manager account created straight through the store (no audit entry)."""
    return store.create_user(
        User(
            email="boss@x.com",
            name="Boss",
            role="manager",
            hashed_password=hash_password(MANAGER_PASSWORD),
            permissions=set(DEFAULT_ROLE_PERMISSIONS["manager"]),
        )
    )


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and a service with a FakeMailer into app.state so
    routes never touch the production database or a real mail relay.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, UserStore, FakeMailer], None, None]:
    """Yield (client, store, mailer) for API integration tests.

    Each test module gets its own named in-memory database, keyed by module name.
    """
    db_name = request.module.__name__.replace(".", "_")
    user_store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    fake_mailer = FakeMailer()
    service = AuthService(
        store=user_store,
        mailer=fake_mailer,
        policy=PermissionPolicy.from_tables(DEFAULT_ROLE_PERMISSIONS, DEFAULT_UNIVERSAL_PERMISSIONS),
    )

    app.router.lifespan_context = _patch_lifespan(user_store, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, fake_mailer

    user_store.close()
