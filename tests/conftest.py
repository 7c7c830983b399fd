"""
tests/conftest.py -- Shared test fixtures for Pulse unit and integration tests.

This module provides:
  - RecordingMailer: Mailer fake that keeps every message it was asked to send
  - store / signer / sessions / reset_flow / accounts: unit-test services over
    a private in-memory SQLite database
  - alice: a registered user (alice@example.com / alice / "correct")
  - api_client: TestClient wired to an isolated shared-memory store

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

DEBUG, ALLOWED_HOSTS and the reset rate limit must be set before any api/ or
core/ import so get_settings() sees them on first (cached) construction.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("RESET_REQUEST_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_services
from auth.accounts import AccountService
from auth.models import User
from auth.reset import PasswordResetFlow
from auth.sessions import SessionLifecycle
from auth.store import UserStore
from auth.tokens import CredentialSigner, hash_password

ACCESS_SECRET = "access-secret-for-tests-0123456789abcdef"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789abcdef"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class RecordingMailer:
    """Mailer that records messages instead of sending them.

    Set fail_reset / fail_success to simulate delivery failures.
    """

    reset_emails: list[tuple[str, str, str]] = field(default_factory=list)
    success_emails: list[tuple[str, str]] = field(default_factory=list)
    fail_reset: bool = False
    fail_success: bool = False

    def send_reset_password_email(self, username: str, email: str, unhashed_token: str) -> bool:
        if self.fail_reset:
            return False
        self.reset_emails.append((username, email, unhashed_token))
        return True

    def send_reset_password_success_email(self, username: str, email: str) -> bool:
        if self.fail_success:
            return False
        self.success_emails.append((username, email))
        return True

    @property
    def last_token(self) -> str:
        return self.reset_emails[-1][2]


class MutableClock:
    """Callable clock that tests can move forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def signer() -> CredentialSigner:
    return CredentialSigner(ACCESS_SECRET, REFRESH_SECRET)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def sessions(store: UserStore, signer: CredentialSigner) -> SessionLifecycle:
    return SessionLifecycle(store, signer)


@pytest.fixture
def reset_flow(store: UserStore, mailer: RecordingMailer, clock: MutableClock) -> PasswordResetFlow:
    return PasswordResetFlow(store, mailer, window_seconds=20 * 60, clock=clock)


@pytest.fixture
def accounts(store: UserStore) -> AccountService:
    return AccountService(store)


@pytest.fixture
def alice(store: UserStore) -> User:
    uid = store.create_user(
        User(
            email="alice@example.com",
            username="alice",
            first_name="Alice",
            last_name="Liddell",
            hashed_password=hash_password("correct"),
        )
    )
    return store.get_by_id(uid)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and fake mailer into app.state through the same
    build_services() the real lifespan uses.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, user_store, mailer)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[tuple[TestClient, RecordingMailer], None, None]:
    """Yield (client, mailer) for API integration tests.

    A user alice@example.com / alice with password "correct" exists before the
    client starts. The database is shared by all tests in one module, so tests
    that change alice's password or session state should register their own
    user instead.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    db_url = f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    user_store.create_user(
        User(
            email="alice@example.com",
            username="alice",
            first_name="Alice",
            last_name="Liddell",
            hashed_password=hash_password("correct"),
        )
    )
    mailer = RecordingMailer()

    app.router.lifespan_context = _patch_lifespan(user_store, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mailer

    user_store.close()
