"""
tests/conftest.py -- Shared test fixtures for Gatehouse.

This module provides:
  - hasher / fake_store: fast bcrypt (4 rounds) and the in-memory store for
    unit tests of strategies and sessions
  - sql_store: SqlCredentialStore on a private in-memory SQLite database
  - client: TestClient over the assembled ASGI app (API + web) with a patched
    lifespan wiring an isolated database, follow_redirects=False

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixtures because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. A uuid suffix gives every test its own database.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import so
get_settings() generates a SECRET_KEY instead of raising and hashing stays
fast.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import wire_auth
from asgi import app
from auth.hashing import CredentialHasher
from auth.models import Credential
from auth.store import SqlCredentialStore
from fakes import CountingHasher, InMemoryCredentialStore

TEST_PASSWORD = "Str0ng!Pass"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> CountingHasher:
    return CountingHasher(rounds=4)


@pytest.fixture
def fake_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def sql_store() -> Generator[SqlCredentialStore, None, None]:
    store = SqlCredentialStore("sqlite:///:memory:")
    yield store
    store.close()


# ---------------------------------------------------------------------------
# App-level fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: SqlCredentialStore, hasher: CredentialHasher):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so TestClient routes see an isolated
    database rather than the configured one. No purge task is started.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_auth(app, store, hasher)
        yield

    return test_lifespan


@pytest.fixture
def app_store() -> Generator[SqlCredentialStore, None, None]:
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = SqlCredentialStore(url)
    yield store
    store.close()


@pytest.fixture
def client(app_store: SqlCredentialStore) -> Generator[TestClient, None, None]:
    """TestClient over API + web routes, with one existing user "alice".

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations*, which are invisible once the client follows them.
    """
    hasher = CredentialHasher(rounds=4)
    app_store.insert(
        Credential(username="alice", email="alice@example.com", password_hash=hasher.hash(TEST_PASSWORD))
    )
    app.router.lifespan_context = _patch_lifespan(app_store, hasher)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c
