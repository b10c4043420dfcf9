"""Unit tests for auth/session.py and the sessions table in auth/store.py.

Covers:
- serialize() is deterministic and carries only the user id
- deserialize(serialize(t)) resolves to the user with id t.user_id
- legacy payload shapes (bare id, single-element list) still resolve
- malformed payloads, vanished users and store outages become DeserializeError
- every deserialize() call hits the store (no caching)
- issue/load/invalidate lifecycle, expiry and replacement of a prior session
"""

from __future__ import annotations

import time

import pytest
from sqlalchemy import text

from auth.models import Credential, DeserializeError, DeserializeFailure, IdentityToken, UserRecord
from auth.session import SessionIdentityManager
from auth.store import SessionStore


@pytest.fixture
def alice_id(fake_store) -> int:
    return fake_store.insert(Credential(username="alice", email="a@x.com", password_hash="$2b$04$hash")).new_id


@pytest.fixture
def session_store(sql_store) -> SessionStore:
    return SessionStore(sql_store.engine)


@pytest.fixture
def manager(fake_store, session_store) -> SessionIdentityManager:
    return SessionIdentityManager(fake_store, session_store, max_age=3600)


# ---------------------------------------------------------------------------
# Payload codec
# ---------------------------------------------------------------------------


def test_serialize_is_canonical_and_deterministic() -> None:
    token = IdentityToken(user_id=7)
    assert SessionIdentityManager.serialize(token) == {"user_id": 7}
    assert SessionIdentityManager.serialize(token) == SessionIdentityManager.serialize(IdentityToken(user_id=7))


def test_round_trip_resolves_user_without_password(manager, alice_id) -> None:
    user = manager.deserialize(manager.serialize(IdentityToken(user_id=alice_id)))
    assert user == UserRecord(id=alice_id, username="alice", email="a@x.com")
    assert not hasattr(user, "password_hash")


@pytest.mark.parametrize("shape", ["bare", "wrapped"])
def test_legacy_payload_shapes_resolve(manager, alice_id, shape) -> None:
    payload = alice_id if shape == "bare" else [{"user_id": alice_id}]
    user = manager.deserialize(payload)
    assert isinstance(user, UserRecord)
    assert user.id == alice_id


@pytest.mark.parametrize(
    "payload",
    [None, {}, {"user_id": None}, {"user_id": "1"}, {"user_id": True}, {"user_id": 0}, [], [1, 2], "1", 1.5],
)
def test_malformed_payload(manager, fake_store, payload) -> None:
    result = manager.deserialize(payload)
    assert result == DeserializeError(reason=DeserializeFailure.MALFORMED)
    assert fake_store.calls["find_by_id"] == 0


def test_vanished_user_is_not_found(manager, fake_store, alice_id) -> None:
    payload = manager.serialize(IdentityToken(user_id=alice_id))
    fake_store.delete(alice_id)
    result = manager.deserialize(payload)
    assert isinstance(result, DeserializeError)
    assert result.reason is DeserializeFailure.NOT_FOUND


def test_store_outage_is_store_error(manager, fake_store, alice_id) -> None:
    fake_store.fail_on.add("find_by_id")
    result = manager.deserialize({"user_id": alice_id})
    assert isinstance(result, DeserializeError)
    assert result.reason is DeserializeFailure.STORE_ERROR
    assert result.cause is not None


def test_each_deserialize_reads_the_store(manager, fake_store, alice_id) -> None:
    payload = {"user_id": alice_id}
    manager.deserialize(payload)
    manager.deserialize(payload)
    assert fake_store.calls["find_by_id"] == 2


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


def test_issue_then_load(manager, alice_id) -> None:
    session_id = manager.issue(IdentityToken(user_id=alice_id))
    assert manager.load(session_id) == {"user_id": alice_id}


def test_session_ids_are_unique(manager, alice_id) -> None:
    ids = {manager.issue(IdentityToken(user_id=alice_id)) for _ in range(5)}
    assert len(ids) == 5


def test_invalidate_removes_session(manager, alice_id) -> None:
    session_id = manager.issue(IdentityToken(user_id=alice_id))
    assert manager.invalidate(session_id) is True
    assert manager.load(session_id) is None
    assert manager.invalidate(session_id) is False


def test_issue_replaces_previous_session(manager, alice_id) -> None:
    old = manager.issue(IdentityToken(user_id=alice_id))
    new = manager.issue(IdentityToken(user_id=alice_id), replacing=old)
    assert new != old
    assert manager.load(old) is None
    assert manager.load(new) == {"user_id": alice_id}


def test_unknown_session_loads_none(manager) -> None:
    assert manager.load("no-such-session") is None


def test_expired_session_is_gone(fake_store, session_store, alice_id) -> None:
    manager = SessionIdentityManager(fake_store, session_store, max_age=-1)
    session_id = manager.issue(IdentityToken(user_id=alice_id))
    assert manager.load(session_id) is None
    # Deleted on read, so nothing is left to purge.
    assert session_store.purge_expired() == 0


def test_purge_expired_keeps_live_sessions(session_store) -> None:
    live = session_store.create({"user_id": 1}, max_age=3600)
    session_store.create({"user_id": 2}, max_age=-10)
    session_store.create({"user_id": 3}, max_age=-10)
    assert session_store.purge_expired() == 2
    assert session_store.load(live) == {"user_id": 1}


def test_session_expiry_uses_max_age(session_store) -> None:
    before = int(time.time())
    session_id = session_store.create({"user_id": 1}, max_age=120)
    with session_store.engine.connect() as conn:
        expires_at = conn.execute(
            text("SELECT expires_at FROM sessions WHERE session_id = :sid"), {"sid": session_id}
        ).scalar()
    assert before + 120 <= expires_at <= int(time.time()) + 120
