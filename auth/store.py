"""
auth/store.py -- SQLAlchemy Core persistence layer for credentials and sessions.

Pattern: Repository + Data Mapper. SqlCredentialStore and SessionStore are the
repositories; _row_to_credential / _row_to_user_record are the mappers.
Strategy and route code never touches SQL directly.

CredentialStore is the narrow interface the strategies consume. Anything that
implements its four methods works -- the SQL store in production, an in-memory
fake in unit tests. Strategies receive the store as a constructor argument;
there is no module-level connection.

Errors:
  Every SQLAlchemyError leaving this module is wrapped in CredentialStoreError
  (cause preserved as __cause__ and .cause). A UNIQUE violation on insert is
  the distinguishable subclass DuplicateKeyError, carrying the colliding
  column when the driver message names it.

Concurrency:
  The database serializes conflicting writes: two concurrent inserts with the
  same username cannot both commit, the loser gets DuplicateKeyError.
  last_inserted_id() is per thread, so a request only ever reads back its own
  insert.

Security:
  All queries use bound parameters. No f-strings in SQL.
  find_by_id() selects only id/username/email -- the password hash is never
  loaded on the session path.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import json
import logging
import re
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Credential, SessionPayload, UserRecord

logger = logging.getLogger("gatehouse.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("session_id", String(64), primary_key=True),
    Column("payload", Text, nullable=False),  # JSON-encoded SessionPayload
    Column("created_at", String(32), nullable=False),
    Column("expires_at", Integer, nullable=False, index=True),  # unix epoch seconds
)


# ---------------------------------------------------------------------------
# Errors and interface
# ---------------------------------------------------------------------------


class CredentialStoreError(Exception):
    """The store could not complete an operation (connectivity, locking, schema)."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class DuplicateKeyError(CredentialStoreError):
    """An insert violated the UNIQUE constraint on username or email.

    field is "username", "email", or None when the driver message does not
    say which index rejected the row.
    """

    def __init__(self, field: str | None, cause: BaseException | None = None) -> None:
        super().__init__(f"duplicate value for {field or 'a unique column'}", cause)
        self.field = field


@dataclass(frozen=True)
class InsertResult:
    new_id: int | None


class CredentialStore(Protocol):
    """Lookup/insert contract the login and registration strategies depend on."""

    def find_by_username(self, username: str) -> Credential | None: ...

    def find_by_id(self, user_id: int) -> UserRecord | None: ...

    def insert(self, credential: Credential) -> InsertResult: ...

    def last_inserted_id(self) -> int | None: ...


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a registration.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# Driver messages that name the column behind a UNIQUE failure:
#   SQLite:     UNIQUE constraint failed: users.username
#   MySQL:      Duplicate entry 'bob' for key 'users.username'
#   PostgreSQL: Key (username)=(bob) already exists. / "users_username_key"
_DUPLICATE_FIELD_PATTERNS = (
    re.compile(r"users\.(username|email)\b"),
    re.compile(r"for key '(username|email)'"),
    re.compile(r"key \((username|email)\)="),
    re.compile(r"users_(username|email)_key"),
)


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


def _duplicate_field(exc: IntegrityError) -> str | None:
    message = str(exc.orig).lower()
    for pattern in _DUPLICATE_FIELD_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def make_engine(db_url: str) -> Engine:
    """Create an engine and the auth schema. Shared by both repositories."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Credential repository
# ---------------------------------------------------------------------------


class SqlCredentialStore:
    """SQL-backed CredentialStore.

    Usage:
        store = SqlCredentialStore("sqlite:///gatehouse.db")
        result = store.insert(Credential(username="alice", email="a@x.com", password_hash=digest))
        store.find_by_id(result.new_id)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        self._local = threading.local()

    def find_by_username(self, username: str) -> Credential | None:
        """Exact (case-sensitive) username lookup, including the password hash."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("username lookup failed", exc) from exc
        return _row_to_credential(row) if row is not None else None

    def find_by_id(self, user_id: int) -> UserRecord | None:
        """Primary-key lookup restricted to id, username and email."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(_users.c.id, _users.c.username, _users.c.email).where(_users.c.id == user_id)
                ).fetchone()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("id lookup failed", exc) from exc
        return _row_to_user_record(row) if row is not None else None

    def insert(self, credential: Credential) -> InsertResult:
        """Insert a credential and return the id assigned on the same connection.

        Raises DuplicateKeyError when username or email is already taken, and
        CredentialStoreError for any other failure. Nothing is committed when
        either is raised.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=credential.username,
                        email=credential.email,
                        password_hash=credential.password_hash,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateKeyError(_duplicate_field(exc), exc) from exc
            raise CredentialStoreError("insert rejected by a constraint", exc) from exc
        except SQLAlchemyError as exc:
            raise CredentialStoreError("insert failed", exc) from exc

        key = result.inserted_primary_key
        new_id = key[0] if key else None
        self._local.last_id = new_id
        return InsertResult(new_id=new_id)

    def last_inserted_id(self) -> int | None:
        """Return the id of the most recent insert made by the calling thread."""
        return getattr(self._local, "last_id", None)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Server-side session storage keyed by a random session id.

    The browser only ever holds a signed reference to the id (see
    auth/tokens.py). Deleting the row ends the session: a replayed cookie
    finds nothing and the request is anonymous.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, payload: SessionPayload, max_age: int) -> str:
        """Persist payload under a new unguessable id and return the id."""
        session_id = secrets.token_urlsafe(32)
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _sessions.insert().values(
                        session_id=session_id,
                        payload=json.dumps(payload, sort_keys=True),
                        created_at=_now_iso(),
                        expires_at=int(time.time()) + max_age,
                    )
                )
                conn.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("session create failed", exc) from exc
        return session_id

    def load(self, session_id: str) -> SessionPayload | None:
        """Return the payload for a live session, or None if unknown or expired.

        An expired row is deleted on the way out so it cannot be revived.
        Returns the decoded JSON as-is; shape checks belong to the session
        manager.
        """
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_sessions.select().where(_sessions.c.session_id == session_id)).fetchone()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("session load failed", exc) from exc
        if row is None:
            return None
        if row.expires_at <= int(time.time()):
            self.delete(session_id)
            return None
        try:
            return json.loads(row.payload)
        except ValueError:
            logger.warning("Discarding session with undecodable payload")
            self.delete(session_id)
            return None

    def delete(self, session_id: str) -> bool:
        """Remove a session. Returns True if a row was deleted."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_sessions.delete().where(_sessions.c.session_id == session_id))
                conn.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("session delete failed", exc) from exc
        return result.rowcount > 0

    def purge_expired(self) -> int:
        """Delete every expired session row and return how many were removed."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= int(time.time())))
                conn.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("session purge failed", exc) from exc
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    return Credential(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
    )


def _row_to_user_record(row) -> UserRecord:
    return UserRecord(id=row.id, username=row.username, email=row.email)
