"""
auth/models.py -- Domain dataclasses and result variants for authentication.

Pattern: Data class (pure data container, zero logic). Stores and strategies
do the work; these types only carry shape.

Two families live here:
  Records   -- Credential (what the store holds), UserRecord (what a session
               resolves to), IdentityToken (what a login hands to the session).
  Results   -- tagged variants returned by the strategies and the session
               manager. Failures are values, not exceptions, so a caller can
               tell a store outage apart from a bad password with isinstance().

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


@dataclass(frozen=True)
class Credential:
    """A stored username/email/password-hash triple.

    password_hash is a bcrypt digest ($2b$<cost>$<salt+hash>) -- never the
    plaintext. id is None before the record is written to the database.
    """

    username: str
    email: str
    password_hash: str
    id: int | None = None


@dataclass(frozen=True)
class UserRecord:
    """The user a session resolves to. Deliberately has no password field."""

    id: int
    username: str
    email: str


@dataclass(frozen=True)
class IdentityToken:
    """Minimal authenticated identity handed from a strategy to the session."""

    user_id: int


# Canonical serialized form of an IdentityToken: {"user_id": <int>}.
SessionPayload = dict[str, Any]


# ---------------------------------------------------------------------------
# Login results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthSuccess:
    token: IdentityToken


@dataclass(frozen=True)
class UserNotFound:
    username: str


@dataclass(frozen=True)
class InvalidCredentials:
    username: str


@dataclass(frozen=True)
class StoreError:
    """The credential store failed; the operation's outcome is unknown.

    Never rendered as a credential failure -- an outage is not a bad password.
    """

    cause: BaseException


AuthResult = Union[AuthSuccess, UserNotFound, InvalidCredentials, StoreError]


# ---------------------------------------------------------------------------
# Registration results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegistrationSuccess:
    token: IdentityToken


@dataclass(frozen=True)
class DuplicateCredential:
    """A UNIQUE constraint rejected the insert.

    field is "username" or "email" when the store could tell which key
    collided, None otherwise.
    """

    field: str | None = None


@dataclass(frozen=True)
class RegisteredWithoutIdentity:
    """The row was inserted but its id could not be read back.

    Degraded success: the account exists and can log in, but no session can
    be issued for this request. Needs manual reconciliation if it recurs.
    """

    username: str
    cause: BaseException


RegistrationResult = Union[RegistrationSuccess, DuplicateCredential, RegisteredWithoutIdentity, StoreError]


# ---------------------------------------------------------------------------
# Session resolution results
# ---------------------------------------------------------------------------


class DeserializeFailure(str, Enum):
    MALFORMED = "malformed"
    NOT_FOUND = "not-found"
    STORE_ERROR = "store-error"


@dataclass(frozen=True)
class DeserializeError:
    reason: DeserializeFailure
    cause: BaseException | None = None


DeserializeResult = Union[UserRecord, DeserializeError]
