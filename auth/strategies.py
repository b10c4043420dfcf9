"""
auth/strategies.py -- Login and registration against the credential store.

Two strategies, one interface:
  LoginStrategy.run(LoginSubmission)          -> AuthResult
  RegisterStrategy.run(RegistrationSubmission) -> RegistrationResult

The set is closed. StrategyKind names both and Authenticator.dispatch() is the
single entry point that routes a submission to the matching strategy; there is
no registry of strategies by arbitrary string name.

Each step of a strategy either produces the next value or returns a failure
variant immediately -- hash -> insert -> id readback stops at the first
failure. No step retries and none has its own timeout; the HTTP layer owns
both.

Submissions arrive pre-validated (field lengths, character classes and the
password confirmation are checked by the form models in core/models.py).
The strategies accept any string, including the empty string.

Strategies hold only the injected store and hasher, so one instance serves
concurrent requests.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from auth.hashing import CredentialHasher
from auth.models import (
    AuthResult,
    AuthSuccess,
    Credential,
    DuplicateCredential,
    IdentityToken,
    InvalidCredentials,
    RegisteredWithoutIdentity,
    RegistrationResult,
    RegistrationSuccess,
    StoreError,
    UserNotFound,
)
from auth.store import CredentialStore, CredentialStoreError, DuplicateKeyError

logger = logging.getLogger("gatehouse.auth")


@dataclass(frozen=True)
class LoginSubmission:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"LoginSubmission(username={self.username!r}, password=<redacted>)"


@dataclass(frozen=True)
class RegistrationSubmission:
    username: str
    email: str
    password: str

    def __repr__(self) -> str:
        return f"RegistrationSubmission(username={self.username!r}, email={self.email!r}, password=<redacted>)"


class StrategyKind(str, Enum):
    LOGIN = "login"
    REGISTER = "register"


class LoginStrategy:
    """Verify a username/password pair.

    An unknown username returns UserNotFound without running bcrypt. The two
    failure kinds stay distinct here; api/ and web/ render them with the same
    generic message.
    """

    kind = StrategyKind.LOGIN

    def __init__(self, store: CredentialStore, hasher: CredentialHasher) -> None:
        self._store = store
        self._hasher = hasher

    def run(self, submission: LoginSubmission) -> AuthResult:
        try:
            credential = self._store.find_by_username(submission.username)
        except CredentialStoreError as exc:
            logger.error("Login lookup failed: %s", exc)
            return StoreError(cause=exc)

        if credential is None:
            logger.info("Login failed: user_not_found")
            return UserNotFound(username=submission.username)

        if not self._hasher.verify(submission.password, credential.password_hash):
            logger.info("Login failed: invalid_credentials (user_id=%s)", credential.id)
            return InvalidCredentials(username=submission.username)

        logger.info("Login succeeded (user_id=%s)", credential.id)
        return AuthSuccess(token=IdentityToken(user_id=credential.id))


class RegisterStrategy:
    """Hash a new password, insert the credential and return its identity.

    Hashing happens before any write, so a hashing failure leaves no row.
    If the insert commits but the id cannot be read back, the result is
    RegisteredWithoutIdentity rather than success or failure.
    """

    kind = StrategyKind.REGISTER

    def __init__(self, store: CredentialStore, hasher: CredentialHasher) -> None:
        self._store = store
        self._hasher = hasher

    def run(self, submission: RegistrationSubmission) -> RegistrationResult:
        digest = self._hasher.hash(submission.password)
        credential = Credential(username=submission.username, email=submission.email, password_hash=digest)

        try:
            inserted = self._store.insert(credential)
        except DuplicateKeyError as exc:
            logger.info("Registration rejected: duplicate %s", exc.field or "credential")
            return DuplicateCredential(field=exc.field)
        except CredentialStoreError as exc:
            logger.error("Registration insert failed: %s", exc)
            return StoreError(cause=exc)

        try:
            user_id = inserted.new_id if inserted.new_id is not None else self._store.last_inserted_id()
        except CredentialStoreError as exc:
            return self._degraded(submission.username, exc)
        if user_id is None:
            return self._degraded(submission.username, LookupError("store returned no id for the new row"))

        logger.info("Registered new user (user_id=%s)", user_id)
        return RegistrationSuccess(token=IdentityToken(user_id=user_id))

    @staticmethod
    def _degraded(username: str, cause: BaseException) -> RegisteredWithoutIdentity:
        logger.error(
            "User %r was inserted but its id could not be read back (%s); reconcile manually",
            username,
            cause,
        )
        return RegisteredWithoutIdentity(username=username, cause=cause)


Strategy = Union[LoginStrategy, RegisterStrategy]


class Authenticator:
    """Holds one instance of each strategy and dispatches submissions to them.

    Usage:
        authenticator = Authenticator(store, CredentialHasher(rounds=10))
        result = authenticator.login(LoginSubmission("alice", "Str0ng!Pass"))
        if isinstance(result, AuthSuccess):
            ...
    """

    def __init__(self, store: CredentialStore, hasher: CredentialHasher) -> None:
        self._strategies: dict[StrategyKind, Strategy] = {
            StrategyKind.LOGIN: LoginStrategy(store, hasher),
            StrategyKind.REGISTER: RegisterStrategy(store, hasher),
        }

    def dispatch(
        self, kind: StrategyKind, submission: LoginSubmission | RegistrationSubmission
    ) -> AuthResult | RegistrationResult:
        """Run the strategy for kind. Raises TypeError on a mismatched submission."""
        expected = LoginSubmission if kind is StrategyKind.LOGIN else RegistrationSubmission
        if not isinstance(submission, expected):
            raise TypeError(f"{kind.value} strategy expects {expected.__name__}, got {type(submission).__name__}")
        return self._strategies[kind].run(submission)

    def login(self, submission: LoginSubmission) -> AuthResult:
        return self.dispatch(StrategyKind.LOGIN, submission)

    def register(self, submission: RegistrationSubmission) -> RegistrationResult:
        return self.dispatch(StrategyKind.REGISTER, submission)
