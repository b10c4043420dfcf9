"""
auth/session.py -- Session identity lifecycle.

Two-phase identity:
  login:    IdentityToken --serialize--> SessionPayload --> sessions table
  request:  sessions table --> SessionPayload --deserialize--> UserRecord

serialize() is pure. deserialize() does one store lookup per call and never
caches the result; every authenticated request re-reads the user row (and so
sees a deleted user immediately). The lookup goes through find_by_id(), which
does not select the password hash.

Payload shape:
  Canonical:  {"user_id": 7}
  Legacy:     7   and   [{"user_id": 7}]

Only the canonical shape is written. The legacy shapes were produced by the
register and login paths of the previous deployment and may still sit in
unexpired session rows, so deserialize() reads them too.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.models import (
    DeserializeError,
    DeserializeFailure,
    DeserializeResult,
    IdentityToken,
    SessionPayload,
)
from auth.store import CredentialStore, CredentialStoreError, SessionStore

logger = logging.getLogger("gatehouse.auth.session")


class SessionIdentityManager:
    """Serialize identities into sessions and resolve sessions back to users.

    Usage:
        manager = SessionIdentityManager(credential_store, session_store, max_age=86400)
        session_id = manager.issue(IdentityToken(user_id=7))
        user = manager.deserialize(manager.load(session_id))
        manager.invalidate(session_id)
    """

    def __init__(self, store: CredentialStore, sessions: SessionStore, max_age: int) -> None:
        self._store = store
        self._sessions = sessions
        self.max_age = max_age

    # ------------------------------------------------------------------
    # Payload codec
    # ------------------------------------------------------------------

    @staticmethod
    def serialize(token: IdentityToken) -> SessionPayload:
        return {"user_id": token.user_id}

    def deserialize(self, payload: Any) -> DeserializeResult:
        """Resolve a payload to a UserRecord, or a DeserializeError saying why not."""
        user_id = _extract_user_id(payload)
        if user_id is None:
            logger.warning("Session payload has no usable user id")
            return DeserializeError(reason=DeserializeFailure.MALFORMED)

        try:
            user = self._store.find_by_id(user_id)
        except CredentialStoreError as exc:
            logger.error("Session user lookup failed (user_id=%s): %s", user_id, exc)
            return DeserializeError(reason=DeserializeFailure.STORE_ERROR, cause=exc)

        if user is None:
            logger.info("Session refers to a user that no longer exists (user_id=%s)", user_id)
            return DeserializeError(reason=DeserializeFailure.NOT_FOUND)
        return user

    # ------------------------------------------------------------------
    # Session storage
    # ------------------------------------------------------------------

    def issue(self, token: IdentityToken, replacing: str | None = None) -> str:
        """Store a serialized token in a new session and return its id.

        replacing is the caller's current session id, if any. It is deleted
        first so a pre-login session id is never promoted to an authenticated
        one.
        """
        if replacing:
            self._sessions.delete(replacing)
        return self._sessions.create(self.serialize(token), self.max_age)

    def load(self, session_id: str) -> SessionPayload | None:
        """Return the stored payload for session_id, or None if it is gone."""
        return self._sessions.load(session_id)

    def invalidate(self, session_id: str) -> bool:
        """End a session. A cookie still pointing at it resolves to anonymous."""
        deleted = self._sessions.delete(session_id)
        logger.info("Session invalidated (existed=%s)", deleted)
        return deleted


def _extract_user_id(payload: Any) -> int | None:
    if isinstance(payload, list):
        if len(payload) != 1:
            return None
        payload = payload[0]
    if isinstance(payload, dict):
        payload = payload.get("user_id")
    # bool is an int subclass; True is not user 1.
    if isinstance(payload, bool) or not isinstance(payload, int):
        return None
    return payload if payload > 0 else None
