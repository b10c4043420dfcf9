"""
auth/gate.py -- Per-request authentication state and the access decision.

A request is Authenticated only if its session resolved to a UserRecord
during this request. There is no stored "logged in" flag: a missing cookie,
a bad signature, a deleted session, a malformed payload, a vanished user and
a store outage all leave the request Anonymous.

Logout is the one terminal transition: the session row is deleted, so the
same cookie resolves to Anonymous on every later request.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.models import DeserializeResult, UserRecord
from auth.session import SessionIdentityManager


class IdentityState(str, Enum):
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class GateDecision(str, Enum):
    PROCEED = "proceed"
    REDIRECT_TO_LOGIN = "redirect_to_login"


@dataclass(frozen=True)
class RequestIdentity:
    """Outcome of resolving one request's session."""

    state: IdentityState
    user: UserRecord | None = None
    session_id: str | None = None


ANONYMOUS = RequestIdentity(state=IdentityState.ANONYMOUS)


class AuthenticationGate:
    def __init__(self, sessions: SessionIdentityManager) -> None:
        self._sessions = sessions

    @staticmethod
    def evaluate(resolution: DeserializeResult | None, session_id: str | None = None) -> RequestIdentity:
        """Map a deserialize outcome to the request's identity state."""
        if isinstance(resolution, UserRecord):
            return RequestIdentity(state=IdentityState.AUTHENTICATED, user=resolution, session_id=session_id)
        return RequestIdentity(state=IdentityState.ANONYMOUS, session_id=session_id)

    @staticmethod
    def require_authenticated(state: IdentityState) -> GateDecision:
        if state is IdentityState.AUTHENTICATED:
            return GateDecision.PROCEED
        return GateDecision.REDIRECT_TO_LOGIN

    def logout(self, session_id: str | None) -> RequestIdentity:
        """Invalidate the session (if any) and return the Anonymous state.

        Store failures propagate: a logout that could not delete the session
        must not be reported as done.
        """
        if session_id:
            self._sessions.invalidate(session_id)
        return ANONYMOUS
