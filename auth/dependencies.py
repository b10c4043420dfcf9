"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

resolve_identity() runs the whole request-time chain once per request:

  cookie -> decode_session_cookie -> SessionStore.load -> deserialize -> gate

and memoizes the RequestIdentity on request.state, so a route that calls
several helpers still deserializes exactly once.

try_get_current_user() is the soft variant (returns None when anonymous).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Failures never escape: a store outage while loading the session is logged and
the request continues as Anonymous.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.gate import ANONYMOUS, AuthenticationGate, RequestIdentity
from auth.models import IdentityToken, UserRecord
from auth.session import SessionIdentityManager
from auth.store import CredentialStoreError
from auth.tokens import (
    SESSION_COOKIE_NAME,
    clear_session_cookie,
    create_session_cookie,
    decode_session_cookie,
    set_session_cookie,
)

logger = logging.getLogger("gatehouse.auth")


def resolve_identity(request: Request) -> RequestIdentity:
    """Return this request's identity, resolving the session on first call."""
    cached = getattr(request.state, "identity", None)
    if cached is not None:
        return cached

    identity = _resolve(request)
    request.state.identity = identity
    return identity


def _resolve(request: Request) -> RequestIdentity:
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        return ANONYMOUS

    session_id = decode_session_cookie(cookie)
    if session_id is None:
        return ANONYMOUS

    manager: SessionIdentityManager = request.app.state.session_manager
    gate: AuthenticationGate = request.app.state.gate
    try:
        payload = manager.load(session_id)
    except CredentialStoreError as exc:
        logger.error("Session storage unavailable, treating request as anonymous: %s", exc)
        return ANONYMOUS
    if payload is None:
        return ANONYMOUS

    return gate.evaluate(manager.deserialize(payload), session_id=session_id)


def start_session(request: Request, response, token: IdentityToken) -> None:
    """Issue a session for token and attach its signed cookie to response.

    Any session the browser already holds is deleted first, so the id used
    before login never becomes an authenticated session.
    """
    manager: SessionIdentityManager = request.app.state.session_manager
    session_id = manager.issue(token, replacing=_cookie_session_id(request))
    set_session_cookie(response, create_session_cookie(session_id, manager.max_age), manager.max_age)


def end_session(request: Request, response) -> None:
    """Logout: delete the server-side session and the cookie.

    Works from the cookie alone, so a session whose user has vanished (or
    whose payload is malformed) is still deleted.
    """
    gate: AuthenticationGate = request.app.state.gate
    request.state.identity = gate.logout(_cookie_session_id(request))
    clear_session_cookie(response)


def _cookie_session_id(request: Request) -> str | None:
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    return decode_session_cookie(cookie) if cookie else None


def try_get_current_user(request: Request) -> UserRecord | None:
    """Return the authenticated user or None. Never raises."""
    return resolve_identity(request).user


def get_current_user(request: Request) -> UserRecord:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: UserRecord = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
