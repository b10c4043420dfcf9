"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; sets session cookie
  POST /api/v1/auth/login      -- password login; sets session cookie
  POST /api/v1/auth/logout     -- deletes the server-side session and the cookie
  GET  /api/v1/auth/me         -- current user info (requires auth)

Result mapping:
  UserNotFound and InvalidCredentials both become 401 "bad_credentials" with
  one message, so the response does not reveal whether a username exists.
  StoreError becomes 503 "store_unavailable" -- never a credential error.

Handlers are plain `def`: bcrypt is CPU-bound, so FastAPI runs them in its
threadpool and one slow hash does not stall other requests.

  Cache-Control: no-store on login and register responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import LoginRequest, MeResponse, RegisterRequest, SessionResponse
from auth.dependencies import end_session, get_current_user, start_session
from auth.models import (
    AuthSuccess,
    DuplicateCredential,
    RegisteredWithoutIdentity,
    StoreError,
    UserRecord,
)
from auth.strategies import Authenticator, LoginSubmission, RegistrationSubmission
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register: public -- gated by SELF_REGISTRATION_ENABLED
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/logout:   public -- ending a session needs no prior auth
# - GET  /api/v1/auth/me:       requires auth (get_current_user)
router = APIRouter()


_STORE_UNAVAILABLE = {
    "code": "store_unavailable",
    "message": "The account service is temporarily unavailable. Please try again.",
}


@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and log it in, as the registration page does."""
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self registration is disabled."},
        )

    authenticator: Authenticator = request.app.state.authenticator
    result = authenticator.register(
        RegistrationSubmission(username=body.username, email=body.email, password=body.password)
    )

    if isinstance(result, DuplicateCredential):
        what = result.field or "username or email"
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": f"An account with that {what} already exists."},
        )
    if isinstance(result, RegisteredWithoutIdentity):
        # The account exists; the client should log in normally.
        return JSONResponse(
            status_code=202,
            content={"error": {"code": "registration_pending", "message": "Account created. Please log in."}},
            headers={"Cache-Control": "no-store"},
        )
    if isinstance(result, StoreError):
        raise HTTPException(status_code=503, detail=_STORE_UNAVAILABLE)

    resp = JSONResponse(
        status_code=201,
        content=SessionResponse(user_id=result.token.user_id, username=body.username).model_dump(),
    )
    start_session(request, resp, result.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie."""
    authenticator: Authenticator = request.app.state.authenticator
    result = authenticator.login(LoginSubmission(username=body.username, password=body.password))

    if isinstance(result, StoreError):
        raise HTTPException(status_code=503, detail=_STORE_UNAVAILABLE)
    if not isinstance(result, AuthSuccess):
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=SessionResponse(user_id=result.token.user_id, username=body.username).model_dump(),
    )
    start_session(request, resp, result.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Delete the server-side session and clear the cookie."""
    resp = JSONResponse(content={"message": "Logged out."})
    end_session(request, resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: UserRecord = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user_id=current_user.id, username=current_user.username, email=current_user.email)
