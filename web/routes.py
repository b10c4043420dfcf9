"""
web/routes.py -- Jinja2 template routes for the Gatehouse web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same authenticator, session manager and gate) but answer with pages
and redirects instead of JSON.

Routes:
  GET  /           -- home page (public)
  GET  /profile    -- profile page (auth required)
  GET  /login      -- login form
  POST /login      -- handle password login, redirect to ?next or /profile
  GET  /register   -- registration form
  POST /register   -- validate, create account, log in, redirect /
  GET  /logout     -- end session, redirect /
  POST /logout     -- same, for forms
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from auth.dependencies import end_session, resolve_identity, start_session, try_get_current_user
from auth.gate import AuthenticationGate, GateDecision
from auth.models import (
    AuthSuccess,
    DuplicateCredential,
    RegisteredWithoutIdentity,
    StoreError,
)
from auth.strategies import Authenticator, LoginSubmission, RegistrationSubmission
from core.config import get_settings
from core.models import RegistrationForm, form_errors

logger = logging.getLogger("gatehouse.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_user as a Jinja2 global so layout.html can render the
# nav bar for the signed-in user without every handler passing it in.
templates.env.globals["try_get_current_user"] = try_get_current_user
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid username or password.",
    "unavailable": "We could not reach the account service. Please try again.",
    "registered": "Your account was created. Please log in.",
}


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative ones ("//host"), both of
    which would send the user off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/profile"


def _login_retry(error: str, next_url: Optional[str]) -> RedirectResponse:
    """Send the user back to /login with an error code, keeping a safe next target."""
    params = {"error": error}
    if next_url and _safe_next(next_url) == next_url:
        params["next"] = next_url
    return RedirectResponse(f"/login?{urlencode(params)}", status_code=302)


def _require_auth(request: Request) -> Optional[RedirectResponse]:
    """Return a RedirectResponse to /login if the gate says so, None to proceed.

    Call at the top of protected route handlers:
        if redirect := _require_auth(request):
            return redirect
    """
    identity = resolve_identity(request)
    if AuthenticationGate.require_authenticated(identity.state) is GateDecision.REDIRECT_TO_LOGIN:
        return RedirectResponse(f"/login?next={request.url.path}", status_code=302)
    return None


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html", {"title": "Home"})


@router.get("/profile", response_class=HTMLResponse)
def profile(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    return templates.TemplateResponse(
        request,
        "profile.html",
        {"title": "Profile", "user": resolve_identity(request).user},
    )


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login form. Already-authenticated users go to their profile."""
    if try_get_current_user(request) is not None:
        return RedirectResponse("/profile", status_code=302)

    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""), None)
    return templates.TemplateResponse(
        request,
        "login.html",
        {"title": "Login", "error_msg": error_msg, "next": _safe_next(request.query_params.get("next"))},
    )


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
    next: str = Form(default=""),
) -> RedirectResponse:
    """Handle username/password login form submission."""
    authenticator: Authenticator = request.app.state.authenticator
    result = authenticator.login(LoginSubmission(username=username, password=password))

    next_url = next or request.query_params.get("next")
    if isinstance(result, StoreError):
        return _login_retry("unavailable", next_url)
    if not isinstance(result, AuthSuccess):
        # Unknown user and wrong password share one message.
        return _login_retry("bad_credentials", next_url)

    resp = RedirectResponse(_safe_next(next_url), status_code=302)
    start_session(request, resp, result.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/logout")
@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """End the session server-side, clear the cookie and go home."""
    resp = RedirectResponse("/", status_code=302)
    end_session(request, resp)
    return resp


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "register.html",
        {"title": "Registration", "enabled": get_settings().self_registration_enabled},
    )


@router.post("/register", response_class=HTMLResponse)
def register_post(
    request: Request,
    username: str = Form(default=""),
    email: str = Form(default=""),
    password: str = Form(default=""),
    password_match: str = Form(default=""),
) -> HTMLResponse:
    """Validate the form, create the account and log the new user in."""
    if not get_settings().self_registration_enabled:
        return _register_page(request, ["Self registration is disabled."], username, email, status_code=403)

    try:
        form = RegistrationForm(username=username, email=email, password=password, password_match=password_match)
    except ValidationError as exc:
        errors = form_errors(exc)
        logger.debug("Registration form rejected with %d errors", len(errors))
        return _register_page(request, errors, username, email, status_code=400)

    authenticator: Authenticator = request.app.state.authenticator
    result = authenticator.register(
        RegistrationSubmission(username=form.username, email=form.email, password=form.password)
    )

    if isinstance(result, DuplicateCredential):
        what = result.field or "username or email"
        return _register_page(request, [f"That {what} is already registered."], username, email, status_code=409)
    if isinstance(result, RegisteredWithoutIdentity):
        return RedirectResponse("/login?error=registered", status_code=302)
    if isinstance(result, StoreError):
        return _register_page(request, [_ERROR_MESSAGES["unavailable"]], username, email, status_code=503)

    resp = RedirectResponse("/", status_code=302)
    start_session(request, resp, result.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _register_page(
    request: Request, errors: list[str], username: str, email: str, status_code: int
) -> HTMLResponse:
    # Only username and email are echoed back; passwords are never re-rendered.
    return templates.TemplateResponse(
        request,
        "register.html",
        {
            "title": "Registration Error",
            "errors": errors,
            "username": username,
            "email": email,
            "enabled": get_settings().self_registration_enabled,
        },
        status_code=status_code,
    )
