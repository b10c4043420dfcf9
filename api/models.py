"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
Request bodies reuse the form rules in core/models.py; responses are separate
from the dataclasses in auth/models.py, which own the internal domain
representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from core.models import LoginForm, RegistrationForm

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(LoginForm):
    """Request body for POST /api/v1/auth/login."""


class RegisterRequest(RegistrationForm):
    """Request body for POST /api/v1/auth/register."""


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    """Returned by login and register once a session cookie has been set."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me. Never carries password material."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    email: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
