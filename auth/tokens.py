"""
auth/tokens.py -- Signed session cookie helpers.

The cookie carries a reference to a server-side session, never the identity
itself:

  cookie value = HS256 JWT {"sid": <session id>, "exp": <expiry>}
  session row  = {"user_id": <int>}   (auth/store.py, sessions table)

Signing lets a forged or truncated cookie be rejected before any database
query. Keeping the identity server-side means logout is a row delete: the
old cookie still verifies but points at nothing.

JWT: python-jose with HS256, keyed by SECRET_KEY from core.config. Decoding
returns None on any failure -- the dependency layer turns that into an
anonymous request.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("gatehouse.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = _settings.session_cookie_name


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_session_cookie(session_id: str, expire_seconds: int = 0) -> str:
    """Encode a signed cookie value referencing session_id.

    Args:
        session_id:     Id returned by SessionStore.create().
        expire_seconds: Cookie lifetime. If 0 (default), uses
                        Settings.session_expire_seconds so the cookie and the
                        session row expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    return jwt.encode({"sid": session_id, "exp": expire}, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_cookie(token: str) -> str | None:
    """Verify a cookie value and return the session id it references, or None."""
    try:
        claims = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        logger.debug("Rejected session cookie with bad signature or expiry")
        return None
    session_id = claims.get("sid")
    if not isinstance(session_id, str) or not session_id:
        return None
    return session_id


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the signed session reference as an httpOnly cookie.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POSTs.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)
