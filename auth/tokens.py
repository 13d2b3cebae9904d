"""
auth/tokens.py -- Session id, API key, and cookie utilities.

Security design decisions:
  Sessions: opaque UUID4 ids. The id itself carries no claims; everything
       about the session (owner, expiry) lives in the auth_sessions table, so
       revoking a session is a single DELETE and takes effect immediately.

  API keys: "PMA_Admin.<owner id>.<secret>" where the secret is
       secrets.token_urlsafe(24) -- 192 bits of entropy, well above the
       128-bit floor. The owner id in the clear lets operators recognise a
       leaked key without a database lookup. We store
       HMAC-SHA256(SECRET_KEY, raw_key) so lookup is O(1) via the UNIQUE
       index; bcrypt's intentional slowness is unnecessary for high-entropy
       secrets.

  SECRET_KEY: sourced from core.config.get_settings(). Short keys (<32 chars)
       are rejected at startup [M6].

Layer rule: no imports from api/, openings/, or audit/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid

from core.config import get_settings

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

API_KEY_PREFIX = "PMA_Admin"
SESSION_MAX_AGE_SECONDS = 60 * 60 * 24 * 7


# ---------------------------------------------------------------------------
# Session ids
# ---------------------------------------------------------------------------


def generate_session_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# API key generation and hashing
# ---------------------------------------------------------------------------


def generate_api_key(owner_id: str) -> str:
    """Generate a raw API key: PMA_Admin.<owner id>.<192-bit urlsafe secret>."""
    return f"{API_KEY_PREFIX}.{owner_id}.{secrets.token_urlsafe(24)}"


def hash_api_key(raw_key: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_key) as a hex string.

    Using SECRET_KEY as the HMAC key means an attacker who obtains the DB
    cannot confirm guessed keys offline without also knowing SECRET_KEY.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_key.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str) -> None:
    """Write the opaque session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": sent on top-level navigations (needed for the OAuth
        callback redirect) but not on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the fixed 7-day session TTL.
    """
    response.set_cookie(
        _settings.session_cookie_name,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=SESSION_MAX_AGE_SECONDS,
        path="/",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(_settings.session_cookie_name, path="/", secure=_settings.secure_cookies)
