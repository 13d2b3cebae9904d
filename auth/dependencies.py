"""
auth/dependencies.py -- Access Gate: FastAPI Depends() helpers.

Two credential sources are checked in priority order:
  1. Session cookie (pm_session) -- set by the Discord OAuth callback.
  2. X-API-Key header -- scripts and bots using issued API keys.

Both converge on an Identity. A third source, the static admin allow-list,
only matters for admin-console checks and is evaluated by the ledger.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises HTTP 401 if unauthenticated.
require_admin_console() wraps get_current_identity() and raises HTTP 403 if
the identity is neither allow-listed nor holding an admin-console grant.
get_opening_flags() pre-computes the moderation grants that the openings
lifecycle takes as plain booleans.

Layer rule: no imports from openings/ or audit/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from auth.models import Identity
from auth.permissions import DEPARTMENTS_POSTS, Action
from core.config import get_settings

_UNRESOLVED = object()


def _resolve(request: Request) -> Identity | None:
    state = request.app.state

    # 1. Session cookie (browser)
    session_id = request.cookies.get(get_settings().session_cookie_name)
    if session_id:
        identity = state.sessions.resolve(session_id)
        if identity is not None:
            return identity

    # 2. X-API-Key header (scripts, bots)
    raw_key = request.headers.get("X-API-Key", "")
    if raw_key:
        key = state.api_keys.authenticate(raw_key)
        if key is not None:
            return state.identities.get(key.user_id)

    return None


def try_get_current_identity(request: Request) -> Identity | None:
    """Attempt to authenticate the request via session cookie or API key.

    Returns the Identity on success, None on any failure. Never raises.
    The result is memoized on request.state so several dependencies in one
    request share a single lookup; identity_id is also left there for the
    audit middleware.
    """
    cached = getattr(request.state, "identity", _UNRESOLVED)
    if cached is not _UNRESOLVED:
        return cached
    identity = _resolve(request)
    request.state.identity = identity
    request.state.identity_id = identity.id if identity else None
    return identity


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.post("/openings")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = try_get_current_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Discord login required."},
        )
    return identity


def require_admin_console(request: Request) -> Identity:
    """Require admin-console access. 401 if unauthenticated, 403 if not elevated."""
    identity = get_current_identity(request)
    if not request.app.state.ledger.is_admin_console_user(identity.id):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return identity


def page_allowed(request: Request, path: str | None) -> bool:
    """Apply the page gate for the current caller (anonymous callers included)."""
    identity = try_get_current_identity(request)
    return request.app.state.ledger.can_view_page(identity.id if identity else None, path)


# ---------------------------------------------------------------------------
# Moderation flags for the openings lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpeningFlags:
    can_delete: bool = False
    can_modify: bool = False


def get_opening_flags(request: Request, identity: Identity = Depends(get_current_identity)) -> OpeningFlags:
    ledger = request.app.state.ledger
    return OpeningFlags(
        can_delete=ledger.has_access(identity.id, DEPARTMENTS_POSTS, Action.DELETE),
        can_modify=ledger.has_access(identity.id, DEPARTMENTS_POSTS, Action.MODIFY),
    )
