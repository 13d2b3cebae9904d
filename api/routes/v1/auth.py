"""
api/routes/v1/auth.py -- Discord login, logout, and identity endpoints.

Routes:
  GET  /api/v1/auth/discord            -- redirect to Discord's consent screen
  GET  /api/v1/auth/discord/callback   -- exchange code, open session, redirect
  POST /api/v1/auth/logout             -- revoke session, clear cookie, 303
  GET  /api/v1/auth/me                 -- current identity (requires auth)

Browser flow: the callback always ends in a redirect to /departments with
?auth=success or ?auth=failed so the front end can show a toast. It never
renders an error page and never leaks the provider's error text.

Security:
  OAuth state (CSRF) is stored by authlib in the Starlette session between
  the redirect and the callback; a mismatched state raises OAuthError.
  Cache-Control: no-store on responses that set or clear the session cookie.
"""

from __future__ import annotations

import logging

import httpx
from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from api.limiter import limiter
from api.models import MeResponse
from auth.dependencies import get_current_identity
from auth.models import Identity
from auth.oauth import discord_enabled, get_discord_identity
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings

logger = logging.getLogger("postboard.api.auth")

_settings = get_settings()

LOGIN_SUCCESS_URL = "/departments?auth=success"
LOGIN_FAILED_URL = "/departments?auth=failed"
LOGOUT_URL = "/departments"

# Auth policy:
# - GET  /api/v1/auth/discord:           public -- starts the login flow
# - GET  /api/v1/auth/discord/callback:  public -- provider redirects here
# - POST /api/v1/auth/logout:            public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:                requires auth (get_current_identity)
router = APIRouter()


def _failed() -> RedirectResponse:
    resp = RedirectResponse(LOGIN_FAILED_URL, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.oauth_rate_limit)
@router.get("/auth/discord")
async def discord_login(request: Request) -> RedirectResponse:
    """Redirect the browser to Discord's authorization page."""
    if not discord_enabled():
        logger.warning("Discord login requested but the provider is not configured")
        return _failed()

    client = request.app.state.oauth.create_client("discord")
    if client is None:
        return _failed()
    redirect_uri = _settings.discord_redirect_uri or str(request.url_for("discord_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@limiter.limit(_settings.oauth_rate_limit)
@router.get("/auth/discord/callback", name="discord_callback")
async def discord_callback(request: Request) -> RedirectResponse:
    """Handle Discord's redirect: exchange the code and open a session.

    Flow:
      1. Exchange authorization code for token (authlib verifies state).
      2. Fetch the Discord profile and reduce it to an Identity.
      3. SessionManager.create() upserts the identity and opens a session.
      4. Set the pm_session cookie and redirect to /departments?auth=success.
    """
    if not discord_enabled():
        return _failed()

    client = request.app.state.oauth.create_client("discord")
    if client is None:
        return _failed()

    # Step 1: Exchange code for token
    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.warning("Discord token exchange failed", exc_info=True)
        return _failed()

    # Step 2: Profile -> Identity
    try:
        identity = await get_discord_identity(client, token)
    except (ValueError, httpx.HTTPError):
        logger.warning("Discord profile fetch failed", exc_info=True)
        return _failed()

    # Step 3 + 4: Session and cookie
    session_id = request.app.state.sessions.create(identity)
    logger.info("Discord login for identity %s", identity.id)
    resp = RedirectResponse(LOGIN_SUCCESS_URL, status_code=302)
    set_session_cookie(resp, session_id)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout(request: Request) -> RedirectResponse:
    """Revoke the server-side session (if any) and clear the cookie."""
    request.app.state.sessions.revoke(request.cookies.get(_settings.session_cookie_name))
    resp = RedirectResponse(LOGOUT_URL, status_code=303)
    clear_session_cookie(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return the current identity and whether it may open the admin console."""
    return MeResponse(
        id=identity.id,
        username=identity.username,
        avatar_url=identity.avatar_url,
        is_admin=request.app.state.ledger.is_admin_console_user(identity.id),
    )
