"""
auth/oauth.py -- Authlib OAuth configuration for Discord login.

Reads configuration from core.config.get_settings() at module load to decide
whether the provider is active. Discord is registered only when both client
ID and secret are configured.

OAuth state parameter (CSRF protection) is handled by authlib automatically
via Starlette SessionMiddleware. The session stores the state between the
authorization redirect and the callback -- never trust state from query
params alone.

The rest of the application consumes only the Identity triple
(id, username, avatar_url) returned by get_discord_identity(); nothing else
from the provider response is kept.

Layer rule: no imports from api/, openings/, or audit/. Import from core/ is
allowed -- core/ is the kernel layer.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.models import Identity
from core.config import get_settings

logger = logging.getLogger("postboard.auth.oauth")

DISCORD_API_BASE = "https://discord.com/api/v10/"
DISCORD_CDN_AVATAR = "https://cdn.discordapp.com/avatars/{user_id}/{avatar}.png"

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

# Discord -- static endpoints (no OIDC discovery document)
if _cfg.discord_enabled:
    oauth.register(
        name="discord",
        client_id=_cfg.discord_client_id,
        client_secret=_cfg.discord_client_secret,
        access_token_url="https://discord.com/api/oauth2/token",  # noqa: S106 -- URL, not a password
        authorize_url="https://discord.com/oauth2/authorize",
        api_base_url=DISCORD_API_BASE,
        client_kwargs={"scope": "identify", "prompt": "consent"},
    )
    logger.info("Discord OAuth provider registered")


def discord_enabled() -> bool:
    return get_settings().discord_enabled


# ---------------------------------------------------------------------------
# Identity extraction
# ---------------------------------------------------------------------------


def avatar_url_for(user_id: str, avatar_hash: str | None) -> str | None:
    """Build the CDN URL for a Discord avatar hash; None when the user has none."""
    if not avatar_hash:
        return None
    return DISCORD_CDN_AVATAR.format(user_id=user_id, avatar=avatar_hash)


async def get_discord_identity(client, token: dict) -> Identity:
    """Fetch the Discord user behind token and map it to an Identity.

    Raises ValueError if the profile lacks an id or username -- the caller
    treats that as a failed login.
    """
    resp = await client.get("users/@me", token=token)
    resp.raise_for_status()
    profile = resp.json()

    user_id = str(profile.get("id") or "")
    username = profile.get("username") or ""
    if not user_id or not username:
        raise ValueError("Discord OAuth: profile is missing id or username")

    return Identity(id=user_id, username=username, avatar_url=avatar_url_for(user_id, profile.get("avatar")))
