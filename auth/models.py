"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in openings/models.py -- dataclasses own domain shape; stores and routes do
the work.

Timestamps are ISO-8601 strings as produced by core.db.to_iso().

Layer rule: no imports from api/, openings/, or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Identity:
    """An authenticated external user.

    id is the provider-stable id (a Discord snowflake as a string). username
    and avatar_url are refreshed from the provider on every login. Identities
    created as a side effect of a grant or ownership transfer ("shadow"
    identities) carry a placeholder username until their owner logs in.
    """

    id: str
    username: str
    avatar_url: str | None = None
    updated_at: str | None = None


@dataclass
class PermissionGrant:
    """One row of the permission ledger.

    expires_at is None for permanent grants. Expired grants stay stored; they
    are simply ignored by every access check.
    """

    user_id: str
    resource: str  # auth.permissions.Resource.key
    action: str  # auth.permissions.Action value
    granted_at: str
    expires_at: str | None = None
    granted_by: str | None = None


@dataclass
class ApiKey:
    """Metadata for a long-lived credential.

    Security design:
    - The store keeps only HMAC-SHA256(SECRET_KEY, raw_key). The hash is
      deliberately absent from this dataclass so it can never leak through a
      listing or a response model.
    - The raw key is returned once, by ApiKeyIssuer.issue(), and is
      unrecoverable afterwards. Lost keys must be re-issued.
    """

    id: str
    key_type: str  # "super" | "admin"
    name: str
    created_by: str
    user_id: str | None = None  # None for unowned super keys
    created_at: str | None = None
    expires_at: str | None = None
    last_used_at: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class IssuedApiKey:
    """Result of ApiKeyIssuer.issue(): the only time raw_key is visible."""

    raw_key: str
    key_id: str
    expires_at: str | None
