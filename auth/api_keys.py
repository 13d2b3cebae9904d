"""
auth/api_keys.py -- API Key Issuer: hashed credentials independent of sessions.

Lifecycle:
  issue()        -- mint a raw key, persist only its HMAC, return the raw key once.
  list_for()     -- metadata only; the hash never leaves the store.
  revoke()       -- flip is_active off, scoped to the creator or the owner.
  authenticate() -- resolve an X-API-Key header to its key metadata.

Revoke scoping: the WHERE clause requires the requester to be the key's
creator or owner. A requester with no standing simply matches zero rows and
the call still "succeeds" (returns False). Whether that should become a 403
is an open question; callers must not assume a True return.

Layer rule: no imports from api/, openings/, or audit/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy import and_, or_
from sqlalchemy.engine import Engine

from auth.models import ApiKey, IssuedApiKey
from auth.store import IdentityStore
from auth.tokens import generate_api_key, hash_api_key
from core.db import Clock, api_keys, to_iso, utcnow

logger = logging.getLogger("postboard.auth.api_keys")

KEY_TYPE_ADMIN = "admin"
KEY_TYPE_SUPER = "super"


class ApiKeyIssuer:
    """Repository + service for ApiKey entities.

    Usage:
        issuer = ApiKeyIssuer(engine, identity_store)
        issued = issuer.issue("42", "ci-bot", created_by="1001", expires_in_days=30)
        issued.raw_key   # shown once
        issuer.authenticate(issued.raw_key)
    """

    def __init__(self, engine: Engine, identity_store: IdentityStore, clock: Clock = utcnow) -> None:
        self.engine = engine
        self._identities = identity_store
        self._clock = clock

    def issue(
        self,
        owner_id: str,
        name: str,
        created_by: str,
        expires_in_days: float | None = None,
    ) -> IssuedApiKey:
        """Create an admin key for owner_id. expires_in_days <= 0 or None means no expiry."""
        now = self._clock()
        expires_at = None
        if expires_in_days is not None and expires_in_days > 0:
            expires_at = to_iso(now + timedelta(days=expires_in_days))

        raw_key = generate_api_key(owner_id)
        key_id = str(uuid.uuid4())
        with self.engine.connect() as conn:
            self._identities.ensure_shadow(owner_id, conn=conn)
            conn.execute(
                api_keys.insert().values(
                    id=key_id,
                    key_hash=hash_api_key(raw_key),
                    key_type=KEY_TYPE_ADMIN,
                    user_id=owner_id,
                    name=name,
                    created_at=to_iso(now),
                    expires_at=expires_at,
                    is_active=1,
                    created_by=created_by,
                )
            )
            conn.commit()
        logger.info("Issued API key %s for %s by %s", key_id, owner_id, created_by)
        return IssuedApiKey(raw_key=raw_key, key_id=key_id, expires_at=expires_at)

    def list_for(self, owner_id: str) -> list[ApiKey]:
        """Return every key owned by owner_id (active or not), newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                api_keys.select().where(api_keys.c.user_id == owner_id).order_by(api_keys.c.created_at.desc())
            ).fetchall()
        return [_row_to_api_key(r) for r in rows]

    def revoke(self, key_id: str, requester_id: str) -> bool:
        """Deactivate a key the requester created or owns.

        Returns True if a key was deactivated. False covers unknown ids and
        requesters without standing alike.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                api_keys.update()
                .where(
                    and_(
                        api_keys.c.id == key_id,
                        or_(api_keys.c.created_by == requester_id, api_keys.c.user_id == requester_id),
                    )
                )
                .values(is_active=0)
            )
            conn.commit()
        if result.rowcount:
            logger.info("API key %s revoked by %s", key_id, requester_id)
        else:
            logger.info("API key revoke by %s matched nothing (key %s)", requester_id, key_id)
        return result.rowcount > 0

    def authenticate(self, raw_key: str) -> ApiKey | None:
        """Return metadata for an active, unexpired key, stamping last_used_at.

        Keys without an owner cannot act as an identity and return None.
        """
        if not raw_key:
            return None
        now_iso = to_iso(self._clock())
        with self.engine.connect() as conn:
            row = conn.execute(
                api_keys.select().where(
                    and_(
                        api_keys.c.key_hash == hash_api_key(raw_key),
                        api_keys.c.is_active == 1,
                        or_(api_keys.c.expires_at.is_(None), api_keys.c.expires_at > now_iso),
                    )
                )
            ).fetchone()
            if row is None or row.user_id is None:
                return None
            conn.execute(api_keys.update().where(api_keys.c.id == row.id).values(last_used_at=now_iso))
            conn.commit()
        key = _row_to_api_key(row)
        key.last_used_at = now_iso
        return key


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_api_key(row) -> ApiKey:
    return ApiKey(
        id=row.id,
        key_type=row.key_type,
        name=row.name,
        created_by=row.created_by,
        user_id=row.user_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
        last_used_at=row.last_used_at,
        is_active=bool(row.is_active),
    )
