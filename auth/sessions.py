"""
auth/sessions.py -- Session Manager: opaque, server-side login sessions.

A session is a row in auth_sessions keyed by a random UUID4 that the browser
carries in the pm_session cookie. Sessions live for a fixed 7 days.

Expiry is lazy: resolve() first deletes every session whose expires_at has
passed, then looks the requested id up. There is no background sweeper --
the read path that needs a clean table cleans it.

Layer rule: no imports from api/, openings/, or audit/.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.engine import Engine

from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import SESSION_MAX_AGE_SECONDS, generate_session_id
from core.db import Clock, auth_sessions, identities, to_iso, utcnow

logger = logging.getLogger("postboard.auth.sessions")


class SessionManager:
    """Issue, resolve, and revoke login sessions.

    Usage:
        sessions = SessionManager(engine, identity_store)
        sid = sessions.create(Identity(id="42", username="medic"))
        who = sessions.resolve(sid)   # Identity or None
        sessions.revoke(sid)
    """

    def __init__(self, engine: Engine, identity_store: IdentityStore, clock: Clock = utcnow) -> None:
        self.engine = engine
        self._identities = identity_store
        self._clock = clock

    def create(self, identity: Identity) -> str:
        """Upsert the identity, open a 7-day session, and return its id."""
        self._identities.upsert(identity)
        now = self._clock()
        session_id = generate_session_id()
        with self.engine.connect() as conn:
            conn.execute(
                auth_sessions.insert().values(
                    id=session_id,
                    user_id=identity.id,
                    created_at=to_iso(now),
                    expires_at=to_iso(now + timedelta(seconds=SESSION_MAX_AGE_SECONDS)),
                )
            )
            conn.commit()
        logger.info("Session created for identity %s", identity.id)
        return session_id

    def resolve(self, session_id: str | None) -> Identity | None:
        """Return the identity behind session_id, or None if absent or expired.

        Sweeps all expired sessions as a side effect.
        """
        now = to_iso(self._clock())
        with self.engine.connect() as conn:
            swept = conn.execute(auth_sessions.delete().where(auth_sessions.c.expires_at <= now))
            conn.commit()
            if swept.rowcount:
                logger.debug("Swept %d expired sessions", swept.rowcount)
            if not session_id:
                return None
            row = conn.execute(
                select(identities.c.id, identities.c.username, identities.c.avatar_url, identities.c.updated_at)
                .select_from(auth_sessions.join(identities, identities.c.id == auth_sessions.c.user_id))
                .where(auth_sessions.c.id == session_id)
                .limit(1)
            ).fetchone()
        if row is None:
            return None
        return Identity(id=row.id, username=row.username, avatar_url=row.avatar_url, updated_at=row.updated_at)

    def revoke(self, session_id: str | None) -> None:
        """Delete the session. Unknown or empty ids are a no-op."""
        if not session_id:
            return
        with self.engine.connect() as conn:
            conn.execute(auth_sessions.delete().where(auth_sessions.c.id == session_id))
            conn.commit()
