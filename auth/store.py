"""
auth/store.py -- SQLAlchemy Core persistence for Identity rows.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
_row_to_identity is the mapper. Route and dependency code never touches SQL
directly.

Two write paths, both single atomic statements:
  upsert()       -- login path. INSERT ... ON CONFLICT DO UPDATE refreshes
                    username / avatar on every session creation.
  ensure_shadow() -- side-effect path (grants, ownership transfer, API key
                    issue). INSERT ... ON CONFLICT DO NOTHING: a known
                    identity keeps its real name.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, openings/, or audit/.
"""

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.engine import Engine

from auth.models import Identity
from core.db import Clock, dialect_insert, identities, to_iso, utcnow

_SEARCH_LIMIT = 40


def shadow_username(identity_id: str) -> str:
    """Placeholder display name for an identity that has never logged in."""
    return f"Unregistered-{identity_id[-6:]}"


class IdentityStore:
    """Repository for Identity entities.

    Usage:
        store = IdentityStore(engine)
        store.upsert(Identity(id="42", username="medic", avatar_url=None))
        ident = store.get("42")
    """

    def __init__(self, engine: Engine, clock: Clock = utcnow) -> None:
        self.engine = engine
        self._clock = clock

    def upsert(self, identity: Identity) -> None:
        """Insert or refresh an identity (username, avatar, updated_at)."""
        now = to_iso(self._clock())
        stmt = dialect_insert(self.engine, identities).values(
            id=identity.id,
            username=identity.username,
            avatar_url=identity.avatar_url,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[identities.c.id],
            set_={
                "username": stmt.excluded.username,
                "avatar_url": stmt.excluded.avatar_url,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        with self.engine.connect() as conn:
            conn.execute(stmt)
            conn.commit()

    def ensure_shadow(self, identity_id: str, username: str | None = None, conn=None) -> None:
        """Create a placeholder identity if identity_id is unknown.

        Pass conn to run inside a caller's transaction (ownership transfer
        needs the shadow row and the author rewrite to commit together).
        """
        stmt = (
            dialect_insert(self.engine, identities)
            .values(
                id=identity_id,
                username=username or shadow_username(identity_id),
                avatar_url=None,
                updated_at=to_iso(self._clock()),
            )
            .on_conflict_do_nothing(index_elements=[identities.c.id])
        )
        if conn is not None:
            conn.execute(stmt)
            return
        with self.engine.connect() as own_conn:
            own_conn.execute(stmt)
            own_conn.commit()

    def get(self, identity_id: str) -> Identity | None:
        """Look up an identity by id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(identities.select().where(identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def search(self, query: str = "") -> list[Identity]:
        """Return up to 40 identities matching query on id or username, most recently active first.

        An empty query returns the most recent identities unfiltered.
        """
        stmt = identities.select()
        needle = query.strip()
        if needle:
            pattern = f"%{needle}%"
            stmt = stmt.where(or_(identities.c.id.ilike(pattern), identities.c.username.ilike(pattern)))
        stmt = stmt.order_by(identities.c.updated_at.desc()).limit(_SEARCH_LIMIT)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_identity(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        username=row.username,
        avatar_url=row.avatar_url,
        updated_at=row.updated_at,
    )
