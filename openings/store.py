"""
openings/store.py -- SQLAlchemy Core persistence for openings.

Pattern: Repository + Data Mapper. OpeningStore issues SQL; _row_to_opening
maps rows to the Opening dataclass. Business rules (validation, who may do
what, outcome classification) live in openings/lifecycle.py.

Every mutation is one conditional statement whose rowcount is the answer:
  close_if_open()  UPDATE ... WHERE id = :id AND closed_at IS NULL [AND author_id = :requester]
  delete()         DELETE ... WHERE id = :id
  update_fields()  UPDATE ... WHERE id = :id
  transfer()       shadow-identity INSERT ... ON CONFLICT DO NOTHING + UPDATE,
                   committed together or rolled back together

No method reads a row and then writes based on what it saw.

Tags are stored as a JSON array serialized into a TEXT column.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.engine import Engine

from core.db import dialect_insert, identities, openings
from openings.models import Opening


class OpeningStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, opening_id: str) -> Optional[Opening]:
        """Fetch a single opening by id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(openings.select().where(openings.c.id == opening_id)).fetchone()
        return _row_to_opening(row) if row is not None else None

    def list_openings(self, include_closed: bool = False) -> list[Opening]:
        """Return openings newest first; closed ones only when include_closed."""
        stmt = openings.select()
        if not include_closed:
            stmt = stmt.where(openings.c.closed_at.is_(None))
        stmt = stmt.order_by(openings.c.created_at.desc(), openings.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_opening(r) for r in rows]

    def open_tags(self) -> list[str]:
        """Sorted distinct tags across open openings (case-insensitive sort)."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(openings.c.tags).where(openings.c.closed_at.is_(None))).fetchall()
        tags: set[str] = set()
        for row in rows:
            tags.update(json.loads(row.tags or "[]"))
        return sorted(tags, key=str.casefold)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, opening: Opening) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                openings.insert().values(
                    id=opening.id,
                    title=opening.title,
                    description=opening.description,
                    category=opening.category,
                    tags=json.dumps(opening.tags),
                    contact=opening.contact,
                    author_id=opening.author_id,
                    author_name=opening.author_name,
                    created_at=opening.created_at,
                    closed_at=None,
                    updated_at=opening.updated_at,
                )
            )
            conn.commit()

    def close_if_open(self, opening_id: str, requester_id: str, any_author: bool, now_iso: str) -> bool:
        """Set closed_at on an open opening in one statement.

        Unless any_author is True, the row must also belong to requester_id.
        Returns True only for the single caller whose UPDATE changed the row;
        concurrent callers racing on the same id get False.
        """
        conditions = [openings.c.id == opening_id, openings.c.closed_at.is_(None)]
        if not any_author:
            conditions.append(openings.c.author_id == requester_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                openings.update().where(and_(*conditions)).values(closed_at=now_iso, updated_at=now_iso)
            )
            conn.commit()
        return result.rowcount == 1

    def delete(self, opening_id: str) -> bool:
        """Hard-delete an opening. Returns False if it did not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(openings.delete().where(openings.c.id == opening_id))
            conn.commit()
        return result.rowcount > 0

    def update_fields(self, opening_id: str, changes: dict, now_iso: str) -> bool:
        """Apply a partial update. tags must be passed as list[str].

        Returns True if a row was updated, False if opening_id was not found.
        """
        values = dict(changes)
        if "tags" in values:
            values["tags"] = json.dumps(values["tags"])
        values["updated_at"] = now_iso
        with self.engine.connect() as conn:
            result = conn.execute(openings.update().where(openings.c.id == opening_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def transfer(self, opening_id: str, new_owner_id: str, new_owner_name: str, now_iso: str) -> bool:
        """Hand an opening to another identity, creating it as a shadow if unknown.

        The shadow identity insert and the author rewrite commit together; if
        the opening does not exist both are rolled back and False is returned.
        """
        shadow = (
            dialect_insert(self.engine, identities)
            .values(id=new_owner_id, username=new_owner_name, avatar_url=None, updated_at=now_iso)
            .on_conflict_do_nothing(index_elements=[identities.c.id])
        )
        with self.engine.connect() as conn:
            conn.execute(shadow)
            result = conn.execute(
                openings.update()
                .where(openings.c.id == opening_id)
                .values(author_id=new_owner_id, author_name=new_owner_name, updated_at=now_iso)
            )
            if result.rowcount == 0:
                conn.rollback()
                return False
            conn.commit()
        return True


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_opening(row) -> Opening:
    return Opening(
        id=row.id,
        title=row.title,
        description=row.description,
        category=row.category,
        tags=json.loads(row.tags or "[]"),
        contact=row.contact,
        author_id=row.author_id,
        author_name=row.author_name,
        created_at=row.created_at,
        updated_at=row.updated_at,
        closed_at=row.closed_at,
    )
