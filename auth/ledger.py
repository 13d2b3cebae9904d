"""
auth/ledger.py -- Permission Ledger: time-bound resource:action grants.

Every grant is one row in user_permissions, unique on
(user_id, resource, action). Re-granting the same triple is an upsert that
resets granted_at / expires_at / granted_by -- never a duplicate row.

Expiry rules:
  - expires_at NULL means permanent.
  - An expired row is inert: every check filters on
    (expires_at IS NULL OR expires_at > now). Rows are never purged eagerly.
  - now comes from the injected clock at the moment of the query, so a grant
    that expires a few microseconds before the check may still be seen as
    valid. That window is accepted.

Wildcard: action "admin" on a resource satisfies any action on it.

Page gating (ImplicitGateOnFirstGrant):
  A page has no "restricted" flag. It becomes restricted the moment any
  identity holds a live view/read grant for page:<path>, and every other
  caller, anonymous ones included, is locked out from then on. With no such
  row the page is open to everyone. Granting one user access to a public page
  therefore closes it for all others. This is the intended policy; see
  tests/test_ledger.py::TestImplicitGateOnFirstGrant.

Layer rule: no imports from api/, openings/, or audit/.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.engine import Connection, Engine

from auth.models import PermissionGrant
from auth.permissions import ADMIN_CONSOLE_GRANTS, PAGE_ACTIONS, Action, Resource
from auth.store import IdentityStore
from core.db import Clock, dialect_insert, to_iso, user_permissions, utcnow

logger = logging.getLogger("postboard.ledger")


def _live(now_iso: str):
    """WHERE fragment: grant has not expired as of now_iso."""
    return or_(user_permissions.c.expires_at.is_(None), user_permissions.c.expires_at > now_iso)


class ImplicitGateOnFirstGrant:
    """Page gate policy derived from grant existence (see module docstring)."""

    actions = tuple(a.value for a in PAGE_ACTIONS)

    def is_gated(self, conn: Connection, resource_key: str, now_iso: str) -> bool:
        """True if any identity holds a live view/read grant on the page."""
        stmt = select(
            exists().where(
                and_(
                    user_permissions.c.resource == resource_key,
                    user_permissions.c.action.in_(self.actions),
                    _live(now_iso),
                )
            )
        )
        return bool(conn.execute(stmt).scalar())

    def allows(self, conn: Connection, identity_id: str | None, resource_key: str, now_iso: str) -> bool:
        if not self.is_gated(conn, resource_key, now_iso):
            return True
        if not identity_id:
            return False
        stmt = select(
            exists().where(
                and_(
                    user_permissions.c.user_id == identity_id,
                    user_permissions.c.resource == resource_key,
                    user_permissions.c.action.in_(self.actions),
                    _live(now_iso),
                )
            )
        )
        return bool(conn.execute(stmt).scalar())


class PermissionLedger:
    """Grant, revoke, and evaluate permissions.

    admin_ids is the static deploy-time allow-list (Settings.admin_ids). It
    only affects is_admin_console_user(); it never shows up as ledger rows.

    Usage:
        ledger = PermissionLedger(engine, identity_store, admin_ids={"1001"})
        ledger.grant("42", Resource.page("/rules"), Action.VIEW, granted_by="1001", expires_in_days=1)
        ledger.has_access("42", Resource.page("/rules"), Action.VIEW)   # True
    """

    def __init__(
        self,
        engine: Engine,
        identity_store: IdentityStore,
        admin_ids: frozenset[str] = frozenset(),
        clock: Clock = utcnow,
    ) -> None:
        self.engine = engine
        self._identities = identity_store
        self._admin_ids = frozenset(admin_ids)
        self._clock = clock
        self.page_policy = ImplicitGateOnFirstGrant()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def grant(
        self,
        identity_id: str,
        resource: Resource,
        action: Action,
        granted_by: str,
        expires_in_days: float | None = None,
    ) -> PermissionGrant:
        """Upsert a grant. expires_in_days <= 0 or None makes it permanent.

        An unknown identity_id gets a shadow identity row first so the grant
        has something to point at.
        """
        now = self._clock()
        granted_at = to_iso(now)
        expires_at = None
        if expires_in_days is not None and expires_in_days > 0:
            expires_at = to_iso(now + timedelta(days=expires_in_days))

        stmt = dialect_insert(self.engine, user_permissions).values(
            user_id=identity_id,
            resource=resource.key,
            action=action.value,
            granted_by=granted_by,
            granted_at=granted_at,
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[user_permissions.c.user_id, user_permissions.c.resource, user_permissions.c.action],
            set_={
                "granted_by": stmt.excluded.granted_by,
                "granted_at": stmt.excluded.granted_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        with self.engine.connect() as conn:
            self._identities.ensure_shadow(identity_id, conn=conn)
            conn.execute(stmt)
            conn.commit()
        logger.info(
            "Granted %s:%s to %s by %s (expires %s)",
            resource.key,
            action.value,
            identity_id,
            granted_by,
            expires_at or "never",
        )
        return PermissionGrant(
            user_id=identity_id,
            resource=resource.key,
            action=action.value,
            granted_at=granted_at,
            expires_at=expires_at,
            granted_by=granted_by,
        )

    def revoke(self, identity_id: str, resource: Resource, action: Action) -> bool:
        """Hard-delete a grant. Returns False (not an error) if nothing matched."""
        with self.engine.connect() as conn:
            result = conn.execute(
                user_permissions.delete().where(
                    and_(
                        user_permissions.c.user_id == identity_id,
                        user_permissions.c.resource == resource.key,
                        user_permissions.c.action == action.value,
                    )
                )
            )
            conn.commit()
        if result.rowcount:
            logger.info("Revoked %s:%s from %s", resource.key, action.value, identity_id)
        else:
            logger.info("Revoke of %s:%s from %s matched no grant", resource.key, action.value, identity_id)
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def has_access(self, identity_id: str | None, resource: Resource, action: Action) -> bool:
        """True iff identity holds a live (resource, action) or (resource, admin) grant."""
        if not identity_id:
            return False
        now_iso = to_iso(self._clock())
        stmt = select(
            exists().where(
                and_(
                    user_permissions.c.user_id == identity_id,
                    user_permissions.c.resource == resource.key,
                    user_permissions.c.action.in_([action.value, Action.ADMIN.value]),
                    _live(now_iso),
                )
            )
        )
        with self.engine.connect() as conn:
            return bool(conn.execute(stmt).scalar())

    def is_admin_console_user(self, identity_id: str | None) -> bool:
        """Allow-listed, or holding any live admin-console grant."""
        if not identity_id:
            return False
        if identity_id in self._admin_ids:
            return True
        now_iso = to_iso(self._clock())
        grant_clauses = [
            and_(
                user_permissions.c.resource == resource.key,
                user_permissions.c.action.in_([a.value for a in actions]),
            )
            for resource, actions in ADMIN_CONSOLE_GRANTS
        ]
        stmt = select(
            exists().where(
                and_(
                    user_permissions.c.user_id == identity_id,
                    or_(*grant_clauses),
                    _live(now_iso),
                )
            )
        )
        with self.engine.connect() as conn:
            return bool(conn.execute(stmt).scalar())

    def can_view_page(self, identity_id: str | None, path: str | None) -> bool:
        """Page gate: apply the page policy to page:<normalized path>."""
        resource_key = Resource.page(path).key
        now_iso = to_iso(self._clock())
        with self.engine.connect() as conn:
            return self.page_policy.allows(conn, identity_id, resource_key, now_iso)

    def is_page_restricted(self, path: str | None) -> bool:
        """True if the page gate currently locks out callers without a grant."""
        resource_key = Resource.page(path).key
        now_iso = to_iso(self._clock())
        with self.engine.connect() as conn:
            return self.page_policy.is_gated(conn, resource_key, now_iso)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_for_identity(self, identity_id: str) -> list[PermissionGrant]:
        """All grants for an identity, expired ones included, by resource then action."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                user_permissions.select()
                .where(user_permissions.c.user_id == identity_id)
                .order_by(user_permissions.c.resource.asc(), user_permissions.c.action.asc())
            ).fetchall()
        return [_row_to_grant(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_grant(row) -> PermissionGrant:
    return PermissionGrant(
        user_id=row.user_id,
        resource=row.resource,
        action=row.action,
        granted_at=row.granted_at,
        expires_at=row.expires_at,
        granted_by=row.granted_by,
    )
