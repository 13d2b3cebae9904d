"""
core/db.py -- Shared SQLAlchemy Core schema, engine factory, and time helpers.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in auth/models.py and
openings/models.py remain the authoritative domain representation. Swapping
SQLite for PostgreSQL is a DATABASE_URL change, not a rewrite.

Every store (sessions, ledger, API keys, openings, audit) shares one MetaData
and one Engine because the tables reference each other: sessions and openings
point at identities.

Schema bootstrap:
  init_db() is explicit and idempotent (CREATE TABLE IF NOT EXISTS via
  metadata.create_all). It runs once in the FastAPI lifespan before the first
  request is served. Stores never create tables themselves.

Timestamps:
  Stored as fixed-width UTC ISO-8601 strings produced by to_iso(), e.g.
  "2026-10-19T12:00:00.000000+00:00". Fixed width means string comparison in
  SQL (expires_at > :now) orders the same way as the datetimes do, on every
  dialect.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from core.config import get_settings

Clock = Callable[[], datetime]

OPENING_CATEGORIES = ("Business", "Gang", "Department")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

identities = Table(
    "identities",
    metadata,
    Column("id", String(64), primary_key=True),  # provider-stable id
    Column("username", String(255), nullable=False),
    Column("avatar_url", Text),
    Column("updated_at", String(32), nullable=False),
)

auth_sessions = Table(
    "auth_sessions",
    metadata,
    Column("id", String(36), primary_key=True),  # UUID4
    Column("user_id", String(64), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Index("auth_sessions_user_id_idx", "user_id"),
    Index("auth_sessions_expires_at_idx", "expires_at"),
)

user_permissions = Table(
    "user_permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("resource", String(255), nullable=False),
    Column("action", String(32), nullable=False),
    Column("granted_by", String(64)),
    Column("granted_at", String(32), nullable=False),
    Column("expires_at", String(32)),  # NULL = permanent
    UniqueConstraint("user_id", "resource", "action", name="user_permissions_triple_uq"),
    Index("user_permissions_resource_idx", "resource", "action"),
)

api_keys = Table(
    "api_keys",
    metadata,
    Column("id", String(36), primary_key=True),  # UUID4
    Column("key_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("key_type", String(16), nullable=False),
    Column("user_id", String(64)),  # NULL for unowned super keys
    Column("name", String(100), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32)),
    Column("last_used_at", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_by", String(64), nullable=False),
    CheckConstraint("key_type IN ('super', 'admin')", name="api_keys_type_ck"),
    Index("api_keys_user_id_idx", "user_id"),
)

openings = Table(
    "openings",
    metadata,
    Column("id", String(36), primary_key=True),  # UUID4
    Column("title", String(80), nullable=False),
    Column("description", String(360), nullable=False),
    Column("category", String(16), nullable=False),
    Column("tags", Text, nullable=False, server_default="[]"),  # JSON array serialized as text
    Column("contact", String(120), nullable=False),
    Column("author_id", String(64), ForeignKey("identities.id", ondelete="RESTRICT"), nullable=False),
    Column("author_name", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("closed_at", String(32)),  # monotonic: set once, never cleared
    Column("updated_at", String(32), nullable=False),
    CheckConstraint("category IN ('Business', 'Gang', 'Department')", name="openings_category_ck"),
    Index("openings_created_at_idx", "created_at"),
    Index("openings_category_idx", "category"),
)

api_audit_log = Table(
    "api_audit_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("method", String(10), nullable=False),
    Column("endpoint", String(255), nullable=False),
    Column("discord_user_id", String(64)),
    Column("response_code", Integer, nullable=False),
    Column("processing_time_ms", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("api_audit_log_created_at_idx", "created_at"),
)


# ---------------------------------------------------------------------------
# SQLite connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. WAL lets readers proceed while a writer holds
    the lock; foreign_keys is off by default in SQLite.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Engine + bootstrap
# ---------------------------------------------------------------------------


def build_engine(db_url: str | None = None) -> Engine:
    """Create the shared Engine. Defaults to Settings.database_url."""
    url = db_url or get_settings().database_url
    connect_args: dict = {}
    if url.startswith("sqlite"):
        # Route handlers run in a thread pool; the same pooled connection may
        # be used from different threads over its lifetime.
        connect_args["check_same_thread"] = False
    engine = create_engine(url, connect_args=connect_args)
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def init_db(engine: Engine) -> None:
    """Create every table and index that does not exist yet. Safe to re-run."""
    metadata.create_all(engine)


def dialect_insert(engine: Engine, table: Table):
    """Return an INSERT construct that supports ON CONFLICT for this engine.

    Upserts must be a single atomic statement, so stores use the dialect's
    own insert() rather than a select-then-insert pair.
    """
    if engine.dialect.name == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Render a datetime as fixed-width UTC ISO-8601 (microsecond precision)."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")
