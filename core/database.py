"""
core/database.py -- Shared SQLAlchemy Core schema and engine factory.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py,
tasks/models.py and audit/models.py remain the authoritative domain
representation. Swapping SQLite for PostgreSQL is a connection string change.

All four tables live on one MetaData and one engine. Registration creates an
organization and its owner in a single transaction, and deleting a user or
organization cascades across tables -- both need a single database.

Uniqueness is enforced here, not in application code:
  UNIQUE(users.email)          -- global, not per organization
  UNIQUE(organizations.name)
Two concurrent registrations with the same email therefore leave exactly one
row; the loser gets an IntegrityError that auth/identity.py maps to Conflict.

Foreign keys carry the cascade rules (ON DELETE CASCADE / SET NULL). SQLite
only honours them with PRAGMA foreign_keys=ON, which is set per connection.
The stores also issue the cascading statements explicitly so behaviour does
not depend on that pragma.

Layer rule: core/ is the kernel. No imports from api/, auth/, tasks/, audit/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

organizations = Table(
    "organizations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "organization_id",
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("role", String(10), nullable=False, server_default="MEMBER"),
    Column("refresh_token_hash", String(64)),  # HMAC-SHA256 hex of the live refresh token
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_users_organization_id", "organization_id"),
)

tasks = Table(
    "tasks",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "organization_id",
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("created_by_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("assignee_id", String(36), ForeignKey("users.id", ondelete="SET NULL")),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("completed", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_tasks_organization_id", "organization_id"),
)

# No foreign key on user_id: audit entries outlive the user who acted.
audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("action", String(50), nullable=False),
    Column("entity_type", String(50), nullable=False),
    Column("entity_id", String(36), nullable=False),
    Column("user_id", String(36), nullable=False),
    Column(
        "organization_id",
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("metadata", Text),  # JSON object serialized as text
    Column("created_at", String(32), nullable=False),
    Index("ix_audit_logs_org_created", "organization_id", "created_at"),
)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Create an engine for db_url and make sure the schema exists.

    Usage:
        engine = create_db_engine("sqlite:///taskhub.db")
        engine = create_db_engine("postgresql://user:pw@host/db")
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # TestClient and the ASGI server run handlers in a thread pool.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine
