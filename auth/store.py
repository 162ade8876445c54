"""
auth/store.py -- SQLAlchemy Core persistence layer for users and the audit log.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user / _row_to_audit are the mappers. Service and route code never
touches SQL directly.

Atomicity:
  Each method that writes a user row also accepts the audit entry that goes
  with it and writes both inside one engine.begin() transaction. Either both
  rows land or neither does. There are no cross-user transactions and no
  application-level locks: concurrent writes to the same user are
  last-write-wins.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The audit_log table is append-only -- this module exposes no update or
  delete for it.

DB URL: Settings.database_url (agentdesk_auth.db at the repo root by default).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail
from auth.models import AuditLogEntry, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False),
    Column("permissions", Text, nullable=False, server_default="[]"),  # JSON list
    Column("manager_id", Integer, ForeignKey("users.id")),  # relation only
    Column("reset_otp", String(6)),  # NULL unless a reset is pending
    Column("reset_otp_expires", String(32)),  # ISO 8601 UTC
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_audit_log = Table(
    "audit_log",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("actor_id", Integer),  # NULL for failed logins on unknown emails
    Column("actor_email", String(255), nullable=False),
    Column("action", String(50), nullable=False),
    Column("detail", Text, nullable=False, server_default="{}"),  # JSON object
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _user_values(user: User) -> dict:
    return {
        "email": user.email,
        "name": user.name,
        "hashed_password": user.hashed_password,
        "role": user.role,
        "permissions": json.dumps(sorted(user.permissions)),
        "manager_id": user.manager_id,
        "reset_otp": user.reset_otp,
        "reset_otp_expires": user.reset_otp_expires.isoformat() if user.reset_otp_expires else None,
    }


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and their AuditLogEntry trail.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user(User(email="a@x.com", name="A", role="admin", hashed_password=h))
        store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().limit(1)).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # User writes
    # ------------------------------------------------------------------

    def create_user(self, user: User, audit: Callable[[User], AuditLogEntry] | None = None) -> User:
        """Insert a new user and return it with id and created_at filled in.

        ``audit`` builds the accompanying audit entry from the created user
        (whose id is only known after the insert). The entry is written in the
        same transaction.

        Raises DuplicateEmail if the email is already taken. The UNIQUE
        constraint is the source of truth, so two concurrent registrations of
        the same email cannot both succeed [M1]. Any other IntegrityError
        (NOT NULL, foreign key) propagates unchanged.
        """
        created_at = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.insert().values(created_at=created_at, **_user_values(user)))
                user.id = result.inserted_primary_key[0]
                user.created_at = created_at
                if audit is not None:
                    self._insert_audit(conn, audit(user))
        except IntegrityError as exc:
            user.id = None
            user.created_at = None
            # The transaction is rolled back, so a row with this email is a prior user
            if self.get_by_email(user.email) is not None:
                raise DuplicateEmail() from exc
            raise
        return user

    def save_user(self, user: User, audit: AuditLogEntry | None = None) -> None:
        """Write every mutable field of an existing user back to its row.

        Last write wins: there is no version check.
        """
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user.id).values(**_user_values(user)))
            if audit is not None:
                self._insert_audit(conn, audit)

    def record_login(self, user: User, audit: AuditLogEntry | None = None) -> None:
        """Stamp last_login on ``user`` and append its login audit entry atomically."""
        stamp = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user.id).values(last_login=stamp))
            if audit is not None:
                self._insert_audit(conn, audit)
        user.last_login = stamp

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def append_audit(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append a standalone audit entry (no accompanying user write)."""
        with self.engine.begin() as conn:
            return self._insert_audit(conn, entry)

    def list_audit(self, actor_id: int | None = None, action: str | None = None, limit: int = 100) -> list[AuditLogEntry]:
        """Return audit entries newest first, optionally filtered."""
        query = _audit_log.select()
        if actor_id is not None:
            query = query.where(_audit_log.c.actor_id == actor_id)
        if action is not None:
            query = query.where(_audit_log.c.action == action)
        query = query.order_by(_audit_log.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_audit(r) for r in rows]

    def _insert_audit(self, conn: Connection, entry: AuditLogEntry) -> AuditLogEntry:
        created_at = entry.created_at or _now_iso()
        result = conn.execute(
            _audit_log.insert().values(
                actor_id=entry.actor_id,
                actor_email=entry.actor_email,
                action=entry.action,
                detail=json.dumps(entry.detail, default=str),
                created_at=created_at,
            )
        )
        entry.id = result.inserted_primary_key[0]
        entry.created_at = created_at
        return entry

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    expires = datetime.fromisoformat(row.reset_otp_expires) if row.reset_otp_expires else None
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=row.role,
        permissions=set(json.loads(row.permissions or "[]")),
        manager_id=row.manager_id,
        reset_otp=row.reset_otp,
        reset_otp_expires=expires,
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_audit(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        actor_id=row.actor_id,
        actor_email=row.actor_email,
        action=row.action,
        detail=json.loads(row.detail or "{}"),
        created_at=row.created_at,
    )
