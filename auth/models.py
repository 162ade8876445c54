"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores own persistence,
auth/permissions.py owns the role rules, auth/service.py does the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# Roles with special meaning to the auth core. Other roles may exist in the
# configured permission table; they are treated as ordinary roles.
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_AGENT = "agent"

# Roles an agent's manager_id may point at.
SUPERVISOR_ROLES = frozenset({ROLE_MANAGER, ROLE_ADMIN})

WILDCARD_PERMISSION = "*"

# Audit action tags
ACTION_REGISTER_USER = "register_user"
ACTION_LOGIN = "login"
ACTION_LOGIN_FAILED = "login_failed"
ACTION_PASSWORD_RESET_REQUESTED = "password_reset_requested"
ACTION_PASSWORD_RESET = "password_reset"


@dataclass
class User:
    """An identity record.

    email is unique and compared case-sensitively, exactly as stored.

    manager_id is a lookup id, not an embedded User. It is resolved through
    the store when needed so User records never own one another.

    reset_otp / reset_otp_expires are both None unless a password reset is
    pending. They are cleared to None (never "") on a successful reset so a
    consumed code cannot compare equal to anything presented later. Expired
    codes are not purged, only rejected.
    """

    email: str
    name: str
    role: str
    hashed_password: str
    permissions: set[str] = field(default_factory=set)
    manager_id: int | None = None
    reset_otp: str | None = None
    reset_otp_expires: datetime | None = None  # timezone-aware UTC
    id: int | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass
class PublicUser:
    """The user projection returned to clients. Never carries credentials."""

    id: int
    name: str
    email: str
    role: str
    permissions: list[str]


@dataclass
class AuditLogEntry:
    """Immutable audit record. Append-only: never updated or deleted.

    actor_id is None only for failed logins against unknown emails, where
    there is no user to attribute the attempt to.
    """

    actor_id: int | None
    actor_email: str
    action: str
    detail: dict = field(default_factory=dict)
    created_at: str | None = None
    id: int | None = None
