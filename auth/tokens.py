"""
auth/tokens.py -- Password hashing, credential checks, and JWT utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       user id (sub), role, the permission claim, and an absolute expiry
       (8 hours by default). Nothing is stored server-side, so a token stays
       valid until it expires. Verification returns None on any failure --
       the route layer turns that into a 401.

  Passwords: bcrypt, used directly. Bcrypt's cost factor makes brute-force of
       low-entropy secrets expensive, and checkpw compares in constant time.
       The _DUMMY_HASH constant enables timing equalization in
       authenticate_user() so response time does not reveal whether an email
       is registered [C1].

  SECRET_KEY: sourced from core.config.get_settings(). Settings validates it at
       startup [M6].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import PasswordTooLong
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("agentdesk.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt input limit
PASSWORD_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only accepts 72 bytes of input, so a longer password raises
    PasswordTooLong instead of being silently truncated. The limit is in
    UTF-8 bytes: 40 accented characters already exceed it.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > PASSWORD_MAX_BYTES:
        raise PasswordTooLong()
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash, or a password over the 72-byte limit
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("agentdesk_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> tuple[User | None, bool]:
    """Look up ``email`` and check ``password`` with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns (user, ok). user is None when the email is unknown; ok is True
    only when the user exists and the password matches.
    """
    user = store.get_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None, False
    return user, verify_password(password, user.hashed_password)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: int,
    role: str,
    permissions: Iterable[str],
    expire_seconds: int = 0,
    now: datetime | None = None,
) -> str:
    """Encode a signed JWT carrying identity, role, and permission claims.

    Args:
        user_id:        Numeric user id, stored as the string subject claim.
        role:           User role.
        permissions:    Claimed permission set. Serialized as a sorted list.
        expire_seconds: Lifetime in seconds. 0 (default) uses
                        Settings.token_expire_seconds (8 hours).
        now:            Issuance time; defaults to the current UTC time.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "permissions": sorted(permissions),
        "iat": issued,
        "exp": issued + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Signature and expiry are both checked by jose. A token missing any of the
    claims this module writes is treated as invalid.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not all(k in payload for k in ("sub", "role", "permissions")):
        return None
    return payload
