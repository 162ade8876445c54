"""
auth/dependencies.py -- FastAPI Depends() helpers for token authentication.

Tokens arrive as "Authorization: Bearer <token>". Validity is signature plus
expiry only; there is no server-side session to consult.

try_get_current_user() is the soft variant (returns None on failure) used by
registration to identify an optional acting user.
get_current_claims() raises HTTP 401 if the request carries no valid token.
require_permission(name) raises HTTP 403 if the token's permission claim does
not grant ``name`` (or "*").

Layer rule: this module may import from fastapi because it is part of the
FastAPI dependency injection system. It does not import from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.models import User
from auth.permissions import has_permission
from auth.tokens import decode_access_token


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def try_get_claims(request: Request) -> dict | None:
    """Return the verified token payload, or None. Never raises."""
    token = _bearer_token(request)
    if not token:
        return None
    return decode_access_token(token)


def try_get_current_user(request: Request) -> User | None:
    """Return the User named by a valid Bearer token, or None. Never raises."""
    claims = try_get_claims(request)
    if claims is None:
        return None
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        return None
    return request.app.state.user_store.get_by_id(user_id)


def get_current_claims(request: Request) -> dict:
    """Require a valid token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: dict = Depends(get_current_claims)): ...
    """
    claims = try_get_claims(request)
    if claims is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return claims


def require_permission(permission: str) -> Callable[[Request], dict]:
    """Build a dependency that requires ``permission`` in the token claim.

    Use as a FastAPI dependency:
        @router.get("/audit")
        async def route(claims: dict = Depends(require_permission("view_audit_logs"))): ...
    """

    def dependency(request: Request) -> dict:
        claims = get_current_claims(request)
        if not has_permission(claims.get("permissions", []), permission):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"Permission {permission!r} required."},
            )
        return claims

    return dependency
