"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register                -- create a user; 201
  POST /api/v1/auth/login                   -- password login; returns bearer token
  POST /api/v1/auth/password-reset          -- mail a one-time reset code
  POST /api/v1/auth/password-reset/confirm  -- set a new password with the code
  GET  /api/v1/auth/me                      -- claims of the caller's token
  GET  /api/v1/auth/audit                   -- recent audit entries (view_audit_logs)

The handlers are thin: they unpack the body, call AuthService, and map
AuthError subclasses to HTTP responses through _STATUS_BY_CODE.

Security:
  [C1] AuthService.login runs bcrypt even for unknown emails -- never inline
       a get_by_email() + verify_password() check here.
  [M5] Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.models import (
    AuditEntryResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    PublicUserResponse,
    RegisterRequest,
    ResetConfirmRequest,
    ResetRequest,
)
from auth.dependencies import get_current_claims, require_permission, try_get_current_user
from auth.errors import AuthError
from auth.service import AuthService

# Auth policy:
# - POST /auth/register:                public; a Bearer token, if present, names the acting user
# - POST /auth/login:                   public
# - POST /auth/password-reset:          public
# - POST /auth/password-reset/confirm:  public
# - GET  /auth/me:                      requires a valid token
# - GET  /auth/audit:                   requires the view_audit_logs permission claim
router = APIRouter()

_STATUS_BY_CODE: dict[str, int] = {
    "invalid_grant": 400,
    "missing_manager": 400,
    "invalid_manager": 400,
    "duplicate_email": 409,
    "password_too_long": 400,
    "not_found": 404,
    "bad_credentials": 401,
    "invalid_or_expired_otp": 400,
    "delivery_failed": 502,
}


def _http_error(exc: AuthError) -> HTTPException:
    status = _STATUS_BY_CODE.get(exc.code, 500 if exc.kind == "infrastructure" else 400)
    return HTTPException(status_code=status, detail={"code": exc.code, "message": exc.message})


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Register a user. No token is returned; the new user must log in."""
    actor = try_get_current_user(request)
    try:
        result = _service(request).register(
            name=body.name,
            email=body.email,
            password=body.password,
            role=body.role,
            permissions=body.permissions,
            manager_id=body.manager_id,
            actor=actor,
        )
    except AuthError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message=result.message)


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token and the public user."""
    service = _service(request)
    origin = request.client.host if request.client else None
    try:
        result = service.login(body.email, body.password, origin=origin)
    except AuthError as exc:
        resp = JSONResponse(
            status_code=_STATUS_BY_CODE.get(exc.code, 401),
            content={"error": {"code": exc.code, "message": exc.message}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    u = result.user
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=result.token,
            expires_in=service.token_expire_seconds,
            user=PublicUserResponse(id=u.id, name=u.name, email=u.email, role=u.role, permissions=u.permissions),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/password-reset", response_model=MessageResponse)
def request_password_reset(request: Request, body: ResetRequest) -> MessageResponse:
    """Mail a 6-digit reset code valid for 10 minutes."""
    try:
        result = _service(request).request_reset(body.email)
    except AuthError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message=result.message)


@router.post("/auth/password-reset/confirm", response_model=MessageResponse)
def confirm_password_reset(request: Request, body: ResetConfirmRequest) -> MessageResponse:
    """Set a new password using the mailed code. The caller must log in again."""
    try:
        result = _service(request).confirm_reset(body.email, body.otp, body.new_password)
    except AuthError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message=result.message)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: dict = Depends(get_current_claims)) -> MeResponse:
    """Return the identity and permission claims of the caller's token."""
    return MeResponse(
        user_id=int(claims["sub"]),
        role=claims["role"],
        permissions=list(claims["permissions"]),
        expires_at=int(claims["exp"]),
    )


@router.get("/auth/audit", response_model=list[AuditEntryResponse])
def list_audit(
    request: Request,
    action: Optional[str] = Query(default=None, max_length=50),
    actor_id: Optional[int] = None,
    limit: int = Query(default=100, ge=1, le=500),
    claims: dict = Depends(require_permission("view_audit_logs")),
) -> list[AuditEntryResponse]:
    """Return recent audit entries, newest first."""
    entries = request.app.state.user_store.list_audit(actor_id=actor_id, action=action, limit=limit)
    return [
        AuditEntryResponse(
            id=e.id,
            actor_id=e.actor_id,
            actor_email=e.actor_email,
            action=e.action,
            detail=e.detail,
            created_at=e.created_at or "",
        )
        for e in entries
    ]
