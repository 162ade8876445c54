"""
API request and response models for AgentDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.tokens import PASSWORD_MAX_BYTES

# Character cap; the byte limit is checked by _check_password_bytes
_PASSWORD_MAX = PASSWORD_MAX_BYTES


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error code plus a human message."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope for every non-2xx response: {"error": {...}}."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    permissions is optional; an absent or empty list means "use the role's
    defaults". manager_id is required (and checked) only for role "agent".
    """

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    role: str = Field(min_length=1, max_length=30)
    permissions: Optional[list[str]] = Field(default=None, max_length=100)
    manager_id: Optional[int] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


class ResetRequest(BaseModel):
    """Request body for POST /api/v1/auth/password-reset.

    The email is matched exactly as stored, like every other auth request.
    """

    email: str = Field(min_length=1, max_length=255)


class ResetConfirmRequest(BaseModel):
    """Request body for POST /api/v1/auth/password-reset/confirm."""

    email: str = Field(min_length=1, max_length=255)
    otp: str = Field(min_length=1, max_length=6)
    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


# ---------------------------------------------------------------------------
# Auth responses
# ---------------------------------------------------------------------------


class PublicUserResponse(BaseModel):
    """User projection returned on login. Never includes credential material."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str
    permissions: list[str]


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: PublicUserResponse


class MeResponse(BaseModel):
    """Claims carried by the caller's token."""

    user_id: int
    role: str
    permissions: list[str]
    expires_at: int


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    actor_id: Optional[int]
    actor_email: str
    action: str
    detail: dict
    created_at: str
