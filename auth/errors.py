"""
auth/errors.py -- Exception taxonomy for the auth core.

Every failure an operation can report is an AuthError subclass with a stable
machine-readable ``code`` and a ``kind``:

  client          -- the request is wrong; the message says how to fix it.
  auth            -- credentials or codes did not check out. Messages are
                     deliberately uniform where a distinction would help an
                     attacker enumerate accounts.
  infrastructure  -- a collaborator (mail relay) failed. Callers may retry;
                     the core never retries on its own.

The core raises these; api/ maps them to HTTP status codes.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all failures raised by auth/service.py."""

    code = "auth_error"
    kind = "client"
    default_message = "Authentication request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Client faults
# ---------------------------------------------------------------------------


class InvalidGrant(AuthError):
    code = "invalid_grant"
    default_message = 'Only users with role "admin" may hold the "*" permission.'


class MissingManager(AuthError):
    code = "missing_manager"
    default_message = "A manager_id is required when registering an agent."


class InvalidManager(AuthError):
    code = "invalid_manager"
    default_message = "manager_id must reference an existing user with role manager or admin."


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    default_message = "A user with that email already exists."


class PasswordTooLong(AuthError):
    code = "password_too_long"
    default_message = "Passwords are limited to 72 bytes when UTF-8 encoded."



# ---------------------------------------------------------------------------
# Authentication faults
# ---------------------------------------------------------------------------


class NotFound(AuthError):
    code = "not_found"
    kind = "auth"
    default_message = "Invalid email or password."


class BadCredential(AuthError):
    code = "bad_credentials"
    kind = "auth"
    default_message = "Invalid email or password."


class InvalidOrExpiredOtp(AuthError):
    code = "invalid_or_expired_otp"
    kind = "auth"
    default_message = "The reset code is invalid or has expired."


# ---------------------------------------------------------------------------
# Infrastructure faults
# ---------------------------------------------------------------------------


class DeliveryFailed(AuthError):
    code = "delivery_failed"
    kind = "infrastructure"
    default_message = "The reset code could not be delivered. Try again later."
