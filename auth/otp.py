"""
auth/otp.py -- One-time password-reset codes.

A code is a zero-padded 6-digit string drawn uniformly from 100000-999999 with
the secrets module. It lives on the User record alongside an absolute expiry.
Issuing a new code overwrites any pending one, so only the latest code
validates. Expired codes are never purged here, only rejected.
"""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta

from auth.models import User

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    """Return a uniformly random 6-digit code as a string."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def issue_otp(user: User, now: datetime, ttl_seconds: int) -> str:
    """Set a fresh code and expiry on ``user`` (not persisted). Returns the code."""
    code = generate_otp()
    user.reset_otp = code
    user.reset_otp_expires = now + timedelta(seconds=ttl_seconds)
    return code


def otp_matches(user: User, presented: str, now: datetime) -> bool:
    """True if ``presented`` equals the pending code and the code is unexpired.

    Wrong code, expired code, and no pending code all return False; callers
    report them as one error. The expiry must be strictly after ``now``.
    """
    if user.reset_otp is None or user.reset_otp_expires is None:
        return False
    same = hmac.compare_digest(user.reset_otp.encode("utf-8"), str(presented).encode("utf-8"))
    return same and user.reset_otp_expires > now


def clear_otp(user: User) -> None:
    user.reset_otp = None
    user.reset_otp_expires = None
