"""
auth/service.py -- AuthService: register, login, and password reset.

Composes the permission resolvers, the user store, the credential and token
helpers, the OTP helpers, and the mailer. Each operation either returns a
result dataclass or raises an auth.errors.AuthError subclass.

Side effects are part of each result: audit_id is the id of the audit entry
written with the operation (None when the operation is not audited), and
ResetRequestResult.delivered reports whether a code was handed to the mailer.
A failed audit write raises, and the user write it accompanies is rolled back
with it (see auth/store.py).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from auth.errors import BadCredential, InvalidManager, InvalidOrExpiredOtp, MissingManager, NotFound
from auth.models import (
    ACTION_LOGIN,
    ACTION_LOGIN_FAILED,
    ACTION_PASSWORD_RESET,
    ACTION_PASSWORD_RESET_REQUESTED,
    ACTION_REGISTER_USER,
    ROLE_AGENT,
    SUPERVISOR_ROLES,
    AuditLogEntry,
    PublicUser,
    User,
)
from auth.otp import clear_otp, issue_otp, otp_matches
from auth.permissions import PermissionPolicy, resolve_for_login, resolve_for_new_user
from auth.tokens import authenticate_user, create_access_token, hash_password

logger = logging.getLogger("agentdesk.auth")

RESET_SUBJECT = "Password reset code"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RegisterResult:
    message: str
    user_id: int
    audit_id: int | None


@dataclass
class LoginResult:
    token: str
    user: PublicUser
    audit_id: int | None


@dataclass
class ResetRequestResult:
    message: str
    delivered: bool
    audit_id: int | None = None


@dataclass
class ResetConfirmResult:
    message: str
    audit_id: int | None = None


class AuthService:
    """The four auth operations over an injected store, mailer, and policy.

    Args:
        store:                    UserStore (or anything with the same methods).
        mailer:                   Object with send(to, subject, body).
        policy:                   PermissionPolicy built from configuration.
        otp_ttl_seconds:          Lifetime of a reset code.
        token_expire_seconds:     Lifetime of an issued token (8 hours).
        audit_failed_logins:      Write login_failed entries before raising.
        audit_password_resets:    Write entries for reset requests/confirmations.
        conceal_unknown_accounts: Do not reveal whether an email is registered.
        clock:                    Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        store,
        mailer,
        policy: PermissionPolicy,
        otp_ttl_seconds: int = 600,
        token_expire_seconds: int = 8 * 60 * 60,
        audit_failed_logins: bool = False,
        audit_password_resets: bool = False,
        conceal_unknown_accounts: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.policy = policy
        self.otp_ttl_seconds = otp_ttl_seconds
        self.token_expire_seconds = token_expire_seconds
        self.audit_failed_logins = audit_failed_logins
        self.audit_password_resets = audit_password_resets
        self.conceal_unknown_accounts = conceal_unknown_accounts
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, store, mailer) -> AuthService:
        return cls(
            store=store,
            mailer=mailer,
            policy=PermissionPolicy.from_settings(settings),
            otp_ttl_seconds=settings.otp_ttl_seconds,
            token_expire_seconds=settings.token_expire_seconds,
            audit_failed_logins=settings.audit_failed_logins,
            audit_password_resets=settings.audit_password_resets,
            conceal_unknown_accounts=settings.conceal_unknown_accounts,
        )

    # ------------------------------------------------------------------
    # register
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        email: str,
        password: str,
        role: str,
        permissions: Iterable[str] | None = None,
        manager_id: int | None = None,
        actor: User | None = None,
    ) -> RegisterResult:
        """Create a user. No token is issued; the new user logs in separately.

        ``actor`` is the authenticated caller, if any. Self-registrations are
        audited with the new user as the actor.

        Raises InvalidGrant, MissingManager, InvalidManager, PasswordTooLong,
        DuplicateEmail.
        """
        resolved = resolve_for_new_user(self.policy, role, permissions)

        manager_ref: int | None = None
        if role == ROLE_AGENT:
            # Only an absent id is "missing"; 0 is looked up and fails as invalid
            if manager_id is None:
                raise MissingManager()
            manager = self.store.get_by_id(manager_id)
            if manager is None or manager.role not in SUPERVISOR_ROLES:
                raise InvalidManager()
            manager_ref = manager.id

        user = User(
            email=email,
            name=name,
            role=role,
            hashed_password=hash_password(password),
            permissions=resolved,
            manager_id=manager_ref,
        )

        # The entry needs the new id, so the store builds it inside its transaction.
        entries: list[AuditLogEntry] = []

        def audit_entry(created: User) -> AuditLogEntry:
            entry = AuditLogEntry(
                actor_id=actor.id if actor else created.id,
                actor_email=actor.email if actor else created.email,
                action=ACTION_REGISTER_USER,
                detail={
                    "created_user_id": created.id,
                    "created_user_email": created.email,
                    "role": created.role,
                },
            )
            entries.append(entry)
            return entry

        created = self.store.create_user(user, audit=audit_entry)
        logger.info("Registered user %s (id=%s, role=%s)", created.email, created.id, created.role)
        return RegisterResult(
            message="User registered successfully.",
            user_id=created.id,
            audit_id=entries[0].id if entries else None,
        )

    # ------------------------------------------------------------------
    # login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, origin: str | None = None) -> LoginResult:
        """Verify credentials and issue a signed token.

        Raises NotFound for an unknown email (BadCredential when
        conceal_unknown_accounts is set) and BadCredential for a wrong password.
        """
        user, ok = authenticate_user(self.store, email, password)
        if user is None:
            self._audit_failed_login(None, email, origin, "unknown_email")
            if self.conceal_unknown_accounts:
                raise BadCredential()
            raise NotFound()
        if not ok:
            self._audit_failed_login(user.id, email, origin, "bad_password")
            raise BadCredential()

        claimed = resolve_for_login(self.policy, user)
        token = create_access_token(user.id, user.role, claimed, expire_seconds=self.token_expire_seconds)

        entry = AuditLogEntry(
            actor_id=user.id,
            actor_email=user.email,
            action=ACTION_LOGIN,
            detail={"message": "User logged in", "ip": origin},
        )
        self.store.record_login(user, audit=entry)
        logger.info("Login succeeded for user id=%s", user.id)

        return LoginResult(
            token=token,
            user=PublicUser(
                id=user.id,
                name=user.name,
                email=user.email,
                role=user.role,
                permissions=sorted(claimed),
            ),
            audit_id=entry.id,
        )

    def _audit_failed_login(self, actor_id: int | None, email: str, origin: str | None, reason: str) -> None:
        logger.info("Login failed (%s) from %s", reason, origin or "unknown")
        if not self.audit_failed_logins:
            return
        self.store.append_audit(
            AuditLogEntry(
                actor_id=actor_id,
                actor_email=email,
                action=ACTION_LOGIN_FAILED,
                detail={"reason": reason, "ip": origin},
            )
        )

    # ------------------------------------------------------------------
    # password reset
    # ------------------------------------------------------------------

    def request_reset(self, email: str) -> ResetRequestResult:
        """Issue a reset code, persist it, and mail it to the user.

        A later call overwrites the pending code, so only the newest validates.
        If delivery fails the code stays stored and DeliveryFailed propagates;
        calling again is the retry.

        Raises NotFound (unless conceal_unknown_accounts) and DeliveryFailed.
        """
        message = "A reset code has been sent to the registered email."
        user = self.store.get_by_email(email)
        if user is None:
            if self.conceal_unknown_accounts:
                logger.info("Password reset requested for unknown email; not sent")
                return ResetRequestResult(message=message, delivered=False)
            raise NotFound("No account is registered with that email.")

        code = issue_otp(user, self.clock(), self.otp_ttl_seconds)
        entry = None
        if self.audit_password_resets:
            entry = AuditLogEntry(
                actor_id=user.id,
                actor_email=user.email,
                action=ACTION_PASSWORD_RESET_REQUESTED,
                detail={"expires_at": user.reset_otp_expires.isoformat()},
            )
        self.store.save_user(user, audit=entry)

        minutes = max(1, self.otp_ttl_seconds // 60)
        body = f"Your password reset code is: {code}. It expires in {minutes} minutes."
        self.mailer.send(user.email, RESET_SUBJECT, body)
        logger.info("Password reset code issued for user id=%s", user.id)
        return ResetRequestResult(message=message, delivered=True, audit_id=entry.id if entry else None)

    def confirm_reset(self, email: str, otp: str, new_password: str) -> ResetConfirmResult:
        """Replace the password if ``otp`` is the pending, unexpired code.

        The code is cleared on success, so it validates at most once. No token
        is issued; the user logs in with the new password.

        Raises NotFound, InvalidOrExpiredOtp, and PasswordTooLong.
        """
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFound("No account is registered with that email.")
        if not otp_matches(user, otp, self.clock()):
            raise InvalidOrExpiredOtp()

        user.hashed_password = hash_password(new_password)
        clear_otp(user)
        entry = None
        if self.audit_password_resets:
            entry = AuditLogEntry(
                actor_id=user.id,
                actor_email=user.email,
                action=ACTION_PASSWORD_RESET,
                detail={"message": "Password reset with one-time code"},
            )
        self.store.save_user(user, audit=entry)
        logger.info("Password reset completed for user id=%s", user.id)
        return ResetConfirmResult(message="Password reset successfully.", audit_id=entry.id if entry else None)
