"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AgentDesk happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Complex fields (role_permissions,
      universal_permissions) are parsed from JSON strings.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production mode
      refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens every issued token.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("agentdesk.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'agentdesk_auth.db'}"

# Role -> default capability tokens. "*" is reserved for admin.
DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    "admin": ["*"],
    "manager": [
        "view_tickets",
        "create_tickets",
        "assign_tickets",
        "close_tickets",
        "manage_agents",
        "view_reports",
    ],
    "agent": [
        "view_tickets",
        "create_tickets",
        "respond_tickets",
    ],
}

# Every capability the application knows about. Admins receive this list in
# their token claim at login regardless of what their record stores.
DEFAULT_UNIVERSAL_PERMISSIONS: list[str] = [
    "view_tickets",
    "create_tickets",
    "respond_tickets",
    "assign_tickets",
    "close_tickets",
    "delete_tickets",
    "manage_agents",
    "manage_users",
    "view_reports",
    "view_audit_logs",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens and one-time codes
    # ------------------------------------------------------------------

    token_expire_seconds: int = 8 * 60 * 60
    otp_ttl_seconds: int = 10 * 60

    # ------------------------------------------------------------------
    # Outbound mail (empty smtp_host means delivery is not configured)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0
    mail_from: str = "no-reply@agentdesk.local"

    # ------------------------------------------------------------------
    # Permission policy
    # ------------------------------------------------------------------

    role_permissions: dict[str, list[str]] = DEFAULT_ROLE_PERMISSIONS
    universal_permissions: list[str] = DEFAULT_UNIVERSAL_PERMISSIONS

    # ------------------------------------------------------------------
    # Audit and enumeration behaviour
    # ------------------------------------------------------------------

    audit_failed_logins: bool = False
    audit_password_resets: bool = False
    # When true, unknown emails look like wrong passwords on login and get the
    # normal acknowledgement on password-reset requests.
    conceal_unknown_accounts: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_wildcard_grants(self) -> "Settings":
        """Refuse a role table that hands the wildcard to a non-admin role."""
        for role, perms in self.role_permissions.items():
            if role != "admin" and "*" in perms:
                raise ValueError(f"Role {role!r} may not default to the '*' permission.")
        if "*" in self.universal_permissions:
            raise ValueError("universal_permissions must list concrete permissions, not '*'.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
