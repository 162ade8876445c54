"""Unit tests for core/config.py -- Settings validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from auth.permissions import PermissionPolicy
from core.config import DEFAULT_UNIVERSAL_PERMISSIONS, Settings


def test_debug_generates_secret_key() -> None:
    settings = Settings(debug=True, secret_key="", _env_file=None)
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="", _env_file=None)


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="short", _env_file=None)


def test_defaults_match_token_and_otp_lifetimes() -> None:
    settings = Settings(debug=True, _env_file=None)
    assert settings.token_expire_seconds == 8 * 60 * 60
    assert settings.otp_ttl_seconds == 10 * 60


def test_role_table_from_env_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROLE_PERMISSIONS", '{"admin": ["*"], "auditor": ["view_audit_logs"]}')
    settings = Settings(debug=True, _env_file=None)
    policy = PermissionPolicy.from_settings(settings)
    assert policy.defaults_for("auditor") == {"view_audit_logs"}
    assert policy.defaults_for("agent") == set()
    assert policy.universal == frozenset(DEFAULT_UNIVERSAL_PERMISSIONS)


def test_wildcard_default_for_non_admin_rejected() -> None:
    with pytest.raises(ValidationError, match="may not default"):
        Settings(debug=True, role_permissions={"manager": ["*"]}, _env_file=None)


def test_wildcard_in_universal_set_rejected() -> None:
    with pytest.raises(ValidationError, match="concrete permissions"):
        Settings(debug=True, universal_permissions=["*"], _env_file=None)
