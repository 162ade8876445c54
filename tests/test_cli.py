"""Tests for main.py -- the create-user and audit subcommands."""

from __future__ import annotations

from collections.abc import Generator

import pytest

from auth.store import UserStore
from core.config import get_settings
from main import main


@pytest.fixture
def db_url(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Generator[str, None, None]:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def test_create_admin_then_agent(db_url: str, capsys: pytest.CaptureFixture) -> None:
    assert main(["create-user", "--name", "Root", "--email", "root@x.com", "--role", "admin", "--password", "pw"]) == 0
    store = UserStore(db_url)
    try:
        admin = store.get_by_email("root@x.com")
        assert admin.permissions == {"*"}
    finally:
        store.close()

    rc = main(
        [
            "create-user",
            "--name", "Agent",
            "--email", "agent@x.com",
            "--role", "agent",
            "--manager-id", str(admin.id),
            "--password", "pw",
        ]
    )
    assert rc == 0
    assert "registered" in capsys.readouterr().out


def test_create_agent_without_manager_fails(db_url: str, capsys: pytest.CaptureFixture) -> None:
    rc = main(["create-user", "--name", "A", "--email", "a@x.com", "--role", "agent", "--password", "pw"])
    assert rc == 1
    assert "missing_manager" in capsys.readouterr().out


def test_audit_lists_registrations(db_url: str, capsys: pytest.CaptureFixture) -> None:
    main(["create-user", "--name", "M", "--email", "m@x.com", "--role", "manager", "--password", "pw"])
    capsys.readouterr()
    assert main(["audit", "--action", "register_user"]) == 0
    out = capsys.readouterr().out
    assert "register_user" in out
    assert "m@x.com" in out


def test_overlong_password_reports_error(db_url: str, capsys: pytest.CaptureFixture) -> None:
    rc = main(["create-user", "--name", "M", "--email", "m@x.com", "--role", "manager", "--password", "é" * 40])
    assert rc == 1
    assert "password_too_long" in capsys.readouterr().out
