"""Unit tests for auth/store.py -- user persistence and the audit log.

Covers:
- create_user() assigns ids and rejects duplicate emails with DuplicateEmail
- permissions, manager_id, and OTP fields survive a round trip through SQLite
- save_user() clears OTP fields to NULL
- audit entries written with a user write share its transaction
- list_audit() filters and orders newest first
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail
from auth.models import AuditLogEntry, User
from auth.store import UserStore


def _user(email: str = "a@x.com", role: str = "manager", **kwargs) -> User:
    return User(email=email, name="A", role=role, hashed_password="hash", **kwargs)


class TestUsers:
    def test_create_assigns_id_and_timestamp(self, store: UserStore) -> None:
        created = store.create_user(_user(permissions={"view_tickets"}))
        assert created.id is not None
        assert created.created_at

    def test_duplicate_email_rejected(self, store: UserStore) -> None:
        store.create_user(_user())
        with pytest.raises(DuplicateEmail):
            store.create_user(_user())

    def test_other_integrity_errors_are_not_duplicates(self, store: UserStore) -> None:
        with pytest.raises(IntegrityError) as excinfo:
            store.create_user(User(email="b@x.com", name=None, role="manager", hashed_password="hash"))
        assert not isinstance(excinfo.value, DuplicateEmail)
        assert store.get_by_email("b@x.com") is None

    def test_audit_constraint_failure_is_not_a_duplicate(self, store: UserStore) -> None:
        def nameless(u: User) -> AuditLogEntry:
            return AuditLogEntry(actor_id=u.id, actor_email=None, action="register_user")

        with pytest.raises(IntegrityError):
            store.create_user(_user(), audit=nameless)
        assert store.get_by_email("a@x.com") is None

    def test_email_lookup_is_case_sensitive(self, store: UserStore) -> None:
        store.create_user(_user(email="a@x.com"))
        assert store.get_by_email("A@X.COM") is None
        # A differently-cased email is a different account
        store.create_user(_user(email="A@X.COM"))
        assert store.get_by_email("A@X.COM") is not None

    def test_fields_roundtrip(self, store: UserStore) -> None:
        boss = store.create_user(_user(email="boss@x.com"))
        expires = datetime(2026, 5, 1, 10, 30, tzinfo=timezone.utc)
        created = store.create_user(
            _user(
                email="agent@x.com",
                role="agent",
                permissions={"view_tickets", "respond_tickets"},
                manager_id=boss.id,
                reset_otp="012345",
                reset_otp_expires=expires,
            )
        )
        loaded = store.get_by_id(created.id)
        assert loaded.permissions == {"view_tickets", "respond_tickets"}
        assert loaded.manager_id == boss.id
        assert loaded.reset_otp == "012345"
        assert loaded.reset_otp_expires == expires

    def test_missing_ids_return_none(self, store: UserStore) -> None:
        assert store.get_by_id(999) is None
        assert store.get_by_email("nobody@x.com") is None

    def test_save_user_clears_otp_to_null(self, store: UserStore) -> None:
        user = store.create_user(
            _user(reset_otp="111111", reset_otp_expires=datetime.now(timezone.utc) + timedelta(minutes=10))
        )
        user.reset_otp = None
        user.reset_otp_expires = None
        store.save_user(user)
        loaded = store.get_by_id(user.id)
        assert loaded.reset_otp is None
        assert loaded.reset_otp_expires is None

    def test_has_users(self, store: UserStore) -> None:
        assert not store.has_users()
        store.create_user(_user())
        assert store.has_users()


class TestAudit:
    def test_create_user_writes_audit_built_from_created_user(self, store: UserStore) -> None:
        created = store.create_user(
            _user(),
            audit=lambda u: AuditLogEntry(actor_id=u.id, actor_email=u.email, action="register_user", detail={"id": u.id}),
        )
        entries = store.list_audit()
        assert len(entries) == 1
        assert entries[0].actor_id == created.id
        assert entries[0].detail == {"id": created.id}

    def test_duplicate_email_writes_no_audit(self, store: UserStore) -> None:
        store.create_user(_user())

        def build(u: User) -> AuditLogEntry:
            return AuditLogEntry(actor_id=u.id, actor_email=u.email, action="register_user")

        with pytest.raises(DuplicateEmail):
            store.create_user(_user(), audit=build)
        assert store.list_audit() == []

    def test_failed_audit_rolls_back_user(self, store: UserStore) -> None:
        def broken(u: User) -> AuditLogEntry:
            raise RuntimeError("audit sink down")

        with pytest.raises(RuntimeError):
            store.create_user(_user(), audit=broken)
        assert store.get_by_email("a@x.com") is None

    def test_record_login_stamps_last_login(self, store: UserStore) -> None:
        user = store.create_user(_user())
        store.record_login(user, audit=AuditLogEntry(actor_id=user.id, actor_email=user.email, action="login"))
        assert store.get_by_id(user.id).last_login
        assert [e.action for e in store.list_audit()] == ["login"]

    def test_list_filters_and_orders_newest_first(self, store: UserStore) -> None:
        store.append_audit(AuditLogEntry(actor_id=1, actor_email="a@x.com", action="login"))
        store.append_audit(AuditLogEntry(actor_id=2, actor_email="b@x.com", action="login"))
        store.append_audit(AuditLogEntry(actor_id=1, actor_email="a@x.com", action="register_user"))

        assert [e.action for e in store.list_audit()] == ["register_user", "login", "login"]
        assert [e.actor_id for e in store.list_audit(action="login")] == [2, 1]
        assert len(store.list_audit(actor_id=1)) == 2
        assert len(store.list_audit(limit=1)) == 1

    def test_null_actor_allowed(self, store: UserStore) -> None:
        entry = store.append_audit(AuditLogEntry(actor_id=None, actor_email="ghost@x.com", action="login_failed"))
        assert entry.id is not None
        assert store.list_audit()[0].actor_id is None
