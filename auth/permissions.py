"""
auth/permissions.py -- Role-derived permission resolution.

Both resolvers are pure functions over an explicit PermissionPolicy, so the
privilege rules (admin-only wildcard, admin override at login) can be tested
without a store or an HTTP stack. The policy is built from Settings once and
injected; nothing here reads process-wide state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from auth.errors import InvalidGrant
from auth.models import ROLE_ADMIN, WILDCARD_PERMISSION, User


@dataclass(frozen=True)
class PermissionPolicy:
    """Role -> default permissions table plus the universal permission set."""

    role_defaults: Mapping[str, frozenset[str]] = field(default_factory=dict)
    universal: frozenset[str] = frozenset()

    @classmethod
    def from_tables(cls, role_permissions: Mapping[str, Iterable[str]], universal: Iterable[str]) -> PermissionPolicy:
        return cls(
            role_defaults={role: frozenset(perms) for role, perms in role_permissions.items()},
            universal=frozenset(universal),
        )

    @classmethod
    def from_settings(cls, settings) -> PermissionPolicy:
        """Build the policy from core.config.Settings."""
        return cls.from_tables(settings.role_permissions, settings.universal_permissions)

    def defaults_for(self, role: str) -> set[str]:
        """Default permissions for role; empty for roles the table does not know."""
        return set(self.role_defaults.get(role, ()))


def resolve_for_new_user(policy: PermissionPolicy, role: str, explicit: Iterable[str] | None = None) -> set[str]:
    """Return the permission set a new user of ``role`` is stored with.

    An absent or empty explicit list falls back to the role's defaults.
    Otherwise the explicit list is used as given.

    Raises InvalidGrant if a non-admin would end up holding "*". Callers must
    run this before writing anything.
    """
    resolved = set(explicit) if explicit else policy.defaults_for(role)
    if role != ROLE_ADMIN and WILDCARD_PERMISSION in resolved:
        raise InvalidGrant()
    return resolved


def resolve_for_login(policy: PermissionPolicy, user: User) -> set[str]:
    """Return the permission set claimed in the user's login token.

    Admins always get the full universal set, whatever their record stores.
    The override is not written back to the record.
    """
    if user.role == ROLE_ADMIN:
        return set(policy.universal)
    return set(user.permissions)


def has_permission(claimed: Iterable[str], required: str) -> bool:
    """True if a token's claimed permissions grant ``required``."""
    claimed = set(claimed)
    return required in claimed or WILDCARD_PERMISSION in claimed
