from __future__ import annotations

from typing import FrozenSet, Iterable, Optional

from agentdesk.auth.permissions import (
    ALL_PERMISSIONS,
    CAPABILITIES,
    Permission,
    PermissionLike,
    parse_permission,
    role_permissions,
)
from agentdesk.auth.snapshot import PermissionSnapshot
from agentdesk.auth.tenant_context import TenantSelection
from agentdesk.core.roles import TenantRole


class PermissionResolver:
    """
    Pure, synchronous decision surface over one snapshot (+ optional selection).

    Order of evaluation for has_permission():
      1. unknown key          -> UnknownPermission
      2. super admin          -> allowed (bypass; nothing else is consulted)
      3. explicit grant       -> allowed
      4. role baseline        -> allowed iff in ROLE_PERMISSIONS[role]
    """

    def __init__(
        self,
        snapshot: PermissionSnapshot,
        selection: Optional[TenantSelection] = None,
    ):
        self.snapshot = snapshot
        # Only super admins can impersonate.
        self.selection = selection if snapshot.is_super_admin else None

        membership = snapshot.membership
        if self.selection is not None and (
            membership is None or membership.tenant_id != self.selection.tenant_id
        ):
            # Viewing a tenant the super admin has no membership in: no role applies there.
            self._role: Optional[TenantRole] = None
            self._grants: FrozenSet[Permission] = frozenset()
        else:
            self._role = snapshot.role
            self._grants = snapshot.grants

    # ---------------------------------------------------------
    # Snapshot facts
    # ---------------------------------------------------------
    @property
    def role(self) -> Optional[TenantRole]:
        return self._role

    @property
    def grants(self) -> FrozenSet[Permission]:
        return self._grants

    @property
    def is_super_admin(self) -> bool:
        return self.snapshot.is_super_admin

    @property
    def tenant_id(self) -> Optional[str]:
        return self.snapshot.tenant_id

    @property
    def effective_tenant_id(self) -> Optional[str]:
        if self.selection is not None:
            return self.selection.tenant_id
        return self.snapshot.tenant_id

    @property
    def is_impersonating(self) -> bool:
        return self.selection is not None

    @property
    def loading(self) -> bool:
        return self.snapshot.loading

    @property
    def lookup_failed(self) -> bool:
        return self.snapshot.lookup_failed

    # ---------------------------------------------------------
    # Decisions
    # ---------------------------------------------------------
    def has_permission(self, permission: PermissionLike) -> bool:
        perm = parse_permission(permission)
        if self.snapshot.is_super_admin:
            return True
        if perm in self._grants:
            return True
        if self._role is None:
            return False
        return perm in role_permissions(self._role)

    def has_any(self, permissions: Iterable[PermissionLike]) -> bool:
        perms = [parse_permission(p) for p in permissions]
        return any(self.has_permission(p) for p in perms)

    def has_all(self, permissions: Iterable[PermissionLike]) -> bool:
        perms = [parse_permission(p) for p in permissions]
        return all(self.has_permission(p) for p in perms)

    def check(self, permissions: Iterable[PermissionLike], *, require_all: bool = False) -> bool:
        """Gate semantics: no permissions listed means nothing to guard."""
        perms = [parse_permission(p) for p in permissions]
        if not perms:
            return True
        return self.has_all(perms) if require_all else self.has_any(perms)

    @property
    def permissions(self) -> FrozenSet[Permission]:
        """The effective permission set (catalog-wide for super admins)."""
        if self.snapshot.is_super_admin:
            return ALL_PERMISSIONS
        return role_permissions(self._role) | self._grants

    # ---------------------------------------------------------
    # Role identity (structural role only; grants never count)
    # ---------------------------------------------------------
    @property
    def is_owner(self) -> bool:
        return self._role == TenantRole.OWNER

    @property
    def is_admin(self) -> bool:
        return self._role == TenantRole.ADMIN or self.snapshot.is_super_admin

    @property
    def is_member(self) -> bool:
        return self._role == TenantRole.MEMBER

    @property
    def is_viewer(self) -> bool:
        return self._role == TenantRole.VIEWER

    # ---------------------------------------------------------
    # Capabilities
    # ---------------------------------------------------------
    def has_capability(self, name: str) -> bool:
        try:
            perms = CAPABILITIES[name]
        except KeyError:
            raise KeyError(f"Unknown capability: {name!r}") from None
        return self.has_any(perms)

    @property
    def can_manage_team(self) -> bool:
        return self.has_capability("can_manage_team")

    @property
    def can_manage_settings(self) -> bool:
        return self.has_capability("can_manage_settings")

    @property
    def can_manage_agents(self) -> bool:
        return self.has_capability("can_manage_agents")

    @property
    def can_view_sensitive_data(self) -> bool:
        return self.has_capability("can_view_sensitive_data")

    def __repr__(self) -> str:
        return (
            f"<PermissionResolver(user_id={self.snapshot.user_id}, role={self._role}, "
            f"super_admin={self.snapshot.is_super_admin}, effective_tenant={self.effective_tenant_id})>"
        )
