from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from agentdesk.auth.permissions import (
    CAPABILITIES,
    CATALOG_VERSION,
    PERMISSION_CATEGORIES,
    ROLE_PERMISSIONS,
)
from agentdesk.auth.resolver import PermissionResolver
from agentdesk.core.roles import ROLE_LABELS
from agentdesk.services.grant_editor import MemberPermissionsView


class PermissionSurfaceOut(BaseModel):
    user_id: Optional[str] = None
    role: Optional[str] = None
    tenant_id: Optional[str] = None
    effective_tenant_id: Optional[str] = None
    impersonated_tenant_name: Optional[str] = None

    is_super_admin: bool = False
    is_impersonating: bool = False
    loading: bool = False
    lookup_failed: bool = False

    permissions: List[str] = []

    is_owner: bool = False
    is_admin: bool = False
    is_member: bool = False
    is_viewer: bool = False

    can_manage_team: bool = False
    can_manage_settings: bool = False
    can_manage_agents: bool = False
    can_view_sensitive_data: bool = False

    @classmethod
    def from_resolver(cls, resolver: PermissionResolver) -> "PermissionSurfaceOut":
        return cls(
            user_id=resolver.snapshot.user_id,
            role=resolver.role.value if resolver.role else None,
            tenant_id=resolver.tenant_id,
            effective_tenant_id=resolver.effective_tenant_id,
            impersonated_tenant_name=resolver.selection.tenant_name if resolver.selection else None,
            is_super_admin=resolver.is_super_admin,
            is_impersonating=resolver.is_impersonating,
            loading=resolver.loading,
            lookup_failed=resolver.lookup_failed,
            permissions=sorted(p.value for p in resolver.permissions),
            is_owner=resolver.is_owner,
            is_admin=resolver.is_admin,
            is_member=resolver.is_member,
            is_viewer=resolver.is_viewer,
            can_manage_team=resolver.can_manage_team,
            can_manage_settings=resolver.can_manage_settings,
            can_manage_agents=resolver.can_manage_agents,
            can_view_sensitive_data=resolver.can_view_sensitive_data,
        )


class PermissionCheckOut(BaseModel):
    allowed: bool
    require_all: bool
    permissions: List[str]


# -----------------------------
# Catalog
# -----------------------------
class CatalogPermissionOut(BaseModel):
    key: str
    label: str


class CatalogCategoryOut(BaseModel):
    category: str
    permissions: List[CatalogPermissionOut]


class CatalogRoleOut(BaseModel):
    role: str
    label: str
    permissions: List[str]


class CatalogOut(BaseModel):
    version: int
    categories: List[CatalogCategoryOut]
    roles: List[CatalogRoleOut]
    capabilities: Dict[str, List[str]]

    @classmethod
    def build(cls) -> "CatalogOut":
        return cls(
            version=CATALOG_VERSION,
            categories=[
                CatalogCategoryOut(
                    category=category,
                    permissions=[CatalogPermissionOut(key=p.value, label=label) for p, label in perms],
                )
                for category, perms in PERMISSION_CATEGORIES
            ],
            roles=[
                CatalogRoleOut(
                    role=role.value,
                    label=ROLE_LABELS[role],
                    permissions=sorted(p.value for p in perms),
                )
                for role, perms in ROLE_PERMISSIONS.items()
            ],
            capabilities={name: sorted(p.value for p in perms) for name, perms in CAPABILITIES.items()},
        )


# -----------------------------
# Grant editor
# -----------------------------
class PermissionToggleOut(BaseModel):
    key: str
    label: str
    locked: bool
    granted: bool
    enabled: bool
    role_badge: Optional[str] = None


class PermissionCategoryOut(BaseModel):
    category: str
    permissions: List[PermissionToggleOut]


class MemberPermissionsOut(BaseModel):
    user_id: str
    email: str
    full_name: Optional[str] = None
    role: Optional[str] = None
    grants: List[str] = []
    editable: bool
    categories: List[PermissionCategoryOut]

    @classmethod
    def from_view(cls, view: MemberPermissionsView) -> "MemberPermissionsOut":
        return cls(
            user_id=view.user_id,
            email=view.email,
            full_name=view.full_name,
            role=view.role.value if view.role else None,
            grants=sorted(p.value for p in view.grants),
            editable=view.editable,
            categories=[
                PermissionCategoryOut(
                    category=c.category,
                    permissions=[
                        PermissionToggleOut(
                            key=t.permission.value,
                            label=t.label,
                            locked=t.locked,
                            granted=t.granted,
                            enabled=t.enabled,
                            role_badge=t.role_badge.value if t.role_badge else None,
                        )
                        for t in c.permissions
                    ],
                )
                for c in view.categories
            ],
        )


class GrantsUpdate(BaseModel):
    # Full replacement set; anything not listed is removed.
    permissions: List[str] = Field(default_factory=list)
