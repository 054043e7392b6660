"""Granular grant editing surface.

Role-derived permissions are rendered locked (with the role as badge) and
cannot be removed; grant-derived permissions toggle independently. Saving
replaces the whole grant set for the (user, tenant) pair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from agentdesk.auth.permissions import (
    PERMISSION_CATEGORIES,
    Permission,
    PermissionLike,
    parse_permissions,
    role_permissions,
)
from agentdesk.auth.resolver import PermissionResolver
from agentdesk.core.errors import Forbidden
from agentdesk.core.roles import TenantRole, parse_role
from agentdesk.crud import authorization as authz_crud
from agentdesk.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionToggle:
    permission: Permission
    label: str
    locked: bool              # granted by role; shown with the role badge
    granted: bool             # present in the user's grant set
    role_badge: Optional[TenantRole] = None

    @property
    def enabled(self) -> bool:
        return self.locked or self.granted


@dataclass(frozen=True)
class PermissionCategoryView:
    category: str
    permissions: List[PermissionToggle]


@dataclass(frozen=True)
class MemberPermissionsView:
    user_id: str
    email: str
    full_name: Optional[str]
    role: Optional[TenantRole]
    grants: FrozenSet[Permission]
    editable: bool
    categories: List[PermissionCategoryView]


def build_categories(role: Optional[TenantRole], grants: FrozenSet[Permission]) -> List[PermissionCategoryView]:
    baseline = role_permissions(role)
    return [
        PermissionCategoryView(
            category=category,
            permissions=[
                PermissionToggle(
                    permission=perm,
                    label=label,
                    locked=perm in baseline,
                    granted=perm in grants,
                    role_badge=role if perm in baseline else None,
                )
                for perm, label in perms
            ],
        )
        for category, perms in PERMISSION_CATEGORIES
    ]


def ensure_can_edit_grants(actor: PermissionResolver) -> str:
    """Owners and admins (super admins included) manage grants; returns the tenant to act on."""
    if not (actor.is_owner or actor.is_admin):
        raise Forbidden()
    tenant_id = actor.effective_tenant_id
    if tenant_id is None:
        raise Forbidden()
    return tenant_id


def _matches(search: Optional[str], user_id: str, full_name: Optional[str]) -> bool:
    if not search:
        return True
    q = search.strip().lower()
    return q in (full_name or "").lower() or q in user_id.lower()


async def list_member_permissions(
    db: AsyncSession,
    actor: PermissionResolver,
    *,
    search: Optional[str] = None,
) -> List[MemberPermissionsView]:
    tenant_id = ensure_can_edit_grants(actor)

    members = await authz_crud.list_tenant_members(db, tenant_id)
    grants_by_user = await authz_crud.list_grants_admin(db, tenant_id)

    views = []
    for membership, user in members:
        user_id = str(user.id)
        if not _matches(search, user_id, user.full_name):
            continue
        role = parse_role(membership.role)
        grants = grants_by_user.get(user_id, frozenset())
        views.append(
            MemberPermissionsView(
                user_id=user_id,
                email=user.email,
                full_name=user.full_name,
                role=role,
                grants=grants,
                editable=role != TenantRole.OWNER,
                categories=build_categories(role, grants),
            )
        )
    return views


async def save_member_grants(
    db: AsyncSession,
    actor: PermissionResolver,
    target_user_id: str,
    permissions: Iterable[PermissionLike],
) -> MemberPermissionsView:
    tenant_id = ensure_can_edit_grants(actor)
    wanted = parse_permissions(list(permissions))

    await authz_crud.replace_grants(
        db,
        target_user_id,
        tenant_id,
        wanted,
        granted_by=actor.snapshot.user_id,
    )

    membership = await authz_crud.get_membership_in_tenant(db, target_user_id, tenant_id)
    role = parse_role(membership.role) if membership else None
    user = await db.get(User, membership.user_id) if membership else None
    grants = await authz_crud.list_grants(db, target_user_id, tenant_id)

    return MemberPermissionsView(
        user_id=str(target_user_id),
        email=user.email if user else "",
        full_name=user.full_name if user else None,
        role=role,
        grants=grants,
        editable=role != TenantRole.OWNER,
        categories=build_categories(role, grants),
    )
