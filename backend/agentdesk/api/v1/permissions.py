# agentdesk/api/v1/permissions.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agentdesk.api.deps.auth import get_current_user
from agentdesk.api.deps.permissions import get_permission_resolver, require_permissions
from agentdesk.auth.permissions import Permission
from agentdesk.auth.resolver import PermissionResolver
from agentdesk.db.session import get_db
from agentdesk.models.user import User
from agentdesk.schemas.permissions import (
    CatalogOut,
    GrantsUpdate,
    MemberPermissionsOut,
    PermissionCheckOut,
    PermissionSurfaceOut,
)
from agentdesk.services import grant_editor

router = APIRouter(prefix="/permissions", tags=["permissions"])


# ---------------------------------------------------------
# Decision surface for the current identity
# ---------------------------------------------------------
@router.get("/me", response_model=PermissionSurfaceOut)
async def my_permissions(
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> PermissionSurfaceOut:
    """
    Everything route guards and UI conditionals need: role identity,
    capability flags, effective tenant and the effective permission list.
    """
    return PermissionSurfaceOut.from_resolver(resolver)


@router.get("/check", response_model=PermissionCheckOut)
async def check_permissions(
    permission: List[str] = Query(default=[]),
    require_all: bool = False,
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> PermissionCheckOut:
    # Unknown keys raise UnknownPermission -> 400.
    allowed = resolver.check(permission, require_all=require_all)
    return PermissionCheckOut(allowed=allowed, require_all=require_all, permissions=permission)


@router.get("/catalog", response_model=CatalogOut)
async def permission_catalog(_user: User = Depends(get_current_user)) -> CatalogOut:
    return CatalogOut.build()


# ---------------------------------------------------------
# Granular grant editor (owner / admin)
# ---------------------------------------------------------
@router.get(
    "/users",
    response_model=List[MemberPermissionsOut],
    dependencies=[Depends(require_permissions(Permission.TEAM_VIEW))],
)
async def list_member_permissions(
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> List[MemberPermissionsOut]:
    views = await grant_editor.list_member_permissions(db, resolver, search=search)
    return [MemberPermissionsOut.from_view(v) for v in views]


@router.put(
    "/users/{user_id}",
    response_model=MemberPermissionsOut,
    dependencies=[Depends(require_permissions(Permission.TEAM_MANAGE))],
)
async def replace_member_grants(
    user_id: uuid.UUID,
    payload: GrantsUpdate,
    db: AsyncSession = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> MemberPermissionsOut:
    """
    Replace the member's full grant set in the effective tenant.
    Owners cannot be edited (403); unknown permission keys are rejected (400).
    """
    view = await grant_editor.save_member_grants(db, resolver, user_id, payload.permissions)
    return MemberPermissionsOut.from_view(view)
