from __future__ import annotations

import uuid
from typing import Callable, Optional, Sequence

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentdesk.api.deps.auth import get_current_user
from agentdesk.auth.permissions import PermissionLike, parse_permissions
from agentdesk.auth.resolver import PermissionResolver
from agentdesk.auth.session import PermissionSession
from agentdesk.crud import authorization as authz_crud
from agentdesk.db.session import get_db, get_sessionmaker
from agentdesk.models.user import User


async def get_permission_session(
    user: User = Depends(get_current_user),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
) -> PermissionSession:
    """
    One permission session per request: a fresh snapshot for the caller,
    read as a single batch (super-admin flag, membership, grants).
    """
    session = PermissionSession(authz_crud.SqlAuthorizationStore(sessionmaker))
    await session.refresh_with_retry(user.id)
    return session


async def get_permission_resolver(
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
    session: PermissionSession = Depends(get_permission_session),
    db: AsyncSession = Depends(get_db),
) -> PermissionResolver:
    """
    Resolve the caller's decision surface.

    A super admin may send X-Tenant-Id to view that tenant; for everyone else
    the header is ignored and the effective tenant is their own membership.
    """
    if x_tenant_id and session.snapshot.is_super_admin:
        try:
            tenant_uuid = uuid.UUID(x_tenant_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="X-Tenant-Id must be a valid UUID",
            )

        tenant = await authz_crud.get_tenant(db, tenant_uuid)
        if not tenant:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")

        session.tenant_context.select_tenant(str(tenant.id), tenant.name)

    return session.resolver


def require_permissions(
    required: PermissionLike | Sequence[PermissionLike],
    *,
    any_of: bool = False,
) -> Callable:
    """
    Route guard over the permission resolver.

    Args:
      required: permission OR list of permissions (validated against the catalog now,
                so a typo fails at import time rather than denying at runtime)
      any_of: True => any required perm passes; False => all required perms required
    """
    required_list = [required] if isinstance(required, str) else list(required)
    perms = parse_permissions(required_list)

    async def _checker(
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> PermissionResolver:
        if resolver.lookup_failed:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={"code": "rbac_unverified", "message": "Could not verify permissions. Please retry."},
            )

        allowed = resolver.check(perms, require_all=not any_of)
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "rbac_forbidden", "message": "You do not have permission to perform this action."},
            )

        return resolver

    return _checker
