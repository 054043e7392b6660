# agentdesk/crud/authorization.py
from __future__ import annotations

import logging
import uuid
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentdesk.auth.permissions import Permission, PermissionLike, parse_permissions
from agentdesk.auth.snapshot import Membership
from agentdesk.core.errors import Forbidden, LookupFailed
from agentdesk.core.roles import MembershipStatus, TenantRole, parse_role
from agentdesk.models.super_admin import SuperAdmin
from agentdesk.models.tenant import Tenant
from agentdesk.models.tenant_membership import TenantMembership
from agentdesk.models.user import User
from agentdesk.models.user_permission import UserPermission

logger = logging.getLogger(__name__)


def _uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


async def _execute(db: AsyncSession, stmt, operation: str):
    try:
        return await db.execute(stmt)
    except SQLAlchemyError as exc:
        raise LookupFailed(operation, exc) from exc


def _known_grants(rows: Iterable[str], *, user_id, tenant_id) -> FrozenSet[Permission]:
    """Stored strings outside the catalog are skipped: storage can never widen access."""
    known = set()
    for value in rows:
        try:
            known.add(Permission(value))
        except ValueError:
            logger.warning(
                "Ignoring unknown stored permission %r for user %s in tenant %s",
                value,
                user_id,
                tenant_id,
            )
    return frozenset(known)


# ---------------------------------------------------------
# Snapshot reads
# ---------------------------------------------------------
async def get_super_admin_status(db: AsyncSession, user_id) -> bool:
    stmt = select(SuperAdmin.user_id).where(SuperAdmin.user_id == _uuid(user_id))
    res = await _execute(db, stmt, "get_super_admin_status")
    return res.scalar_one_or_none() is not None


async def get_active_membership(db: AsyncSession, user_id) -> Optional[Membership]:
    """
    The user's single active membership, or None.
    With several active memberships the earliest-created one wins.
    """
    stmt = (
        select(TenantMembership)
        .where(TenantMembership.user_id == _uuid(user_id))
        .where(TenantMembership.status == MembershipStatus.ACTIVE.value)
        .order_by(TenantMembership.created_at.asc(), TenantMembership.id.asc())
        .limit(1)
    )
    res = await _execute(db, stmt, "get_active_membership")
    row = res.scalar_one_or_none()
    if row is None:
        return None
    return Membership(
        tenant_id=str(row.tenant_id),
        role=parse_role(row.role),
        status=MembershipStatus.ACTIVE,
    )


async def list_grants(db: AsyncSession, user_id, tenant_id) -> FrozenSet[Permission]:
    stmt = (
        select(UserPermission.permission)
        .where(UserPermission.user_id == _uuid(user_id))
        .where(UserPermission.tenant_id == _uuid(tenant_id))
    )
    res = await _execute(db, stmt, "list_grants")
    return _known_grants(res.scalars().all(), user_id=user_id, tenant_id=tenant_id)


# ---------------------------------------------------------
# Permissions-management reads / writes
# ---------------------------------------------------------
async def list_grants_admin(db: AsyncSession, tenant_id) -> Dict[str, FrozenSet[Permission]]:
    stmt = (
        select(UserPermission.user_id, UserPermission.permission)
        .where(UserPermission.tenant_id == _uuid(tenant_id))
    )
    res = await _execute(db, stmt, "list_grants_admin")

    by_user: Dict[str, List[str]] = {}
    for user_id, permission in res.all():
        by_user.setdefault(str(user_id), []).append(permission)

    return {
        user_id: _known_grants(perms, user_id=user_id, tenant_id=tenant_id)
        for user_id, perms in by_user.items()
    }


async def get_membership_in_tenant(db: AsyncSession, user_id, tenant_id) -> Optional[TenantMembership]:
    stmt = select(TenantMembership).where(
        TenantMembership.tenant_id == _uuid(tenant_id),
        TenantMembership.user_id == _uuid(user_id),
        TenantMembership.status == MembershipStatus.ACTIVE.value,
    )
    res = await _execute(db, stmt, "get_membership_in_tenant")
    return res.scalar_one_or_none()


async def list_tenant_members(db: AsyncSession, tenant_id) -> List[Tuple[TenantMembership, User]]:
    stmt = (
        select(TenantMembership, User)
        .join(User, User.id == TenantMembership.user_id)
        .where(TenantMembership.tenant_id == _uuid(tenant_id))
        .where(TenantMembership.status == MembershipStatus.ACTIVE.value)
        .order_by(TenantMembership.created_at.asc(), User.email.asc())
    )
    res = await _execute(db, stmt, "list_tenant_members")
    return [(m, u) for m, u in res.all()]


async def replace_grants(
    db: AsyncSession,
    user_id,
    tenant_id,
    permissions: Iterable[PermissionLike],
    *,
    granted_by=None,
) -> FrozenSet[Permission]:
    """
    Replace the full grant set for (user, tenant): delete-then-insert in one commit.

    Owners are rejected before any row is touched; their access is
    role-derived only. Unknown keys fail with UnknownPermission.
    """
    wanted = parse_permissions(list(permissions))

    membership = await get_membership_in_tenant(db, user_id, tenant_id)
    if membership is None:
        raise Forbidden("Target user is not an active member of this tenant.")
    if parse_role(membership.role) == TenantRole.OWNER:
        logger.warning("Rejected grant edit for owner %s in tenant %s", user_id, tenant_id)
        raise Forbidden("Owner permissions cannot be edited.")

    try:
        await db.execute(
            delete(UserPermission)
            .where(UserPermission.user_id == _uuid(user_id))
            .where(UserPermission.tenant_id == _uuid(tenant_id))
        )
        db.add_all(
            [
                UserPermission(
                    user_id=_uuid(user_id),
                    tenant_id=_uuid(tenant_id),
                    permission=perm.value,
                    granted_by=_uuid(granted_by) if granted_by is not None else None,
                )
                for perm in sorted(wanted, key=lambda p: p.value)
            ]
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise LookupFailed("replace_grants", exc) from exc

    logger.info(
        "Replaced grants for user %s in tenant %s (%d permissions)",
        user_id,
        tenant_id,
        len(wanted),
    )
    return wanted


async def list_tenants_for_super_admin(db: AsyncSession, user_id) -> List[Tenant]:
    if not await get_super_admin_status(db, user_id):
        raise Forbidden("Super admin access required.")

    stmt = select(Tenant).order_by(Tenant.name.asc())
    res = await _execute(db, stmt, "list_tenants_for_super_admin")
    return list(res.scalars().all())


async def get_tenant(db: AsyncSession, tenant_id) -> Optional[Tenant]:
    res = await _execute(db, select(Tenant).where(Tenant.id == _uuid(tenant_id)), "get_tenant")
    return res.scalar_one_or_none()


# ---------------------------------------------------------
# AuthorizationStore implementation
# ---------------------------------------------------------
class SqlAuthorizationStore:
    """
    Snapshot reads for PermissionSession. Each read opens its own session so
    the super-admin and membership lookups can run concurrently.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def get_super_admin_status(self, user_id: str) -> bool:
        async with self._sessionmaker() as db:
            return await get_super_admin_status(db, user_id)

    async def get_active_membership(self, user_id: str) -> Optional[Membership]:
        async with self._sessionmaker() as db:
            return await get_active_membership(db, user_id)

    async def list_grants(self, user_id: str, tenant_id: str) -> FrozenSet[Permission]:
        async with self._sessionmaker() as db:
            return await list_grants(db, user_id, tenant_id)
