from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from agentdesk.auth.permissions import Permission
from agentdesk.auth.resolver import PermissionResolver
from agentdesk.auth.session import PermissionSession
from agentdesk.auth.snapshot import Membership, PermissionSnapshot
from agentdesk.auth.tenant_context import TenantSelection
from agentdesk.core.errors import Forbidden, UnknownPermission
from agentdesk.core.roles import MembershipStatus, TenantRole
from agentdesk.crud import authorization as authz_crud
from agentdesk.models.super_admin import SuperAdmin
from agentdesk.models.tenant import Tenant
from agentdesk.models.tenant_membership import TenantMembership
from agentdesk.models.user import User
from agentdesk.models.user_permission import UserPermission
from agentdesk.services import grant_editor


# ---------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------
async def create_user(db, email: str, full_name: str = None) -> User:
    user = User(email=email, full_name=full_name)
    db.add(user)
    await db.flush()
    return user


async def create_tenant(db, name: str, slug: str) -> Tenant:
    tenant = Tenant(name=name, slug=slug)
    db.add(tenant)
    await db.flush()
    return tenant


async def add_member(db, tenant, user, role: TenantRole, status=MembershipStatus.ACTIVE, created_at=None):
    membership = TenantMembership(
        tenant_id=tenant.id,
        user_id=user.id,
        role=role.value,
        status=status.value,
    )
    if created_at is not None:
        membership.created_at = created_at
    db.add(membership)
    await db.flush()
    return membership


async def add_grant(db, tenant, user, permission: str):
    db.add(UserPermission(user_id=user.id, tenant_id=tenant.id, permission=permission))
    await db.flush()


async def stored_grants(db, tenant, user):
    res = await db.execute(
        select(UserPermission.permission)
        .where(UserPermission.user_id == user.id)
        .where(UserPermission.tenant_id == tenant.id)
    )
    return set(res.scalars().all())


def actor_for(user, tenant, role) -> PermissionResolver:
    return PermissionResolver(
        PermissionSnapshot(
            user_id=str(user.id),
            membership=Membership(tenant_id=str(tenant.id), role=role),
        )
    )


# ---------------------------------------------------------
# Snapshot reads
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_only_active_memberships_are_returned(db):
    user = await create_user(db, "pending@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, user, TenantRole.ADMIN, status=MembershipStatus.PENDING)
    await db.commit()

    assert await authz_crud.get_active_membership(db, user.id) is None


@pytest.mark.asyncio
async def test_earliest_active_membership_wins(db):
    user = await create_user(db, "multi@example.com")
    first = await create_tenant(db, "First", "first")
    second = await create_tenant(db, "Second", "second")
    inactive = await create_tenant(db, "Gone", "gone")
    now = datetime.now(timezone.utc)
    await add_member(db, inactive, user, TenantRole.OWNER, status=MembershipStatus.INACTIVE, created_at=now - timedelta(days=3))
    await add_member(db, second, user, TenantRole.VIEWER, created_at=now - timedelta(days=1))
    await add_member(db, first, user, TenantRole.ADMIN, created_at=now - timedelta(days=2))
    await db.commit()

    membership = await authz_crud.get_active_membership(db, user.id)

    assert membership == Membership(tenant_id=str(first.id), role=TenantRole.ADMIN)


@pytest.mark.asyncio
async def test_super_admin_status(db):
    root = await create_user(db, "root@example.com")
    plain = await create_user(db, "plain@example.com")
    db.add(SuperAdmin(user_id=root.id))
    await db.commit()

    assert await authz_crud.get_super_admin_status(db, root.id) is True
    assert await authz_crud.get_super_admin_status(db, str(plain.id)) is False


@pytest.mark.asyncio
async def test_unknown_stored_grants_are_skipped(db):
    user = await create_user(db, "legacy@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, user, TenantRole.MEMBER)
    await add_grant(db, tenant, user, "team.manage")
    await add_grant(db, tenant, user, "legacy.superpower")
    await db.commit()

    grants = await authz_crud.list_grants(db, user.id, tenant.id)

    assert grants == {Permission.TEAM_MANAGE}


@pytest.mark.asyncio
async def test_list_grants_admin_groups_by_user(db):
    tenant = await create_tenant(db, "Acme", "acme")
    other_tenant = await create_tenant(db, "Other", "other")
    alice = await create_user(db, "alice@example.com")
    bob = await create_user(db, "bob@example.com")
    await add_grant(db, tenant, alice, "team.manage")
    await add_grant(db, tenant, alice, "analytics.export")
    await add_grant(db, tenant, bob, "settings.edit")
    await add_grant(db, other_tenant, bob, "team.remove")
    await db.commit()

    by_user = await authz_crud.list_grants_admin(db, tenant.id)

    assert by_user == {
        str(alice.id): {Permission.TEAM_MANAGE, Permission.ANALYTICS_EXPORT},
        str(bob.id): {Permission.SETTINGS_EDIT},
    }


# ---------------------------------------------------------
# Grant replacement
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_replace_grants_sets_exactly_the_requested_set(db):
    admin = await create_user(db, "admin@example.com")
    member = await create_user(db, "member@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, admin, TenantRole.ADMIN)
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await add_grant(db, tenant, member, "team.manage")
    await add_grant(db, tenant, member, "analytics.export")
    await db.commit()

    result = await authz_crud.replace_grants(
        db, member.id, tenant.id, ["analytics.export", "settings.edit"], granted_by=admin.id
    )

    assert result == {Permission.ANALYTICS_EXPORT, Permission.SETTINGS_EDIT}
    assert await stored_grants(db, tenant, member) == {"analytics.export", "settings.edit"}

    again = await authz_crud.replace_grants(db, member.id, tenant.id, ["settings.edit", "analytics.export"])
    assert again == result
    assert await stored_grants(db, tenant, member) == {"analytics.export", "settings.edit"}

    await authz_crud.replace_grants(db, member.id, tenant.id, [])
    assert await stored_grants(db, tenant, member) == set()


@pytest.mark.asyncio
async def test_replace_grants_records_granting_user(db):
    admin = await create_user(db, "admin@example.com")
    member = await create_user(db, "member@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await db.commit()

    await authz_crud.replace_grants(db, member.id, tenant.id, ["team.invite"], granted_by=str(admin.id))

    row = (await db.execute(select(UserPermission))).scalar_one()
    assert row.granted_by == admin.id


@pytest.mark.asyncio
async def test_owner_grants_cannot_be_edited(db):
    owner = await create_user(db, "owner@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, owner, TenantRole.OWNER)
    await add_grant(db, tenant, owner, "analytics.export")
    await db.commit()

    with pytest.raises(Forbidden):
        await authz_crud.replace_grants(db, owner.id, tenant.id, ["analytics.view"])

    assert await stored_grants(db, tenant, owner) == {"analytics.export"}


@pytest.mark.asyncio
async def test_unknown_permission_leaves_rows_untouched(db):
    member = await create_user(db, "member@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await add_grant(db, tenant, member, "team.manage")
    await db.commit()

    with pytest.raises(UnknownPermission):
        await authz_crud.replace_grants(db, member.id, tenant.id, ["team.manage", "team.destroy"])

    assert await stored_grants(db, tenant, member) == {"team.manage"}


@pytest.mark.asyncio
async def test_non_member_grants_are_rejected(db):
    outsider = await create_user(db, "outsider@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await db.commit()

    with pytest.raises(Forbidden):
        await authz_crud.replace_grants(db, outsider.id, tenant.id, ["agents.view"])


# ---------------------------------------------------------
# Super-admin tenant listing
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_list_tenants_for_super_admin(db):
    root = await create_user(db, "root@example.com")
    plain = await create_user(db, "plain@example.com")
    db.add(SuperAdmin(user_id=root.id))
    await create_tenant(db, "Zeta", "zeta")
    await create_tenant(db, "Alpha", "alpha")
    await db.commit()

    tenants = await authz_crud.list_tenants_for_super_admin(db, root.id)
    assert [t.name for t in tenants] == ["Alpha", "Zeta"]

    with pytest.raises(Forbidden):
        await authz_crud.list_tenants_for_super_admin(db, plain.id)


# ---------------------------------------------------------
# Session over the SQL store
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_session_over_sql_store_applies_grants(db, sessionmaker):
    member = await create_user(db, "member@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await add_grant(db, tenant, member, "team.manage")
    await db.commit()

    session = PermissionSession(authz_crud.SqlAuthorizationStore(sessionmaker))
    await session.refresh(member.id)

    resolver = session.resolver
    assert resolver.tenant_id == str(tenant.id)
    assert resolver.has_permission("team.manage")
    assert not resolver.has_permission("team.remove")
    assert resolver.is_member


@pytest.mark.asyncio
async def test_session_over_sql_store_for_user_without_membership(db, sessionmaker):
    root = await create_user(db, "root@example.com")
    db.add(SuperAdmin(user_id=root.id))
    await db.commit()

    session = PermissionSession(authz_crud.SqlAuthorizationStore(sessionmaker))
    snapshot = await session.refresh(str(root.id))

    assert snapshot.is_super_admin
    assert snapshot.membership is None
    assert session.resolver.has_permission("settings.billing")


# ---------------------------------------------------------
# Grant editor service
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_member_permissions_view_locks_role_permissions(db):
    admin = await create_user(db, "admin@example.com", "Ada Admin")
    member = await create_user(db, "member@example.com", "Max Member")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, admin, TenantRole.ADMIN)
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await add_grant(db, tenant, member, "team.manage")
    await db.commit()

    views = await grant_editor.list_member_permissions(db, actor_for(admin, tenant, TenantRole.ADMIN))
    by_email = {v.email: v for v in views}
    view = by_email["member@example.com"]

    assert view.editable
    toggles = {t.permission: t for c in view.categories for t in c.permissions}
    assert toggles[Permission.AGENTS_VIEW].locked
    assert toggles[Permission.AGENTS_VIEW].role_badge == TenantRole.MEMBER
    assert toggles[Permission.TEAM_MANAGE].granted
    assert not toggles[Permission.TEAM_MANAGE].locked
    assert toggles[Permission.TEAM_MANAGE].enabled
    assert not toggles[Permission.TEAM_REMOVE].enabled


@pytest.mark.asyncio
async def test_member_permissions_search(db):
    admin = await create_user(db, "admin@example.com", "Ada Admin")
    member = await create_user(db, "member@example.com", "Max Member")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, admin, TenantRole.ADMIN)
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await db.commit()
    actor = actor_for(admin, tenant, TenantRole.ADMIN)

    by_name = await grant_editor.list_member_permissions(db, actor, search="max")
    assert [v.user_id for v in by_name] == [str(member.id)]

    by_id = await grant_editor.list_member_permissions(db, actor, search=str(admin.id)[:8])
    assert str(admin.id) in [v.user_id for v in by_id]


@pytest.mark.asyncio
async def test_members_cannot_use_the_grant_editor(db):
    member = await create_user(db, "member@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await db.commit()
    actor = actor_for(member, tenant, TenantRole.MEMBER)

    with pytest.raises(Forbidden):
        await grant_editor.list_member_permissions(db, actor)
    with pytest.raises(Forbidden):
        await grant_editor.save_member_grants(db, actor, member.id, ["team.manage"])


@pytest.mark.asyncio
async def test_save_member_grants_returns_fresh_view(db):
    owner = await create_user(db, "owner@example.com")
    member = await create_user(db, "member@example.com", "Max Member")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, owner, TenantRole.OWNER)
    await add_member(db, tenant, member, TenantRole.VIEWER)
    await db.commit()

    view = await grant_editor.save_member_grants(
        db, actor_for(owner, tenant, TenantRole.OWNER), str(member.id), ["analytics.export"]
    )

    assert view.role == TenantRole.VIEWER
    assert view.grants == {Permission.ANALYTICS_EXPORT}
    assert view.full_name == "Max Member"


@pytest.mark.asyncio
async def test_super_admin_edits_grants_in_selected_tenant(db):
    root = await create_user(db, "root@example.com")
    member = await create_user(db, "member@example.com")
    tenant = await create_tenant(db, "Acme", "acme")
    await add_member(db, tenant, member, TenantRole.MEMBER)
    await db.commit()

    actor = PermissionResolver(
        PermissionSnapshot(user_id=str(root.id), is_super_admin=True),
        TenantSelection(str(tenant.id), "Acme"),
    )
    view = await grant_editor.save_member_grants(db, actor, member.id, ["team.manage"])

    assert view.grants == {Permission.TEAM_MANAGE}
    assert await stored_grants(db, tenant, member) == {"team.manage"}


def test_uuid_helper_accepts_strings_and_uuids():
    value = uuid.uuid4()
    assert authz_crud._uuid(value) is value
    assert authz_crud._uuid(str(value)) == value
