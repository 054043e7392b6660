from __future__ import annotations

from agentdesk.auth.snapshot import Membership, PermissionSnapshot
from agentdesk.auth.tenant_context import TenantContextSelector, TenantSelection
from agentdesk.core.roles import TenantRole


class Holder:
    def __init__(self, snapshot: PermissionSnapshot):
        self.snapshot = snapshot


def make_selector(super_admin: bool, tenant_id=None, role=TenantRole.MEMBER):
    membership = Membership(tenant_id=tenant_id, role=role) if tenant_id else None
    holder = Holder(PermissionSnapshot(user_id="u-1", is_super_admin=super_admin, membership=membership))
    return holder, TenantContextSelector(lambda: holder.snapshot)


def test_non_super_admin_selection_is_a_no_op():
    _, selector = make_selector(super_admin=False, tenant_id="t-own")

    assert selector.select_tenant("t-other", "Other") is False
    assert selector.effective_tenant_id == "t-own"
    assert not selector.is_impersonating
    assert selector.selection is None


def test_super_admin_selects_switches_and_clears():
    _, selector = make_selector(super_admin=True, tenant_id="t-own")
    assert selector.effective_tenant_id == "t-own"

    assert selector.select_tenant("t-1", "One")
    assert selector.effective_tenant_id == "t-1"
    assert selector.selection == TenantSelection("t-1", "One")

    assert selector.select_tenant("t-2", "Two")
    assert selector.effective_tenant_id == "t-2"

    selector.clear_selection()
    assert selector.effective_tenant_id == "t-own"
    assert not selector.is_impersonating

    selector.clear_selection()
    assert selector.effective_tenant_id == "t-own"


def test_super_admin_without_membership_has_no_own_tenant():
    _, selector = make_selector(super_admin=True)
    assert selector.effective_tenant_id is None

    selector.select_tenant("t-42", "Acme")
    assert selector.effective_tenant_id == "t-42"


def test_selection_stops_applying_when_identity_loses_super_admin():
    holder, selector = make_selector(super_admin=True, tenant_id="t-own")
    selector.select_tenant("t-9", "Nine")

    holder.snapshot = PermissionSnapshot(
        user_id="u-1",
        is_super_admin=False,
        membership=Membership(tenant_id="t-own", role=TenantRole.MEMBER),
    )
    assert selector.effective_tenant_id == "t-own"
    assert not selector.is_impersonating
