# agentdesk/core/roles.py

import enum
from typing import Optional


class TenantRole(str, enum.Enum):
    OWNER = "owner"     # creator; access is role-derived only, never edited via grants
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class MembershipStatus(str, enum.Enum):
    PENDING = "pending"    # invited, not yet accepted
    ACTIVE = "active"      # the only status that participates in authorization
    INACTIVE = "inactive"  # removed from the tenant


ROLE_LABELS = {
    TenantRole.OWNER: "Owner",
    TenantRole.ADMIN: "Administrator",
    TenantRole.MEMBER: "Member",
    TenantRole.VIEWER: "Viewer",
}


def parse_role(value: Optional[str]) -> Optional[TenantRole]:
    """Stored role string -> TenantRole; anything unrecognised resolves to no role."""
    if value is None:
        return None
    try:
        return TenantRole((value or "").strip().lower())
    except ValueError:
        return None
