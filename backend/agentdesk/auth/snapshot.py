from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from agentdesk.auth.permissions import Permission
from agentdesk.core.roles import MembershipStatus, TenantRole


@dataclass(frozen=True)
class Membership:
    """A user's single active tenant membership, as seen by the resolver."""

    tenant_id: str
    role: Optional[TenantRole]
    status: MembershipStatus = MembershipStatus.ACTIVE


@dataclass(frozen=True)
class PermissionSnapshot:
    """
    Everything the resolver needs about one identity, read as a single batch.

    Role, grants and the super-admin flag always come from the same refresh;
    a snapshot is replaced wholesale, never patched field by field.
    """

    user_id: Optional[str] = None
    is_super_admin: bool = False
    membership: Optional[Membership] = None
    grants: FrozenSet[Permission] = field(default_factory=frozenset)

    # lifecycle indicators for the UI layer
    loading: bool = False
    lookup_failed: bool = False

    def __post_init__(self) -> None:
        if self.membership is None and self.grants:
            raise ValueError("grants require a membership tenant")
        if self.membership is not None and self.membership.status != MembershipStatus.ACTIVE:
            raise ValueError("only active memberships participate in authorization")

    @property
    def role(self) -> Optional[TenantRole]:
        return self.membership.role if self.membership else None

    @property
    def tenant_id(self) -> Optional[str]:
        return self.membership.tenant_id if self.membership else None

    @classmethod
    def anonymous(cls) -> "PermissionSnapshot":
        return cls()

    @classmethod
    def pending(cls, user_id: str) -> "PermissionSnapshot":
        """Deny-everything placeholder while the first refresh is in flight."""
        return cls(user_id=user_id, loading=True)

    @classmethod
    def deny(cls, user_id: Optional[str]) -> "PermissionSnapshot":
        """Conservative state after a failed lookup: no role, no grants, no bypass."""
        return cls(user_id=user_id, lookup_failed=True)
