from __future__ import annotations

from typing import FrozenSet, Optional, Protocol

from agentdesk.auth.permissions import Permission
from agentdesk.auth.snapshot import Membership


class AuthorizationStore(Protocol):
    """
    Read side of the persistence layer used by a permission refresh.

    Implementations raise LookupFailed on infrastructure errors and return
    empty results (False / None / empty set) when nothing is recorded.
    """

    async def get_super_admin_status(self, user_id: str) -> bool: ...

    async def get_active_membership(self, user_id: str) -> Optional[Membership]: ...

    async def list_grants(self, user_id: str, tenant_id: str) -> FrozenSet[Permission]: ...
