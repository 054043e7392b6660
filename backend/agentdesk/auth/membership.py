from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from agentdesk.auth.snapshot import Membership
from agentdesk.auth.store import AuthorizationStore


@dataclass(frozen=True)
class MembershipResolution:
    is_super_admin: bool
    membership: Optional[Membership]


async def resolve_membership(store: AuthorizationStore, user_id: str) -> MembershipResolution:
    """
    Read the super-admin flag and the single active membership together.

    No membership is a normal result (membership=None); the super-admin flag
    is valid on its own either way. Infrastructure errors surface as
    LookupFailed and are never turned into an empty result here. When one
    read fails the other is cancelled, so the pair fails as a unit.
    """
    reads = (
        asyncio.ensure_future(store.get_super_admin_status(user_id)),
        asyncio.ensure_future(store.get_active_membership(user_id)),
    )
    try:
        is_super_admin, membership = await asyncio.gather(*reads)
    except BaseException:
        for task in reads:
            task.cancel()
        await asyncio.gather(*reads, return_exceptions=True)
        raise
    return MembershipResolution(is_super_admin=bool(is_super_admin), membership=membership)
