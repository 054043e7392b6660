"""Super-admin "view as tenant" selection.

Two states: Own (no selection) and Impersonating(tenant_id, tenant_name).
The selector only decides *which* tenant's data is read; authorization for
those reads comes from the super-admin bypass in the resolver.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from agentdesk.auth.snapshot import PermissionSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantSelection:
    tenant_id: str
    tenant_name: str


class TenantContextSelector:
    def __init__(self, snapshot_provider: Callable[[], PermissionSnapshot]):
        self._snapshot = snapshot_provider
        self._selection: Optional[TenantSelection] = None

    @property
    def selection(self) -> Optional[TenantSelection]:
        # A selection left over from a super-admin identity never applies to anyone else.
        if self._selection is not None and not self._snapshot().is_super_admin:
            return None
        return self._selection

    @property
    def is_impersonating(self) -> bool:
        return self.selection is not None

    @property
    def effective_tenant_id(self) -> Optional[str]:
        """The tenant every tenant-scoped read must use."""
        selection = self.selection
        if selection is not None:
            return selection.tenant_id
        return self._snapshot().tenant_id

    def select_tenant(self, tenant_id: str, tenant_name: str) -> bool:
        """
        Own -> Impersonating, or switch target while impersonating.
        Silently ignored unless the current identity is a confirmed super admin.
        """
        snapshot = self._snapshot()
        if not snapshot.is_super_admin:
            logger.warning("Ignoring tenant selection for non-super-admin user %s", snapshot.user_id)
            return False

        self._selection = TenantSelection(tenant_id=str(tenant_id), tenant_name=tenant_name)
        logger.info("Super admin %s now viewing tenant %s", snapshot.user_id, tenant_id)
        return True

    def clear_selection(self) -> None:
        """Impersonating -> Own. Idempotent."""
        if self._selection is not None:
            logger.info("Super admin %s returned to own tenant", self._snapshot().user_id)
        self._selection = None
