"""Identity/session lifecycle around the pure PermissionResolver.

A refresh reads the super-admin flag, the active membership and the grants
for that membership as one batch and publishes a single immutable
PermissionSnapshot. Each refresh carries a monotonic request id; results of
a refresh that is no longer the latest are dropped, so the session always
reflects the most recently requested identity.

Failure posture: any LookupFailed publishes the deny snapshot (no role, no
grants, no bypass) flagged `lookup_failed` until a later refresh succeeds.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

from agentdesk.auth.membership import resolve_membership
from agentdesk.auth.resolver import PermissionResolver
from agentdesk.auth.snapshot import PermissionSnapshot
from agentdesk.auth.store import AuthorizationStore
from agentdesk.auth.tenant_context import TenantContextSelector
from agentdesk.core.config import settings
from agentdesk.core.errors import LookupFailed, StaleRefreshDiscarded

logger = logging.getLogger(__name__)


async def load_snapshot(store: AuthorizationStore, user_id: str) -> PermissionSnapshot:
    resolution = await resolve_membership(store, user_id)

    grants = frozenset()
    if resolution.membership is not None:
        grants = await store.list_grants(user_id, resolution.membership.tenant_id)

    return PermissionSnapshot(
        user_id=user_id,
        is_super_admin=resolution.is_super_admin,
        membership=resolution.membership,
        grants=frozenset(grants),
    )


class PermissionSession:
    def __init__(
        self,
        store: AuthorizationStore,
        *,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._max_attempts = max_attempts or settings.PERMISSIONS_REFRESH_MAX_ATTEMPTS
        self._backoff = (
            settings.PERMISSIONS_REFRESH_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self._backoff_max = (
            settings.PERMISSIONS_REFRESH_BACKOFF_MAX_SECONDS
            if backoff_max_seconds is None
            else backoff_max_seconds
        )
        self._sleep = sleep

        self._latest_request_id = 0
        self._identity: Optional[str] = None
        self._snapshot = PermissionSnapshot.anonymous()
        self.tenant_context = TenantContextSelector(lambda: self._snapshot)

    # ---------------------------------------------------------
    # Read side
    # ---------------------------------------------------------
    @property
    def snapshot(self) -> PermissionSnapshot:
        return self._snapshot

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    @property
    def resolver(self) -> PermissionResolver:
        return PermissionResolver(self._snapshot, self.tenant_context.selection)

    # ---------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------
    async def refresh(self, user_id) -> PermissionSnapshot:
        """Single attempt; a failure leaves the deny snapshot published."""
        return await self._refresh(str(user_id), attempts=1)

    async def refresh_with_retry(self, user_id) -> PermissionSnapshot:
        """Retry LookupFailed with exponential backoff; stops early if superseded."""
        return await self._refresh(str(user_id), attempts=self._max_attempts)

    def logout(self) -> None:
        self._latest_request_id += 1  # anything still in flight is now stale
        self._identity = None
        self.tenant_context.clear_selection()
        self._publish(PermissionSnapshot.anonymous())

    # ---------------------------------------------------------
    # Internals
    # ---------------------------------------------------------
    def _begin(self, user_id: str) -> int:
        self._latest_request_id += 1
        if user_id != self._identity:
            self._identity = user_id
            self.tenant_context.clear_selection()
            self._publish(PermissionSnapshot.pending(user_id))
        return self._latest_request_id

    def _ensure_current(self, request_id: int) -> None:
        if request_id != self._latest_request_id:
            raise StaleRefreshDiscarded(request_id, self._latest_request_id)

    def _publish(self, snapshot: PermissionSnapshot) -> None:
        self._snapshot = snapshot
        # A failed lookup is not a verdict on super-admin status; keep the selection for the retry.
        if not snapshot.is_super_admin and not snapshot.lookup_failed:
            self.tenant_context.clear_selection()
        logger.debug(
            "Published permission snapshot for user %s (super_admin=%s, tenant=%s, lookup_failed=%s)",
            snapshot.user_id,
            snapshot.is_super_admin,
            snapshot.tenant_id,
            snapshot.lookup_failed,
        )

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self._backoff_max, self._backoff * (2 ** (attempt - 1)))
        # jitter keeps many sessions from retrying in lockstep
        return delay * (0.5 + random.random() / 2)

    async def _attempt(self, request_id: int, user_id: str) -> PermissionSnapshot:
        try:
            snapshot = await load_snapshot(self._store, user_id)
        except LookupFailed:
            self._ensure_current(request_id)
            self._publish(PermissionSnapshot.deny(user_id))
            raise
        self._ensure_current(request_id)
        self._publish(snapshot)
        return snapshot

    async def _refresh(self, user_id: str, attempts: int) -> PermissionSnapshot:
        request_id = self._begin(user_id)

        for attempt in range(1, attempts + 1):
            try:
                return await self._attempt(request_id, user_id)
            except StaleRefreshDiscarded as exc:
                logger.debug("Discarded stale permission refresh: %s", exc)
                return self._snapshot
            except LookupFailed as exc:
                logger.warning(
                    "Permission lookup '%s' failed for user %s (attempt %d/%d)",
                    exc.operation,
                    user_id,
                    attempt,
                    attempts,
                )
                if attempt == attempts:
                    break
                await self._sleep(self._backoff_delay(attempt))
                if request_id != self._latest_request_id:
                    logger.debug("Abandoning retries for superseded refresh #%d", request_id)
                    break

        return self._snapshot
