"""Permission catalog for the agentdesk dashboard.

Design:
  - The catalog is a closed enum; every permission check goes through
    `parse_permission()`, so a typo fails loudly with UnknownPermission
    instead of silently denying.
  - Each role has a fixed DEFAULT permission set (defined here, not in DB).
  - Per-user grants (`user_permissions` rows) are additive on top of the
    role baseline. There is no explicit deny.

Permission naming: `<resource>.<action>`
"""

from __future__ import annotations

import enum
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Tuple, Union

from agentdesk.core.errors import UnknownPermission
from agentdesk.core.roles import TenantRole

CATALOG_VERSION = 1


class Permission(str, enum.Enum):
    # agents.*
    AGENTS_VIEW = "agents.view"
    AGENTS_CREATE = "agents.create"
    AGENTS_EDIT = "agents.edit"
    AGENTS_DELETE = "agents.delete"

    # conversations.*
    CONVERSATIONS_VIEW = "conversations.view"
    CONVERSATIONS_MANAGE = "conversations.manage"
    CONVERSATIONS_VIEW_PHONE = "conversations.view_phone"

    # analytics.*
    ANALYTICS_VIEW = "analytics.view"
    ANALYTICS_EXPORT = "analytics.export"

    # team.*
    TEAM_VIEW = "team.view"
    TEAM_INVITE = "team.invite"
    TEAM_MANAGE = "team.manage"
    TEAM_REMOVE = "team.remove"

    # settings.*
    SETTINGS_VIEW = "settings.view"
    SETTINGS_EDIT = "settings.edit"
    SETTINGS_BILLING = "settings.billing"

    # api_keys.*
    API_KEYS_VIEW = "api_keys.view"
    API_KEYS_CREATE = "api_keys.create"
    API_KEYS_DELETE = "api_keys.delete"

    # activity_logs.*
    ACTIVITY_LOGS_VIEW = "activity_logs.view"
    ACTIVITY_LOGS_VIEW_SENSITIVE = "activity_logs.view_sensitive"

    # security.*
    SECURITY_VIEW = "security.view"
    SECURITY_MANAGE = "security.manage"

    # notifications.*
    NOTIFICATIONS_VIEW = "notifications.view"
    NOTIFICATIONS_MANAGE = "notifications.manage"


PermissionLike = Union[Permission, str]

ALL_PERMISSIONS: FrozenSet[Permission] = frozenset(Permission)

P = Permission

ROLE_PERMISSIONS: Mapping[TenantRole, FrozenSet[Permission]] = MappingProxyType(
    {
        TenantRole.OWNER: ALL_PERMISSIONS,
        # everything except billing and team removal
        TenantRole.ADMIN: frozenset(
            {
                P.AGENTS_VIEW, P.AGENTS_CREATE, P.AGENTS_EDIT, P.AGENTS_DELETE,
                P.CONVERSATIONS_VIEW, P.CONVERSATIONS_MANAGE, P.CONVERSATIONS_VIEW_PHONE,
                P.ANALYTICS_VIEW, P.ANALYTICS_EXPORT,
                P.TEAM_VIEW, P.TEAM_INVITE, P.TEAM_MANAGE,
                P.SETTINGS_VIEW, P.SETTINGS_EDIT,
                P.API_KEYS_VIEW, P.API_KEYS_CREATE, P.API_KEYS_DELETE,
                P.ACTIVITY_LOGS_VIEW, P.ACTIVITY_LOGS_VIEW_SENSITIVE,
                P.SECURITY_VIEW, P.SECURITY_MANAGE,
                P.NOTIFICATIONS_VIEW, P.NOTIFICATIONS_MANAGE,
            }
        ),
        # day-to-day operations
        TenantRole.MEMBER: frozenset(
            {
                P.AGENTS_VIEW, P.AGENTS_CREATE, P.AGENTS_EDIT,
                P.CONVERSATIONS_VIEW, P.CONVERSATIONS_MANAGE,
                P.ANALYTICS_VIEW,
                P.TEAM_VIEW,
                P.SETTINGS_VIEW,
                P.ACTIVITY_LOGS_VIEW,
                P.NOTIFICATIONS_VIEW,
            }
        ),
        # read-only
        TenantRole.VIEWER: frozenset(
            {
                P.AGENTS_VIEW,
                P.CONVERSATIONS_VIEW,
                P.ANALYTICS_VIEW,
                P.TEAM_VIEW,
                P.NOTIFICATIONS_VIEW,
            }
        ),
    }
)

# Capability -> permissions, any of which grants the capability.
CAPABILITIES: Mapping[str, FrozenSet[Permission]] = MappingProxyType(
    {
        "can_manage_team": frozenset({P.TEAM_INVITE, P.TEAM_MANAGE, P.TEAM_REMOVE}),
        "can_manage_settings": frozenset({P.SETTINGS_EDIT}),
        "can_manage_agents": frozenset({P.AGENTS_CREATE, P.AGENTS_EDIT, P.AGENTS_DELETE}),
        "can_view_sensitive_data": frozenset({P.ACTIVITY_LOGS_VIEW_SENSITIVE}),
    }
)

# Editor layout: (category, ((permission, label), ...))
PERMISSION_CATEGORIES: Tuple[Tuple[str, Tuple[Tuple[Permission, str], ...]], ...] = (
    ("Agents", (
        (P.AGENTS_VIEW, "View agents"),
        (P.AGENTS_CREATE, "Create agents"),
        (P.AGENTS_EDIT, "Edit agents"),
        (P.AGENTS_DELETE, "Delete agents"),
    )),
    ("Conversations", (
        (P.CONVERSATIONS_VIEW, "View conversations"),
        (P.CONVERSATIONS_MANAGE, "Manage conversations"),
        (P.CONVERSATIONS_VIEW_PHONE, "See full phone numbers"),
    )),
    ("Analytics", (
        (P.ANALYTICS_VIEW, "View analytics"),
        (P.ANALYTICS_EXPORT, "Export data"),
    )),
    ("Team", (
        (P.TEAM_VIEW, "View team"),
        (P.TEAM_INVITE, "Invite members"),
        (P.TEAM_MANAGE, "Manage members"),
        (P.TEAM_REMOVE, "Remove members"),
    )),
    ("Settings", (
        (P.SETTINGS_VIEW, "View settings"),
        (P.SETTINGS_EDIT, "Edit settings"),
        (P.SETTINGS_BILLING, "Manage billing"),
    )),
    ("API Keys", (
        (P.API_KEYS_VIEW, "View API keys"),
        (P.API_KEYS_CREATE, "Create API keys"),
        (P.API_KEYS_DELETE, "Revoke API keys"),
    )),
    ("Logs", (
        (P.ACTIVITY_LOGS_VIEW, "View activity logs"),
        (P.ACTIVITY_LOGS_VIEW_SENSITIVE, "See sensitive data"),
    )),
    ("Security", (
        (P.SECURITY_VIEW, "View security"),
        (P.SECURITY_MANAGE, "Manage security"),
    )),
    ("Notifications", (
        (P.NOTIFICATIONS_VIEW, "View notifications"),
        (P.NOTIFICATIONS_MANAGE, "Manage notifications"),
    )),
)


def parse_permission(value: PermissionLike) -> Permission:
    """Return the catalog member for `value`; raise UnknownPermission otherwise."""
    if isinstance(value, Permission):
        return value
    if not isinstance(value, str):
        raise UnknownPermission(value)
    try:
        return Permission(value.strip())
    except ValueError:
        raise UnknownPermission(value) from None


def parse_permissions(values: Iterable[PermissionLike] | None) -> FrozenSet[Permission]:
    if not values:
        return frozenset()
    return frozenset(parse_permission(v) for v in values)


def role_permissions(role: TenantRole | None) -> FrozenSet[Permission]:
    if role is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(role, frozenset())


def _check_catalog() -> None:
    categorised = [p for _, perms in PERMISSION_CATEGORIES for p, _ in perms]
    if len(categorised) != len(set(categorised)) or set(categorised) != ALL_PERMISSIONS:
        raise RuntimeError("PERMISSION_CATEGORIES must list every catalog permission exactly once")
    if set(ROLE_PERMISSIONS) != set(TenantRole):
        raise RuntimeError("ROLE_PERMISSIONS must define every tenant role")


_check_catalog()
