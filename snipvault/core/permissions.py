"""Role and permission definitions for RBAC.

Every role's capability set is spelled out explicitly. Nothing is inherited
from a role hierarchy, so editing one role can never widen another.
SUPER_ADMIN is the exception: it is defined as every declared permission.
"""

import enum
from types import MappingProxyType
from typing import Any, FrozenSet, List, Mapping


class Role(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    USER = "USER"
    READ_ONLY = "READ_ONLY"


class Permission(str, enum.Enum):
    SNIPPET_READ_SELF = "snippet.read.self"
    SNIPPET_WRITE_SELF = "snippet.write.self"
    SNIPPET_DELETE_SELF = "snippet.delete.self"
    SNIPPET_PUBLIC_PUBLISH = "snippet.public.publish"
    COMMUNITY_VIEW_PUBLIC = "community.view.public"
    ADMIN_PANEL_ACCESS = "admin.panel.access"
    ADMIN_USERS_READ = "admin.users.read"
    ADMIN_USERS_WRITE = "admin.users.write"
    ADMIN_SNIPPETS_MODERATE = "admin.snippets.moderate"
    ADMIN_SYSTEM_SETTINGS_WRITE = "admin.system.settings.write"
    ADMIN_AUDIT_READ = "admin.audit.read"
    MODERATION_QUEUE_READ = "moderation.queue.read"
    MODERATION_ACTIONS_WRITE = "moderation.actions.write"


PRIVILEGED_ROLES: FrozenSet[Role] = frozenset({Role.SUPER_ADMIN, Role.ADMIN})

ROLE_PERMISSIONS: Mapping[Role, FrozenSet[Permission]] = MappingProxyType({
    Role.SUPER_ADMIN: frozenset(Permission),
    Role.ADMIN: frozenset({
        Permission.SNIPPET_READ_SELF,
        Permission.SNIPPET_WRITE_SELF,
        Permission.SNIPPET_DELETE_SELF,
        Permission.SNIPPET_PUBLIC_PUBLISH,
        Permission.COMMUNITY_VIEW_PUBLIC,
        Permission.ADMIN_PANEL_ACCESS,
        Permission.ADMIN_USERS_READ,
        Permission.ADMIN_USERS_WRITE,
        Permission.ADMIN_SNIPPETS_MODERATE,
        Permission.ADMIN_SYSTEM_SETTINGS_WRITE,
        Permission.ADMIN_AUDIT_READ,
        Permission.MODERATION_QUEUE_READ,
        Permission.MODERATION_ACTIONS_WRITE,
    }),
    Role.MODERATOR: frozenset({
        Permission.SNIPPET_READ_SELF,
        Permission.SNIPPET_WRITE_SELF,
        Permission.SNIPPET_DELETE_SELF,
        Permission.SNIPPET_PUBLIC_PUBLISH,
        Permission.COMMUNITY_VIEW_PUBLIC,
        Permission.ADMIN_PANEL_ACCESS,
        Permission.ADMIN_USERS_READ,
        Permission.ADMIN_SNIPPETS_MODERATE,
        Permission.ADMIN_AUDIT_READ,
        Permission.MODERATION_QUEUE_READ,
        Permission.MODERATION_ACTIONS_WRITE,
    }),
    Role.USER: frozenset({
        Permission.SNIPPET_READ_SELF,
        Permission.SNIPPET_WRITE_SELF,
        Permission.SNIPPET_DELETE_SELF,
        Permission.SNIPPET_PUBLIC_PUBLISH,
        Permission.COMMUNITY_VIEW_PUBLIC,
    }),
    Role.READ_ONLY: frozenset({
        Permission.SNIPPET_READ_SELF,
        Permission.COMMUNITY_VIEW_PUBLIC,
    }),
})


def normalize_role(value: Any) -> Role:
    """Map arbitrary input to a Role, falling back to USER."""
    if isinstance(value, Role):
        return value
    if not value:
        return Role.USER
    try:
        return Role(str(value).strip().upper())
    except ValueError:
        return Role.USER


def permissions_of(role: Any) -> FrozenSet[Permission]:
    return ROLE_PERMISSIONS.get(normalize_role(role), ROLE_PERMISSIONS[Role.USER])


def has_permission(role: Any, permission: Any) -> bool:
    if not permission:
        return False
    try:
        wanted = Permission(permission)
    except ValueError:
        return False
    return wanted in permissions_of(role)


def permission_list(role: Any) -> List[str]:
    """Sorted permission strings for a role, as shipped to clients."""
    return sorted(permission.value for permission in permissions_of(role))


def is_privileged(role: Any) -> bool:
    return normalize_role(role) in PRIVILEGED_ROLES
