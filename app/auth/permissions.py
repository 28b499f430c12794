"""Permission catalog, role defaults and permission checks.

A user's effective permissions are either the defaults of their role or,
when the user row carries an explicit list, exactly that list. The two are
never merged.

The "my permissions" endpoint has answered in two shapes over time: a flat
key list and a set of legacy boolean flags. Both are normalized here into a
flat key list.
"""

from dataclasses import dataclass
from typing import Union

from app.db.models import UserRole

# --- Catalog ---

VIEW_DASHBOARD = "view_dashboard"

VIEW_USERS = "view_users"
CREATE_USERS = "create_users"
EDIT_USERS = "edit_users"
DELETE_USERS = "delete_users"
RESET_USER_PASSWORD = "reset_user_password"

VIEW_RELIGIONS = "view_religions"
CREATE_RELIGIONS = "create_religions"
EDIT_RELIGIONS = "edit_religions"
DELETE_RELIGIONS = "delete_religions"

VIEW_TOPICS = "view_topics"
CREATE_TOPICS = "create_topics"
EDIT_TOPICS = "edit_topics"
DELETE_TOPICS = "delete_topics"

VIEW_CONTENT = "view_content"
EDIT_CONTENT = "edit_content"

VIEW_PROFILE_SETTINGS = "view_profile_settings"
EDIT_PROFILE_SETTINGS = "edit_profile_settings"

VIEW_SYNC = "view_sync"
MANAGE_SYNC = "manage_sync"
VIEW_SYSTEM_SETTINGS = "view_system_settings"
MANAGE_SYSTEM_SETTINGS = "manage_system_settings"

VIEW_SMTP_CONFIG = "view_smtp_config"
CREATE_SMTP_CONFIG = "create_smtp_config"
EDIT_SMTP_CONFIG = "edit_smtp_config"
DELETE_SMTP_CONFIG = "delete_smtp_config"
TEST_SMTP_CONFIG = "test_smtp_config"

ALL_PERMISSIONS: list[str] = [
    VIEW_DASHBOARD,
    VIEW_USERS,
    CREATE_USERS,
    EDIT_USERS,
    DELETE_USERS,
    RESET_USER_PASSWORD,
    VIEW_RELIGIONS,
    CREATE_RELIGIONS,
    EDIT_RELIGIONS,
    DELETE_RELIGIONS,
    VIEW_TOPICS,
    CREATE_TOPICS,
    EDIT_TOPICS,
    DELETE_TOPICS,
    VIEW_CONTENT,
    EDIT_CONTENT,
    VIEW_PROFILE_SETTINGS,
    EDIT_PROFILE_SETTINGS,
    VIEW_SYNC,
    MANAGE_SYNC,
    VIEW_SYSTEM_SETTINGS,
    MANAGE_SYSTEM_SETTINGS,
    VIEW_SMTP_CONFIG,
    CREATE_SMTP_CONFIG,
    EDIT_SMTP_CONFIG,
    DELETE_SMTP_CONFIG,
    TEST_SMTP_CONFIG,
]

# Display grouping for the permission editor. No effect on authorization.
PERMISSION_GROUPS: dict[str, list[str]] = {
    "Dashboard": [VIEW_DASHBOARD],
    "User Management": [VIEW_USERS, CREATE_USERS, EDIT_USERS, DELETE_USERS, RESET_USER_PASSWORD],
    "Content Management": [
        VIEW_RELIGIONS,
        CREATE_RELIGIONS,
        EDIT_RELIGIONS,
        DELETE_RELIGIONS,
        VIEW_TOPICS,
        CREATE_TOPICS,
        EDIT_TOPICS,
        DELETE_TOPICS,
        VIEW_CONTENT,
        EDIT_CONTENT,
    ],
    "Profile": [VIEW_PROFILE_SETTINGS, EDIT_PROFILE_SETTINGS],
    "System": [VIEW_SYNC, MANAGE_SYNC, VIEW_SYSTEM_SETTINGS, MANAGE_SYSTEM_SETTINGS],
    "SMTP": [
        VIEW_SMTP_CONFIG,
        CREATE_SMTP_CONFIG,
        EDIT_SMTP_CONFIG,
        DELETE_SMTP_CONFIG,
        TEST_SMTP_CONFIG,
    ],
}

ROLE_PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.ADMIN: list(ALL_PERMISSIONS),
    UserRole.CONTENT_MANAGER: [
        VIEW_DASHBOARD,
        VIEW_RELIGIONS,
        CREATE_RELIGIONS,
        EDIT_RELIGIONS,
        DELETE_RELIGIONS,
        VIEW_TOPICS,
        CREATE_TOPICS,
        EDIT_TOPICS,
        DELETE_TOPICS,
        VIEW_CONTENT,
        EDIT_CONTENT,
        VIEW_PROFILE_SETTINGS,
        EDIT_PROFILE_SETTINGS,
    ],
}

# Granted to every account under the legacy flag shape, and used as the
# view-only set when permissions cannot be fetched.
BASE_PERMISSIONS: list[str] = [
    VIEW_RELIGIONS,
    VIEW_TOPICS,
    VIEW_CONTENT,
    VIEW_PROFILE_SETTINGS,
    EDIT_PROFILE_SETTINGS,
]

ROLE_HIERARCHY = [UserRole.CONTENT_MANAGER, UserRole.ADMIN]


def _coerce_role(role) -> UserRole | None:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def default_permissions_for(role) -> list[str]:
    """Role default permission list; empty for unknown roles."""
    user_role = _coerce_role(role)
    if user_role is None:
        return []
    return list(ROLE_PERMISSIONS.get(user_role, []))


def has_permission(role, required: str) -> bool:
    """Check a permission against the role defaults only."""
    return required in default_permissions_for(role)


def check_permission(role, permissions: list[str] | None, required: str | None) -> bool:
    """Check a permission, honouring explicit overrides.

    Args:
        role: The user's role (enum or raw string).
        permissions: Explicit permission list, or None when there is no
            override (or it has not been loaded yet).
        required: Permission key to test. None means the page has no
            fine-grained gate and access is granted.
    """
    if required is None:
        return True
    if permissions is None:
        return has_permission(role, required)
    return required in permissions


def effective_permissions(role, permissions: list[str] | None) -> list[str]:
    """The permission list a session actually holds."""
    if permissions is None:
        return default_permissions_for(role)
    return list(permissions)


def has_role(role, required_role) -> bool:
    user_role = _coerce_role(role)
    needed = _coerce_role(required_role)
    if user_role is None or needed is None:
        return False
    return ROLE_HIERARCHY.index(user_role) >= ROLE_HIERARCHY.index(needed)


def validate_permission_keys(keys: list[str]) -> list[str]:
    """Return the keys that are not in the catalog."""
    return [k for k in keys if k not in ALL_PERMISSIONS]


# --- Response normalization ---


@dataclass
class ArrayShape:
    """`{"permissions": ["view_dashboard", ...]}`"""

    permissions: list[str]


@dataclass
class LegacyFlagShape:
    """Boolean capability flags from older API versions."""

    can_manage_users: bool = False
    can_manage_content: bool = False
    can_manage_system: bool = False
    can_view_analytics: bool = False
    can_trigger_sync: bool = False
    role: str | None = None


PermissionPayload = Union[ArrayShape, LegacyFlagShape]

LEGACY_FLAG_GRANTS: dict[str, list[str]] = {
    "can_manage_users": [CREATE_USERS, EDIT_USERS, DELETE_USERS],
    "can_manage_content": [
        CREATE_RELIGIONS,
        EDIT_RELIGIONS,
        DELETE_RELIGIONS,
        CREATE_TOPICS,
        EDIT_TOPICS,
        DELETE_TOPICS,
    ],
    "can_manage_system": [VIEW_SYSTEM_SETTINGS, MANAGE_SYSTEM_SETTINGS],
    "can_view_analytics": [VIEW_DASHBOARD],
    "can_trigger_sync": [VIEW_SYNC, MANAGE_SYNC],
}


def parse_permission_payload(data: dict) -> PermissionPayload:
    """Classify a raw `data` object from the permissions endpoint."""
    if isinstance(data.get("permissions"), list):
        return ArrayShape(permissions=[str(p) for p in data["permissions"]])
    return LegacyFlagShape(
        can_manage_users=bool(data.get("canManageUsers")),
        can_manage_content=bool(data.get("canManageContent")),
        can_manage_system=bool(data.get("canManageSystem")),
        can_view_analytics=bool(data.get("canViewAnalytics")),
        can_trigger_sync=bool(data.get("canTriggerSync")),
        role=data.get("role"),
    )


def to_permission_keys(payload: PermissionPayload) -> list[str]:
    """Map either payload shape to a flat, ordered permission key list."""
    if isinstance(payload, ArrayShape):
        return list(payload.permissions)

    keys: list[str] = []
    for flag, grants in LEGACY_FLAG_GRANTS.items():
        if getattr(payload, flag):
            keys.extend(grants)
    keys.extend(BASE_PERMISSIONS)
    return keys


def normalize_permissions(data: dict) -> list[str]:
    return to_permission_keys(parse_permission_payload(data))


# --- Navigation gating ---


@dataclass
class NavItem:
    name: str
    href: str
    required: str | None = None


NAVIGATION: list[NavItem] = [
    NavItem("Dashboard", "/dashboard", VIEW_DASHBOARD),
    NavItem("Religions", "/religions", VIEW_RELIGIONS),
    NavItem("Topics", "/topics", VIEW_TOPICS),
    NavItem("Content", "/content", VIEW_CONTENT),
    NavItem("Users", "/users", VIEW_USERS),
    NavItem("SMTP Config", "/smtp-config", VIEW_SMTP_CONFIG),
    NavItem("Sync", "/sync", VIEW_SYNC),
    NavItem("Settings", "/settings"),
]


def visible_nav_items(role, permissions: list[str] | None) -> list[NavItem]:
    """Navigation entries the session may see."""
    return [item for item in NAVIGATION if check_permission(role, permissions, item.required)]
