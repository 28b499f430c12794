"""Tests for role defaults, override checks, payload normalization and nav gating."""

import pytest

from app.auth.permissions import (
    ALL_PERMISSIONS,
    BASE_PERMISSIONS,
    PERMISSION_GROUPS,
    ArrayShape,
    LegacyFlagShape,
    check_permission,
    default_permissions_for,
    effective_permissions,
    has_permission,
    has_role,
    normalize_permissions,
    parse_permission_payload,
    validate_permission_keys,
    visible_nav_items,
)
from app.db.models import UserRole


class TestRoleDefaults:
    def test_admin_gets_full_catalog_in_order(self):
        assert default_permissions_for(UserRole.ADMIN) == ALL_PERMISSIONS
        assert len(ALL_PERMISSIONS) == 27

    def test_content_manager_subset(self):
        perms = default_permissions_for("content_manager")
        assert "delete_users" not in perms
        assert "manage_system_settings" not in perms
        assert "view_users" not in perms
        assert "edit_content" in perms
        assert "view_dashboard" in perms
        assert len(perms) == 13
        assert set(perms) < set(ALL_PERMISSIONS)

    def test_unknown_role_gets_nothing(self):
        assert default_permissions_for("guest") == []
        assert default_permissions_for(None) == []

    def test_defaults_are_copies(self):
        perms = default_permissions_for(UserRole.ADMIN)
        perms.clear()
        assert default_permissions_for(UserRole.ADMIN) == ALL_PERMISSIONS

    def test_groups_cover_catalog_exactly(self):
        grouped = [p for keys in PERMISSION_GROUPS.values() for p in keys]
        assert sorted(grouped) == sorted(ALL_PERMISSIONS)

    def test_has_permission_uses_defaults(self):
        assert has_permission("admin", "delete_users")
        assert not has_permission("content_manager", "delete_users")


class TestCheckPermission:
    def test_no_requirement_always_passes(self):
        assert check_permission("content_manager", [], None)
        assert check_permission("guest", None, None)

    @pytest.mark.parametrize("role", ["admin", "content_manager", "guest"])
    @pytest.mark.parametrize("required", ["view_dashboard", "delete_users", "manage_sync", "edit_content"])
    def test_null_permissions_equal_role_defaults(self, role, required):
        assert check_permission(role, None, required) == check_permission(
            role, default_permissions_for(role), required
        )

    def test_explicit_list_replaces_defaults(self):
        # Even an admin loses anything not in an explicit list
        assert not check_permission("admin", ["view_dashboard"], "delete_users")
        assert check_permission("content_manager", ["delete_users"], "delete_users")

    def test_empty_list_denies_everything(self):
        assert not check_permission("admin", [], "view_dashboard")

    def test_effective_permissions(self):
        assert effective_permissions("content_manager", None) == default_permissions_for("content_manager")
        assert effective_permissions("admin", ["view_sync"]) == ["view_sync"]


class TestRoleHierarchy:
    def test_admin_outranks_content_manager(self):
        assert has_role("admin", "content_manager")
        assert has_role("admin", UserRole.ADMIN)
        assert has_role("content_manager", "content_manager")
        assert not has_role("content_manager", "admin")

    def test_unknown_roles(self):
        assert not has_role("guest", "content_manager")
        assert not has_role("admin", "superuser")


class TestValidateKeys:
    def test_known_keys_pass(self):
        assert validate_permission_keys(["view_users", "manage_sync"]) == []

    def test_unknown_keys_reported(self):
        assert validate_permission_keys(["view_users", "fly", "teleport"]) == ["fly", "teleport"]


class TestNormalization:
    def test_array_shape(self):
        payload = parse_permission_payload({"permissions": ["view_users", "edit_content"]})
        assert payload == ArrayShape(permissions=["view_users", "edit_content"])
        assert normalize_permissions({"permissions": ["view_users", "edit_content"]}) == [
            "view_users",
            "edit_content",
        ]

    def test_empty_array_is_kept(self):
        assert normalize_permissions({"permissions": []}) == []

    def test_legacy_flags(self):
        data = {"canManageUsers": True, "canTriggerSync": True, "role": "admin"}
        payload = parse_permission_payload(data)
        assert isinstance(payload, LegacyFlagShape)
        assert payload.can_manage_users
        assert not payload.can_manage_content

        perms = normalize_permissions(data)
        assert "create_users" in perms
        assert "manage_sync" in perms
        assert "create_topics" not in perms

    def test_legacy_flags_always_add_base_set(self):
        perms = normalize_permissions({})
        assert perms == BASE_PERMISSIONS


class TestNavigation:
    def test_content_manager_does_not_see_users_or_smtp(self):
        names = [item.name for item in visible_nav_items("content_manager", None)]
        assert "Users" not in names
        assert "SMTP Config" not in names
        assert "Dashboard" in names
        assert "Settings" in names

    def test_admin_sees_everything(self):
        names = [item.name for item in visible_nav_items("admin", None)]
        assert names == ["Dashboard", "Religions", "Topics", "Content", "Users", "SMTP Config", "Sync", "Settings"]

    def test_explicit_list_controls_nav(self):
        names = [item.name for item in visible_nav_items("admin", ["view_sync"])]
        assert names == ["Sync", "Settings"]
