"""Tests for the session permission resolver (HTTP mocked with httpx.MockTransport)."""

import httpx
import pytest

from app.auth.cache import MemoryStore, PermissionCache
from app.auth.permissions import BASE_PERMISSIONS, default_permissions_for
from app.auth.resolver import PermissionResolver


def _resolver(handler, role="content_manager", cache=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://cms.test")
    return PermissionResolver("tok", role, cache=cache or PermissionCache(store=MemoryStore()), client=client)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_fetches_with_bearer_and_caches(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"success": True, "data": {"permissions": ["view_sync"]}})

        cache = PermissionCache(store=MemoryStore())
        resolver = _resolver(handler, cache=cache)
        perms = await resolver.refresh_permissions()

        assert perms == ["view_sync"]
        assert seen == {"path": "/api/users/me/permissions", "auth": "Bearer tok"}
        assert cache.get() == ["view_sync"]
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_refresh_narrows_cached_set(self):
        cache = PermissionCache(store=MemoryStore())
        cache.set(["view_users", "delete_users"])

        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"permissions": ["view_users"]}})

        resolver = _resolver(handler, cache=cache)
        await resolver.refresh_permissions()
        assert not resolver.check("delete_users")
        assert cache.get() == ["view_users"]
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_legacy_shape_normalized(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"canTriggerSync": True}})

        resolver = _resolver(handler)
        perms = await resolver.refresh_permissions()
        assert "manage_sync" in perms
        assert set(BASE_PERMISSIONS) <= set(perms)
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_server_error_falls_back_without_caching(self):
        cache = PermissionCache(store=MemoryStore())

        def handler(request):
            return httpx.Response(500, json={"error": "boom"})

        resolver = _resolver(handler, cache=cache)
        perms = await resolver.refresh_permissions()
        assert perms == BASE_PERMISSIONS
        assert cache.get() is None
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_unsuccessful_body_falls_back(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "nope"})

        resolver = _resolver(handler)
        assert await resolver.refresh_permissions() == BASE_PERMISSIONS
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_non_object_body_falls_back(self):
        cache = PermissionCache(store=MemoryStore())
        resolver = _resolver(lambda r: httpx.Response(200, json=[]), cache=cache)
        assert await resolver.refresh_permissions() == BASE_PERMISSIONS
        assert cache.get() is None
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_non_object_data_falls_back(self):
        resolver = _resolver(lambda r: httpx.Response(200, json={"success": True, "data": "bad gateway"}))
        assert await resolver.refresh_permissions() == BASE_PERMISSIONS
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        resolver = _resolver(handler)
        assert await resolver.refresh_permissions() == BASE_PERMISSIONS
        await resolver.aclose()


class TestChecks:
    @pytest.mark.asyncio
    async def test_role_defaults_while_loading(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"permissions": []}})

        resolver = _resolver(handler, role="content_manager")
        assert resolver.current_permissions() is None
        for perm in default_permissions_for("content_manager"):
            assert resolver.check(perm)
        assert not resolver.check("delete_users")
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_uses_cached_permissions(self):
        cache = PermissionCache(store=MemoryStore())
        cache.set(["view_users"])
        resolver = _resolver(lambda r: httpx.Response(500), cache=cache)
        assert resolver.current_permissions() == ["view_users"]
        assert [item.name for item in resolver.navigation()] == ["Users", "Settings"]
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_shell_mount_invalidates_and_refreshes(self):
        cache = PermissionCache(store=MemoryStore())
        cache.set(["view_users"])

        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"permissions": ["view_sync"]}})

        resolver = _resolver(handler, cache=cache)
        task = resolver.on_shell_mount()
        assert cache.get() is None
        await task
        assert resolver.current_permissions() == ["view_sync"]
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_logout_clears(self):
        cache = PermissionCache(store=MemoryStore())
        cache.set(["view_users"])
        resolver = _resolver(lambda r: httpx.Response(500), cache=cache)
        resolver.logout()
        assert cache.get() is None
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        resolver = PermissionResolver("tok", "admin", cache=PermissionCache(store=MemoryStore()), client=http)
        await resolver.aclose()
        assert not http.is_closed
        await http.aclose()
