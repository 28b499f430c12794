"""Session permission resolver for CMS API clients.

Resolves the signed-in user's effective permission list from the
`/api/users/me/permissions` endpoint, keeps it in a PermissionCache and
answers access checks for navigation and page gating.

While permissions are not loaded yet, checks fall back to the role defaults
so pages do not flash "no access" during loading. This is a UI courtesy; the
API enforces permissions server-side on every request.
"""

import asyncio
import logging

import httpx

from app.auth.cache import PermissionCache
from app.auth.permissions import (
    BASE_PERMISSIONS,
    NavItem,
    check_permission,
    normalize_permissions,
    visible_nav_items,
)
from app.config import settings

logger = logging.getLogger(__name__)

MY_PERMISSIONS_PATH = "/api/users/me/permissions"


class PermissionResolver:
    """Fetches, caches and checks the current session's permissions."""

    def __init__(
        self,
        token: str,
        role: str,
        cache: PermissionCache | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._token = token
        self.role = role
        self._cache = cache or PermissionCache()
        # Injected clients belong to the caller and are not closed here
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or settings.cms_api_base_url)
        self._permissions: list[str] | None = None
        self._refresh_task: asyncio.Task | None = None

    async def refresh_permissions(self) -> list[str]:
        """Re-fetch permissions and overwrite the cache.

        This is the only path that can narrow a previously cached set. On a
        transport error or non-success answer the view-only fallback is used
        for this session and the cache is left empty.
        """
        try:
            response = await self._client.get(
                MY_PERMISSIONS_PATH,
                headers={"Authorization": f"Bearer {self._token}"},
            )
            response.raise_for_status()
            body = response.json()
            if not isinstance(body, dict):
                raise ValueError(f"unexpected permissions response: {body!r}")
            if not body.get("success"):
                raise ValueError(body.get("error") or "permissions request unsuccessful")
            data = body.get("data") or {}
            if not isinstance(data, dict):
                raise ValueError(f"unexpected permissions payload: {data!r}")
            permissions = normalize_permissions(data)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching user permissions: {e}")
            self._permissions = list(BASE_PERMISSIONS)
            return self._permissions

        self._permissions = permissions
        self._cache.set(permissions)
        logger.debug(f"Cached {len(permissions)} permissions")
        return permissions

    def current_permissions(self) -> list[str] | None:
        """Resolved permissions, or None while still loading."""
        if self._permissions is not None:
            return self._permissions
        cached = self._cache.get()
        if cached is not None:
            self._permissions = cached
        return cached

    def check(self, required: str | None) -> bool:
        return check_permission(self.role, self.current_permissions(), required)

    def navigation(self) -> list[NavItem]:
        return visible_nav_items(self.role, self.current_permissions())

    def on_shell_mount(self) -> asyncio.Task:
        """Drop cached permissions and schedule a refresh in the background.

        Called whenever the navigation shell is (re)mounted so edits an
        administrator made mid-session take effect. Must run inside an event
        loop.
        """
        self._cache.invalidate()
        self._permissions = None
        self._refresh_task = asyncio.create_task(self.refresh_permissions())
        return self._refresh_task

    def logout(self) -> None:
        self._cache.invalidate()
        self._permissions = None

    async def aclose(self) -> None:
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
        if self._owns_client:
            await self._client.aclose()
