"""Expiring cache for a session's resolved permission list.

Entries are written to a key-value store under two keys, the permission list
(JSON) and its expiry (epoch milliseconds). Both the store and the clock are
injected so expiry can be exercised without waiting.
"""

import json
import logging
import time
from typing import Callable, Protocol

from app.config import settings

logger = logging.getLogger(__name__)

PERMISSIONS_KEY = "cms_user_permissions"
EXPIRY_KEY = "cms_permissions_expiry"


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store with the local-storage interface."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class PermissionCache:
    """get / set / invalidate over a key-value store with a TTL."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
        ttl_seconds: float | None = None,
    ):
        self._store = store if store is not None else MemoryStore()
        self._clock = clock
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.permission_cache_ttl_hours * 3600

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get(self) -> list[str] | None:
        """Cached permissions, or None on a miss. Expired entries are purged."""
        raw = self._store.get_item(PERMISSIONS_KEY)
        expiry = self._store.get_item(EXPIRY_KEY)
        if raw is None or expiry is None:
            return None

        try:
            expires_at = int(expiry)
            permissions = json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable permission cache: {e}")
            self.invalidate()
            return None

        if self._now_ms() >= expires_at:
            logger.debug("Permission cache expired")
            self.invalidate()
            return None

        if not isinstance(permissions, list):
            self.invalidate()
            return None
        return permissions

    def set(self, permissions: list[str]) -> None:
        expires_at = self._now_ms() + int(self._ttl * 1000)
        self._store.set_item(PERMISSIONS_KEY, json.dumps(list(permissions)))
        self._store.set_item(EXPIRY_KEY, str(expires_at))

    def invalidate(self) -> None:
        self._store.remove_item(PERMISSIONS_KEY)
        self._store.remove_item(EXPIRY_KEY)
