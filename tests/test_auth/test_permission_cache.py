"""Tests for the expiring permission cache."""

import json

from app.auth.cache import EXPIRY_KEY, PERMISSIONS_KEY, MemoryStore, PermissionCache

DAY = 24 * 3600


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestPermissionCache:
    def setup_method(self):
        self.store = MemoryStore()
        self.clock = FakeClock()
        self.cache = PermissionCache(store=self.store, clock=self.clock, ttl_seconds=DAY)

    def test_miss_on_empty_store(self):
        assert self.cache.get() is None

    def test_round_trip_within_ttl(self):
        perms = ["view_users", "edit_content", "view_dashboard"]
        self.cache.set(perms)
        self.clock.advance(DAY - 1)
        assert self.cache.get() == perms

    def test_empty_list_is_a_hit(self):
        self.cache.set([])
        assert self.cache.get() == []

    def test_expired_entry_returns_none_and_clears_keys(self):
        self.cache.set(["view_users"])
        self.clock.advance(DAY)
        assert self.cache.get() is None
        assert PERMISSIONS_KEY not in self.store
        assert EXPIRY_KEY not in self.store

    def test_expiry_stored_in_epoch_ms(self):
        self.cache.set(["view_users"])
        expires_at = int(self.store.get_item(EXPIRY_KEY))
        assert expires_at == int((self.clock.now + DAY) * 1000)
        assert json.loads(self.store.get_item(PERMISSIONS_KEY)) == ["view_users"]

    def test_invalidate(self):
        self.cache.set(["view_users"])
        self.cache.invalidate()
        assert self.cache.get() is None

    def test_corrupt_entry_is_discarded(self):
        self.store.set_item(PERMISSIONS_KEY, "{not json")
        self.store.set_item(EXPIRY_KEY, str(int((self.clock.now + 60) * 1000)))
        assert self.cache.get() is None
        assert PERMISSIONS_KEY not in self.store

    def test_non_list_entry_is_discarded(self):
        self.store.set_item(PERMISSIONS_KEY, json.dumps({"permissions": []}))
        self.store.set_item(EXPIRY_KEY, str(int((self.clock.now + 60) * 1000)))
        assert self.cache.get() is None

    def test_default_ttl_is_24_hours(self):
        cache = PermissionCache(store=self.store, clock=self.clock)
        cache.set(["view_users"])
        self.clock.advance(DAY - 1)
        assert cache.get() == ["view_users"]
        self.clock.advance(1)
        assert cache.get() is None
