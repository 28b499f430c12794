"""Tests for snapshot building, recent-change counting and update checks."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from app.db.models import Religion, Topic, TopicDetail, User, UserRole
from app.sync.snapshot import (
    SyncPermissionError,
    build_snapshot,
    check_for_updates,
    content_statistics,
    count_recent_changes,
    estimate_data_size,
    latest_version,
    recent_changes,
    trigger_sync,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


class TestCountRecentChanges:
    def test_23_hours_ago_counts(self):
        assert count_recent_changes([NOW - timedelta(hours=23)], NOW) == 1

    def test_25_hours_ago_does_not(self):
        assert count_recent_changes([NOW - timedelta(hours=25)], NOW) == 0

    def test_exactly_24_hours_is_inclusive(self):
        assert count_recent_changes([NOW - timedelta(hours=24)], NOW) == 1

    def test_mixed_and_missing(self):
        stamps = [NOW, NOW - timedelta(hours=1), NOW - timedelta(days=3), None]
        assert count_recent_changes(stamps, NOW) == 2

    def test_custom_window(self):
        assert count_recent_changes([NOW - timedelta(hours=2)], NOW, window=timedelta(hours=1)) == 0

    def test_aware_timestamps(self):
        aware_now = NOW.replace(tzinfo=timezone.utc)
        assert count_recent_changes([NOW - timedelta(hours=3)], aware_now) == 1


class TestDataSize:
    def test_half_kb_per_item_rounded(self):
        assert estimate_data_size(0) == "0KB"
        assert estimate_data_size(3) == "2KB"
        assert estimate_data_size(10) == "5KB"


@pytest_asyncio.fixture
async def content(db):
    """Two religions, three topics, two details with staggered update times."""
    old = NOW - timedelta(days=3)
    islam = Religion(name="Islam", created_at=old, updated_at=old)
    orthodox = Religion(name="Orthodox", created_at=old, updated_at=NOW - timedelta(hours=2))
    db.add_all([islam, orthodox])
    await db.flush()

    trinity = Topic(religion_id=islam.id, title="Trinity", created_at=old, updated_at=old)
    divinity = Topic(religion_id=islam.id, title="Divinity", created_at=old, updated_at=NOW - timedelta(hours=24))
    fasting = Topic(religion_id=orthodox.id, title="Fasting", created_at=old, updated_at=old)
    db.add_all([trinity, divinity, fasting])
    await db.flush()

    db.add_all([
        TopicDetail(topic_id=trinity.id, explanation="a", bible_verses=["John 1:1"], version=3,
                    created_at=old, updated_at=NOW - timedelta(hours=1)),
        TopicDetail(topic_id=fasting.id, explanation="b", version=7,
                    created_at=old, updated_at=NOW - timedelta(hours=30)),
    ])
    await db.commit()
    return {"islam": islam, "orthodox": orthodox, "trinity": trinity}


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_statistics(self, db, content):
        stats = await content_statistics(db)
        assert (stats.religions, stats.topics, stats.topic_details, stats.total) == (2, 3, 2, 7)

    @pytest.mark.asyncio
    async def test_latest_version_follows_most_recent_save(self, db, content):
        version, updated_at = await latest_version(db)
        assert version == 3
        assert updated_at == NOW - timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_latest_version_defaults_to_1(self, db):
        assert await latest_version(db) == (1, None)

    @pytest.mark.asyncio
    async def test_build_snapshot(self, db, content):
        snapshot = await build_snapshot(db)
        assert snapshot["version"] == 3
        assert [r["name"] for r in snapshot["religions"]] == ["Islam", "Orthodox"]
        assert len(snapshot["topics"]) == 3
        assert len(snapshot["topic_details"]) == 2
        detail = next(d for d in snapshot["topic_details"] if d["version"] == 3)
        assert detail["bible_verses"] == ["John 1:1"]
        assert detail["key_points"] == []
        assert snapshot["last_updated"].startswith("2026-03-01T11:00:00")

    @pytest.mark.asyncio
    async def test_recent_changes_by_family(self, db, content):
        changes = await recent_changes(db, now=NOW)
        assert changes == {"religions": 1, "topics": 1, "details": 1, "total": 3}


class TestTriggerAndCheck:
    @pytest.mark.asyncio
    async def test_trigger_requires_manage_sync(self, db, content):
        editor = User(username="ed", password_hash="x", role=UserRole.CONTENT_MANAGER)
        db.add(editor)
        await db.commit()
        with pytest.raises(SyncPermissionError):
            await trigger_sync(db, editor, now=NOW)

    @pytest.mark.asyncio
    async def test_explicit_manage_sync_grant(self, db, content):
        editor = User(username="ed", password_hash="x", role=UserRole.CONTENT_MANAGER,
                      permissions=["manage_sync"])
        db.add(editor)
        await db.commit()

        result = await trigger_sync(db, editor, now=NOW)
        assert result["status"] == "completed"
        assert result["triggered_by"] == "ed"
        assert result["version"] == 3
        assert result["statistics"]["total_items"] == 7
        assert result["recent_changes"]["total"] == 3
        assert result["mobile_apps_notified"] == 0
        assert result["data_size"] == "4KB"

    @pytest.mark.asyncio
    async def test_check_by_version(self, db, content):
        assert (await check_for_updates(db, local_version=2))["has_updates"] is True
        assert (await check_for_updates(db, local_version=3))["has_updates"] is False

    @pytest.mark.asyncio
    async def test_check_version_ahead_of_server(self, db, content):
        # New content restarts at version 1, so the current version can drop
        assert (await check_for_updates(db, local_version=5))["has_updates"] is True

    @pytest.mark.asyncio
    async def test_check_matching_version_but_newer_content(self, db, content):
        result = await check_for_updates(db, local_version=3, last_sync=NOW - timedelta(hours=3))
        assert result["has_updates"] is True
        assert (await check_for_updates(db, local_version=3, last_sync=NOW))["has_updates"] is False

    @pytest.mark.asyncio
    async def test_check_by_last_sync(self, db, content):
        before = NOW - timedelta(hours=3)
        after = NOW
        assert (await check_for_updates(db, last_sync=before))["has_updates"] is True
        assert (await check_for_updates(db, last_sync=after))["has_updates"] is False

    @pytest.mark.asyncio
    async def test_check_without_state(self, db, content):
        result = await check_for_updates(db)
        assert result["has_updates"] is True
        assert result["current_version"] == 3
