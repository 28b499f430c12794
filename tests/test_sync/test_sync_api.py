"""Tests for the sync routes."""

import pytest

from app.db.models import Religion, Topic, TopicDetail, UserActivity
from sqlalchemy import select


class TestSyncRoutes:
    @pytest.mark.asyncio
    async def test_admin_can_trigger(self, client, db, admin, admin_headers):
        db.add(Religion(name="Islam"))
        await db.commit()

        response = await client.post("/api/sync/trigger", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "completed"
        assert body["data"]["triggered_by"] == "admin"
        assert body["data"]["recent_changes"]["religions"] == 1

        activity = await db.execute(select(UserActivity).where(UserActivity.action == "trigger_sync"))
        assert activity.scalar_one().user_id == admin.id

    @pytest.mark.asyncio
    async def test_content_manager_forbidden(self, client, editor_headers):
        response = await client.post("/api/sync/trigger", headers=editor_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_trigger_requires_token(self, client):
        assert (await client.post("/api/sync/trigger")).status_code == 401

    @pytest.mark.asyncio
    async def test_download_and_status_are_public(self, client, db):
        religion = Religion(name="Islam")
        db.add(religion)
        await db.flush()
        topic = Topic(religion_id=religion.id, title="Trinity")
        db.add(topic)
        await db.flush()
        db.add(TopicDetail(topic_id=topic.id, explanation="x", version=2))
        await db.commit()

        snapshot = (await client.get("/api/sync/download")).json()["data"]
        assert snapshot["version"] == 2
        assert snapshot["topic_details"][0]["topic_id"] == topic.id

        status = (await client.get("/api/sync/status")).json()["data"]
        assert status["content_summary"]["total"] == 3
        assert status["sync_info"]["api_version"] == "1.0.0"

    @pytest.mark.asyncio
    async def test_check(self, client, db):
        response = await client.post("/api/sync/check", json={"version": 1})
        assert response.status_code == 200
        assert response.json()["data"]["has_updates"] is False
