"""Tests for the religion routes."""

import pytest

from app.db.models import Religion, Topic


class TestReligionRoutes:
    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        response = await client.get("/api/religions")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_create_and_list(self, client, editor_headers):
        response = await client.post(
            "/api/religions",
            json={"name": "ኦርቶዶክስ", "name_en": "Orthodox"},
            headers=editor_headers,
        )
        assert response.status_code == 201
        created = response.json()["data"]
        assert created["color"] == "#8B4513"

        listed = (await client.get("/api/religions", headers=editor_headers)).json()["data"]
        assert [r["name_en"] for r in listed] == ["Orthodox"]
        assert listed[0]["topic_count"] == 0

    @pytest.mark.asyncio
    async def test_invalid_color_rejected(self, client, editor_headers):
        response = await client.post(
            "/api/religions", json={"name": "X", "color": "brown"}, headers=editor_headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"

    @pytest.mark.asyncio
    async def test_update(self, client, db, editor_headers):
        religion = Religion(name="Islam")
        db.add(religion)
        await db.commit()

        response = await client.put(
            f"/api/religions/{religion.id}", json={"color": "#0066CC"}, headers=editor_headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["color"] == "#0066CC"
        assert response.json()["data"]["name"] == "Islam"

    @pytest.mark.asyncio
    async def test_missing_religion_404(self, client, editor_headers):
        response = await client.get("/api/religions/999", headers=editor_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Religion not found"}

    @pytest.mark.asyncio
    async def test_cannot_delete_with_topics(self, client, db, editor_headers):
        religion = Religion(name="Islam")
        db.add(religion)
        await db.flush()
        db.add(Topic(religion_id=religion.id, title="Trinity"))
        await db.commit()

        response = await client.delete(f"/api/religions/{religion.id}", headers=editor_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Cannot delete religion with existing topics"}

    @pytest.mark.asyncio
    async def test_delete_empty_religion(self, client, db, editor_headers):
        religion = Religion(name="Protestant")
        db.add(religion)
        await db.commit()

        response = await client.delete(f"/api/religions/{religion.id}", headers=editor_headers)
        assert response.status_code == 200
        assert (await client.get(f"/api/religions/{religion.id}", headers=editor_headers)).status_code == 404

    @pytest.mark.asyncio
    async def test_permission_override_denies(self, client, make_user, headers_for):
        viewer = await make_user("viewer", permissions=["view_religions"])
        headers = headers_for(viewer)

        assert (await client.get("/api/religions", headers=headers)).status_code == 200
        response = await client.post("/api/religions", json={"name": "X"}, headers=headers)
        assert response.status_code == 403
        assert response.json() == {"error": "Insufficient permissions"}
