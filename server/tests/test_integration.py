# ─────────────────────────────────────────────────────────────────────────────
# Integration tests — full request flow with mocked collaborators
# ─────────────────────────────────────────────────────────────────────────────
# app.state is wired in conftest (ASGITransport doesn't run lifespan).
# Background enrichment is awaited through app.state.background_tasks.
# ─────────────────────────────────────────────────────────────────────────────

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pymongo.errors import PyMongoError

from conftest import AI_IMAGE_URL, BUCKET, OWNER_ID, auth_headers
from pinboard.config import Settings
from pinboard.main import create_app, init_state
from pinboard.rate_limit import limiter
from pinboard.schemas import UserProfile
from pinboard.storage.object_storage import ObjectStorage
from pinboard.store.documents import DocumentStore

NEW_PIN = {
    "owner": {"id": OWNER_ID, "name": "tester-twitter", "service": "twitter"},
    "imgDescription": "description-4",
    "imgLink": "https://stub-4/cat.png",
}


async def _create(client: AsyncClient, user: UserProfile, **overrides) -> dict:
    response = await client.post(
        "/api/newpin", json={**NEW_PIN, **overrides}, headers=auth_headers(user)
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestCreatePinEndpoint:
    """Tests for POST /api/newpin."""

    @pytest.mark.asyncio
    async def test_returns_pin_before_enrichment(
        self, client: AsyncClient, app: FastAPI, owner: UserProfile
    ) -> None:
        data = await _create(client, owner)

        assert data["imgLink"] == data["originalImgLink"] == "https://stub-4/cat.png"
        assert data["owner"]["id"] == OWNER_ID
        assert data["tags"] == []
        await app.state.background_tasks.drain()

    @pytest.mark.asyncio
    async def test_enrichment_lands_after_drain(
        self, client: AsyncClient, app: FastAPI, owner: UserProfile, store: DocumentStore
    ) -> None:
        data = await _create(client, owner)
        await app.state.background_tasks.drain()

        stored = await store.pins.find_by_id(data["_id"])
        assert stored["imgLink"] == f"https://storage.googleapis.com/{BUCKET}/pins/{data['_id']}.png"
        assert stored["visionApiTags"] == ["TEST-LABEL-A", "TEST-LABEL-B"]

    @pytest.mark.asyncio
    async def test_anonymous_request_returns_401(self, client: AsyncClient) -> None:
        response = await client.post("/api/newpin", json=NEW_PIN)
        assert response.status_code == 401
        assert response.json()["type"] == "AuthenticationRequiredError"

    @pytest.mark.asyncio
    async def test_blank_description_returns_422(
        self, client: AsyncClient, owner: UserProfile
    ) -> None:
        response = await client.post(
            "/api/newpin",
            json={**NEW_PIN, "imgDescription": "   "},
            headers=auth_headers(owner),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_quota_returns_403(
        self, client: AsyncClient, app: FastAPI, owner: UserProfile, store: DocumentStore
    ) -> None:
        for _ in range(10):
            await _create(client, owner)
        await app.state.background_tasks.drain()

        response = await client.post("/api/newpin", json=NEW_PIN, headers=auth_headers(owner))

        assert response.status_code == 403
        assert response.json() == {
            "error": f"UserID: {OWNER_ID} has reached the pin creation limit - aborted!",
            "type": "QuotaExceededError",
        }
        assert await store.pins.count({}) == 10


class TestListEndpoint:
    """Tests for GET /api/."""

    @pytest.mark.asyncio
    async def test_all_pins_are_projected_for_the_viewer(
        self, client: AsyncClient, app: FastAPI, owner: UserProfile, saver: UserProfile
    ) -> None:
        await _create(client, owner)
        await app.state.background_tasks.drain()

        [as_owner] = (await client.get("/api/", headers=auth_headers(owner))).json()
        [as_saver] = (await client.get("/api/", headers=auth_headers(saver))).json()

        assert as_owner["owns"] is True
        assert as_owner["owner"] == "tester-twitter"
        assert "visionApiTags" in as_owner
        assert as_saver["owns"] is False
        assert "visionApiTags" not in as_saver
        assert "originalImgLink" not in as_saver

    @pytest.mark.asyncio
    async def test_profile_requires_user(self, client: AsyncClient) -> None:
        response = await client.get("/api/", params={"type": "profile"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_mode_returns_422(self, client: AsyncClient) -> None:
        response = await client.get("/api/", params={"type": "everything"})
        assert response.status_code == 422


class TestSaveAndDeleteEndpoints:
    """Tests for PUT and DELETE /api/{pin_id}."""

    @pytest.mark.asyncio
    async def test_save_then_unsave(
        self, client: AsyncClient, app: FastAPI, owner: UserProfile, saver: UserProfile
    ) -> None:
        pin = await _create(client, owner)
        await app.state.background_tasks.drain()
        url = f"/api/{pin['_id']}"
        pinner = {"id": saver.user_id, "name": "tester-google", "service": "google"}

        saved = await client.put(url, json=pinner, headers=auth_headers(saver))
        again = await client.put(url, json=pinner, headers=auth_headers(saver))
        [profile] = (
            await client.get("/api/", params={"type": "profile"}, headers=auth_headers(saver))
        ).json()
        unsaved = await client.delete(url, headers=auth_headers(saver))

        assert saved.status_code == 200
        assert [s["id"] for s in saved.json()["savedBy"]] == [saver.user_id]
        assert again.status_code == 204
        assert profile["hasSaved"] is True
        assert unsaved.status_code == 200
        assert unsaved.json()["savedBy"] == []

    @pytest.mark.asyncio
    async def test_save_without_body_uses_headers(
        self, client: AsyncClient, app: FastAPI, owner: UserProfile, saver: UserProfile
    ) -> None:
        pin = await _create(client, owner)
        await app.state.background_tasks.drain()

        response = await client.put(f"/api/{pin['_id']}", headers=auth_headers(saver))

        assert response.status_code == 200
        assert response.json()["savedBy"] == [
            {"id": saver.user_id, "name": "tester-google", "service": "google"}
        ]

    @pytest.mark.asyncio
    async def test_owner_deletes(
        self,
        client: AsyncClient,
        app: FastAPI,
        owner: UserProfile,
        store: DocumentStore,
    ) -> None:
        pin = await _create(client, owner)
        await app.state.background_tasks.drain()

        response = await client.delete(f"/api/{pin['_id']}", headers=auth_headers(owner))

        assert response.status_code == 200
        assert await store.pins.count({}) == 0

    @pytest.mark.asyncio
    async def test_missing_pin_returns_404(self, client: AsyncClient, owner: UserProfile) -> None:
        response = await client.delete("/api/not-a-pin", headers=auth_headers(owner))
        assert response.status_code == 404
        assert response.json()["type"] == "PinNotFoundError"


class TestBrokenLinkEndpoint:
    @pytest.mark.asyncio
    async def test_scan_flags_dead_links(
        self, client: AsyncClient, store: DocumentStore
    ) -> None:
        created = await store.pins.create(
            {
                "owner": {"id": "u1", "name": "n", "service": "twitter"},
                "imgDescription": "d",
                "imgLink": "https://stub-4/gone.png",
                "originalImgLink": "https://stub-4/gone.png",
                "isBroken": False,
            }
        )

        response = await client.get("/api/broken")
        listed = (await client.get("/api/")).json()

        assert response.status_code == 204
        assert (await store.pins.find_by_id(created["_id"]))["isBroken"] is True
        assert listed == []


class TestAIImageEndpoint:
    """Tests for POST /api/AIimage."""

    @pytest.mark.asyncio
    async def test_generated_image_returned(
        self, client: AsyncClient, owner: UserProfile
    ) -> None:
        response = await client.post(
            "/api/AIimage", json={"description": "a red fox"}, headers=auth_headers(owner)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["imgURL"] == AI_IMAGE_URL
        assert data["_id"]

    @pytest.mark.asyncio
    async def test_blank_prompt_returns_204(
        self, client: AsyncClient, owner: UserProfile
    ) -> None:
        response = await client.post(
            "/api/AIimage", json={"description": ""}, headers=auth_headers(owner)
        )
        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_service_failure_returns_empty_fields(
        self, client: AsyncClient, owner: UserProfile, openai_client: MagicMock
    ) -> None:
        openai_client.images.generate.side_effect = RuntimeError("content policy")

        response = await client.post(
            "/api/AIimage", json={"description": "a red fox"}, headers=auth_headers(owner)
        )

        assert response.status_code == 200
        assert response.json() == {"imgURL": "", "title": "", "_id": None}


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_liveness_returns_200(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_readiness_returns_200(self, client: AsyncClient) -> None:
        response = await client.get("/health/ready")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "store_connected": True,
            "storage_configured": True,
        }

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["x-request-id"] == "req-123"


class TestPersistenceFailure:
    @pytest.mark.asyncio
    async def test_driver_error_returns_500(
        self,
        test_settings: Settings,
        mongo_store: DocumentStore,
        mongo_database: MagicMock,
        storage: ObjectStorage,
        http_client: AsyncClient,
        openai_client: MagicMock,
        owner: UserProfile,
    ) -> None:
        mongo_database["pins"].count_documents.side_effect = PyMongoError("connection reset")
        app = create_app()
        init_state(
            app,
            test_settings,
            store=mongo_store,
            storage=storage,
            http=http_client,
            openai_client=openai_client,
        )
        limiter.reset()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post("/api/newpin", json=NEW_PIN, headers=auth_headers(owner))

        assert response.status_code == 500
        assert response.json()["type"] == "PersistenceError"
        assert app.state.background_tasks.pending == 0
