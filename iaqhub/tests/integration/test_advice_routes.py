from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from iaqhub.api import dependencies
from iaqhub.core.advisor import DISCLAIMER, NO_EMERGENCY_MESSAGE, PRIVACY_LOCAL
from iaqhub.core.errors import ProviderError
from iaqhub.integrations.llm.provider import Aborted, Accepted, Blocked, Exhausted
from iaqhub.models.schemas import ProfileCreate
from iaqhub.services.profile_repository import ProfileRepository
from iaqhub.services.reading_store import NewReading, ReadingStore

LATEST = {"pm25": 20, "voc": 100, "c2h5oh": 50, "co": 2, "predicted_iaq": 40}


@pytest.fixture
def provider(app: FastAPI) -> MagicMock:
    """Install a fake provider for the duration of a test."""
    fake = MagicMock()
    fake.generate = AsyncMock(return_value=Accepted(text="Open a window.", model="gemini-2.0-flash"))
    app.dependency_overrides[dependencies.get_provider] = lambda: fake
    return fake


# ===================================================================
# chat
# ===================================================================


class TestChatRoute:
    async def test_missing_question(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/chat", json={"recentData": []})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Missing question"}

    async def test_non_string_question_is_400(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/chat", json={"question": {"text": "hi"}})
        assert response.status_code == 400
        body = response.json()
        assert body["ok"] is False
        assert body["error"].startswith("Invalid request: question")

    async def test_local_answer(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/chat", json={"question": "How is it?", "latest": LATEST, "recentData": [LATEST]}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["answer"].startswith("Here's what I see. Projected IAQ is good.")
        assert body["answer"].endswith(DISCLAIMER)
        assert body["meta"]["used_external"] is False
        assert body["meta"]["disclaimer"] == PRIVACY_LOCAL

    async def test_provider_not_called_when_sharing_disabled(
        self,
        client: AsyncClient,
        provider: MagicMock,
        profiles: ProfileRepository,
        make_profile: Callable[..., ProfileCreate],
    ) -> None:
        await profiles.save(make_profile(share=False))
        response = await client.post("/api/v1/chat", json={"question": "Hi?", "latest": LATEST})
        assert response.status_code == 200
        provider.generate.assert_not_awaited()

    async def test_shared_answer(
        self,
        client: AsyncClient,
        provider: MagicMock,
        profiles: ProfileRepository,
        make_profile: Callable[..., ProfileCreate],
    ) -> None:
        await profiles.save(make_profile(share=True))
        response = await client.post("/api/v1/chat", json={"question": "Hi?", "latest": LATEST})

        body = response.json()
        assert body["answer"] == f"Open a window.\n\n{DISCLAIMER}"
        assert body["meta"]["used_external"] is True
        assert body["meta"]["model"] == "gemini-2.0-flash"

    async def test_non_retryable_failure_is_502(
        self,
        client: AsyncClient,
        provider: MagicMock,
        profiles: ProfileRepository,
        make_profile: Callable[..., ProfileCreate],
    ) -> None:
        provider.generate.return_value = Aborted(
            ProviderError("API key not valid", upstream_status=400, model="m")
        )
        await profiles.save(make_profile(share=True))

        response = await client.post("/api/v1/chat", json={"question": "Hi?", "latest": LATEST})
        assert response.status_code == 502
        assert response.json() == {"ok": False, "error": "API key not valid"}

    async def test_safety_block_is_200_with_error(
        self,
        client: AsyncClient,
        provider: MagicMock,
        profiles: ProfileRepository,
        make_profile: Callable[..., ProfileCreate],
    ) -> None:
        provider.generate.return_value = Blocked(reason="SAFETY", model="m")
        await profiles.save(make_profile(share=True))

        response = await client.post("/api/v1/chat", json={"question": "Hi?", "latest": LATEST})
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert "safety filter (SAFETY)" in body["error"]

    async def test_exhausted_chain_is_not_an_error(
        self,
        client: AsyncClient,
        provider: MagicMock,
        profiles: ProfileRepository,
        make_profile: Callable[..., ProfileCreate],
    ) -> None:
        provider.generate.return_value = Exhausted(last_error="overloaded")
        await profiles.save(make_profile(share=True))

        response = await client.post("/api/v1/chat", json={"question": "Hi?", "latest": LATEST})
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert "(Temporary fallback because AI model was unavailable)" in body["answer"]
        assert body["meta"]["fallback"] is True


# ===================================================================
# lifestyle advice
# ===================================================================


class TestLifestyleRoutes:
    async def test_get_without_data_is_404(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/lifestyle-advice")
        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "no data"}

    async def test_get_uses_stored_readings(
        self, client: AsyncClient, store: ReadingStore, make_reading: Callable[..., NewReading]
    ) -> None:
        for ts in range(25):
            await store.append(make_reading(ts=ts, voc=700.0, predicted_iaq=160.0))

        response = await client.get("/api/v1/lifestyle-advice")

        assert response.status_code == 200
        body = response.json()
        assert body["context"]["recent_count"] == 20
        assert body["context"]["categories"]["voc"] == "high"
        assert body["advice"]["source"] == "local"
        assert body["advice"]["primary"].startswith("Air quality is unhealthy.")
        assert len(body["advice"]["tips"]) == 1

    async def test_post_uses_client_context(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/lifestyle-advice", json={"latest": LATEST, "recent": [LATEST] * 5}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["advice"]["source"] == "local"
        assert body["advice"]["tips"] == []
        assert body["context"]["trends"]["pm25"] == "steady"

    async def test_post_external(
        self,
        client: AsyncClient,
        provider: MagicMock,
        profiles: ProfileRepository,
        make_profile: Callable[..., ProfileCreate],
    ) -> None:
        await profiles.save(make_profile(share=True))
        response = await client.post("/api/v1/lifestyle-advice", json={"latest": LATEST})

        advice = response.json()["advice"]
        assert advice["source"] == "external"
        assert advice["text"].startswith("Open a window.")


# ===================================================================
# emergency check
# ===================================================================


class TestEmergencyRoute:
    async def test_no_data(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/emergency-check")
        assert response.json() == {"ok": True, "emergency": False, "message": NO_EMERGENCY_MESSAGE}

    async def test_uses_raw_stored_value(
        self,
        client: AsyncClient,
        app: FastAPI,
        store: ReadingStore,
        make_reading: Callable[..., NewReading],
    ) -> None:
        from iaqhub.config import Settings

        app.dependency_overrides[dependencies.get_settings_dependency] = lambda: Settings(
            iaq_display_offset=-50.0
        )
        await store.append(make_reading(predicted_iaq=300.0))

        body = (await client.get("/api/v1/emergency-check")).json()
        assert body["emergency"] is True
        assert body["message"].startswith("Predicted IAQ is hazardous.")
