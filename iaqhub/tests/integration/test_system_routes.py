from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from iaqhub.api import dependencies
from iaqhub.api.main import app_state, live_stream
from iaqhub.api.stream import PING_EVENT, LiveBroadcaster
from iaqhub.core.errors import ProviderError


async def test_health_check(client: AsyncClient, app: FastAPI) -> None:
    await app.state.broadcaster.subscribe()
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["viewers"] == 1
    assert "timestamp" in data
    assert data["started_at"] is None


async def test_health_reports_uptime(
    client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    started = datetime.now(UTC) - timedelta(seconds=90)
    monkeypatch.setattr(app_state, "startup_time", started)

    data = (await client.get("/health")).json()

    assert data["started_at"] == started.isoformat()
    assert 89 <= data["uptime_seconds"] <= 120


async def test_request_id_is_echoed(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    assert float(response.headers["X-Process-Time"]) >= 0


async def test_models_without_key(client: AsyncClient) -> None:
    response = await client.get("/api/v1/models")
    assert response.status_code == 503
    assert response.json()["ok"] is False


async def test_models_listing(client: AsyncClient, app: FastAPI) -> None:
    fake = MagicMock()
    fake.list_models = AsyncMock(return_value=[{"name": "models/gemini-2.5-flash"}])
    app.dependency_overrides[dependencies.get_provider] = lambda: fake

    response = await client.get("/api/v1/models")
    assert response.json() == {"ok": True, "models": [{"name": "models/gemini-2.5-flash"}]}


async def test_models_provider_failure(client: AsyncClient, app: FastAPI) -> None:
    fake = MagicMock()
    fake.list_models = AsyncMock(side_effect=ProviderError("Permission denied", upstream_status=403))
    app.dependency_overrides[dependencies.get_provider] = lambda: fake

    response = await client.get("/api/v1/models")
    assert response.status_code == 502
    assert response.json() == {"ok": False, "error": "Permission denied"}


async def test_stream_response_starts_with_ping() -> None:
    broadcaster = LiveBroadcaster()
    response = await live_stream(broadcaster)

    assert response.media_type == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"
    assert broadcaster.get_connection_count() == 1

    body = response.body_iterator
    assert await anext(body) == PING_EVENT
    await body.aclose()  # type: ignore[attr-defined]
    assert broadcaster.get_connection_count() == 0
