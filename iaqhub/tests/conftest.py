from collections.abc import AsyncGenerator, Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from iaqhub.api import dependencies
from iaqhub.api.main import app as fastapi_app
from iaqhub.api.stream import LiveBroadcaster
from iaqhub.models.database import build_engine, create_schema
from iaqhub.models.schemas import ProfileCreate
from iaqhub.services.profile_repository import ProfileRepository
from iaqhub.services.reading_store import NewReading, ReadingStore


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Fresh SQLite database per test."""
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'iaq-test.db'}")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(session_maker: async_sessionmaker[AsyncSession]) -> ReadingStore:
    return ReadingStore(session_maker)


@pytest.fixture
def profiles(session_maker: async_sessionmaker[AsyncSession]) -> ProfileRepository:
    return ProfileRepository(session_maker)


@pytest.fixture
def make_reading() -> Callable[..., NewReading]:
    def _make(ts: int = 1_700_000_000, **overrides: Any) -> NewReading:
        values: dict[str, Any] = {
            "pm25": 12.0,
            "voc": 150.0,
            "c2h5oh": 80.0,
            "co": 2.0,
            "predicted_iaq": 40.0,
            "current_iaq": 38.0,
        }
        values.update(overrides)
        return NewReading(ts=ts, **values)

    return _make


@pytest.fixture
def make_profile() -> Callable[..., ProfileCreate]:
    def _make(*, share: bool = False, members: list[dict[str, Any]] | None = None) -> ProfileCreate:
        return ProfileCreate.model_validate(
            {
                "owner_name": "Sam",
                "members": members if members is not None else [],
                "preferences": {"shareWithGemini": share, "receiveNotifications": True},
            }
        )

    return _make


@pytest.fixture
def app(
    store: ReadingStore, profiles: ProfileRepository
) -> Generator[FastAPI]:
    """The application wired to the per-test database and no provider."""
    previous = fastapi_app.state.broadcaster
    fastapi_app.state.broadcaster = LiveBroadcaster()
    fastapi_app.dependency_overrides[dependencies.get_reading_store] = lambda: store
    fastapi_app.dependency_overrides[dependencies.get_profile_repository] = lambda: profiles
    fastapi_app.dependency_overrides[dependencies.get_provider] = lambda: None
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()
    fastapi_app.state.broadcaster = previous


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
