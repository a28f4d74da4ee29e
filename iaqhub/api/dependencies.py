"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from iaqhub.api.stream import LiveBroadcaster
from iaqhub.config import SETTINGS, Settings
from iaqhub.core.advisor import AdvisoryOrchestrator
from iaqhub.core.ingestion import IngestionService
from iaqhub.core.rule_engine import RuleEngine
from iaqhub.integrations.llm.provider import GeminiProvider, ProviderSettings
from iaqhub.models.database import get_session_maker
from iaqhub.services.profile_repository import ProfileRepository
from iaqhub.services.reading_store import ReadingStore

# ---------------------------------------------------------------------------
# Settings dependency
# ---------------------------------------------------------------------------


def get_settings_dependency() -> Settings:
    return SETTINGS


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# ---------------------------------------------------------------------------
# Storage dependencies
# ---------------------------------------------------------------------------


def get_reading_store() -> ReadingStore:
    return ReadingStore(get_session_maker())


def get_profile_repository() -> ProfileRepository:
    return ProfileRepository(get_session_maker())


ReadingStoreDep = Annotated[ReadingStore, Depends(get_reading_store)]
ProfileRepositoryDep = Annotated[ProfileRepository, Depends(get_profile_repository)]


# ---------------------------------------------------------------------------
# Live viewers
# ---------------------------------------------------------------------------


def get_broadcaster(request: Request) -> LiveBroadcaster:
    """Return the broadcaster created during app startup."""
    return request.app.state.broadcaster


BroadcasterDep = Annotated[LiveBroadcaster, Depends(get_broadcaster)]


def get_ingestion_service(
    store: ReadingStoreDep, broadcaster: BroadcasterDep, settings: SettingsDep
) -> IngestionService:
    return IngestionService(store, broadcaster, display_offset=settings.iaq_display_offset)


IngestionDep = Annotated[IngestionService, Depends(get_ingestion_service)]


# ---------------------------------------------------------------------------
# Advisory dependencies
# ---------------------------------------------------------------------------


def get_provider(settings: SettingsDep) -> GeminiProvider | None:
    """Build the Gemini provider, or ``None`` when no API key is configured."""
    if not settings.provider_configured:
        return None
    return GeminiProvider(
        ProviderSettings(
            api_key=settings.gemini_api_key or "",
            default_model=settings.gemini_model,
            fallback_models=settings.fallback_models,
            base_url=settings.gemini_base_url,
            timeout_s=settings.provider_timeout_s,
        )
    )


ProviderDep = Annotated[GeminiProvider | None, Depends(get_provider)]


def get_advisor(profiles: ProfileRepositoryDep, provider: ProviderDep) -> AdvisoryOrchestrator:
    return AdvisoryOrchestrator(profiles, provider, RuleEngine())


AdvisorDep = Annotated[AdvisoryOrchestrator, Depends(get_advisor)]


__all__ = [
    "AdvisorDep",
    "BroadcasterDep",
    "IngestionDep",
    "ProfileRepositoryDep",
    "ProviderDep",
    "ReadingStoreDep",
    "SettingsDep",
    "get_advisor",
    "get_broadcaster",
    "get_ingestion_service",
    "get_profile_repository",
    "get_provider",
    "get_reading_store",
    "get_settings_dependency",
]
