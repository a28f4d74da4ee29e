"""Advisory API routes: chat, lifestyle advice and the emergency check."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from iaqhub.api.dependencies import AdvisorDep, ReadingStoreDep
from iaqhub.core.advisor import LIFESTYLE_WINDOW
from iaqhub.core.errors import NotFoundError
from iaqhub.models.schemas import (
    ChatRequest,
    ChatResponse,
    EmergencyResponse,
    LifestyleRequest,
    LifestyleResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest, advisor: AdvisorDep) -> ChatResponse:
    """Answer a free-text question about the current air quality."""
    return await advisor.chat(payload.question, payload.latest, payload.recent_data)


@router.get("/lifestyle-advice", response_model=LifestyleResponse)
async def lifestyle_advice_from_store(
    store: ReadingStoreDep, advisor: AdvisorDep
) -> LifestyleResponse:
    latest = await store.latest()
    if latest is None:
        raise NotFoundError("no data")
    recent = await store.range(LIFESTYLE_WINDOW)
    return await advisor.lifestyle_advice(
        latest.model_dump(), [r.model_dump() for r in recent]
    )


@router.post("/lifestyle-advice", response_model=LifestyleResponse)
async def lifestyle_advice_from_client(
    payload: LifestyleRequest, advisor: AdvisorDep
) -> LifestyleResponse:
    return await advisor.lifestyle_advice(payload.latest, payload.recent)


@router.get("/emergency-check", response_model=EmergencyResponse)
async def emergency_check(store: ReadingStoreDep, advisor: AdvisorDep) -> EmergencyResponse:
    latest = await store.latest()
    return await advisor.emergency_check(latest.model_dump() if latest else None)


__all__ = ["router"]
