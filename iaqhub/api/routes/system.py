"""System-level FastAPI routes for IAQHub."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from iaqhub.api.dependencies import ProviderDep
from iaqhub.core.errors import ProviderNotConfigured

logger = logging.getLogger(__name__)

router = APIRouter()


class ModelsResponse(BaseModel):
    ok: bool = True
    models: list[dict[str, Any]] = Field(default_factory=list)


@router.get("/models", response_model=ModelsResponse)
async def list_models(provider: ProviderDep) -> ModelsResponse:
    """List the provider models visible to the configured API key."""
    if provider is None:
        raise ProviderNotConfigured("GEMINI_API_KEY not set")
    models = await provider.list_models()
    logger.info("Provider reports %d models", len(models))
    return ModelsResponse(models=models)


__all__ = ["ModelsResponse", "router"]
