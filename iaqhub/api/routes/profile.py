"""Household profile API routes for IAQHub."""

from __future__ import annotations

from fastapi import APIRouter

from iaqhub.api.dependencies import ProfileRepositoryDep
from iaqhub.models.schemas import ProfileCreate, ProfileDeleteResponse, ProfileResponse

router = APIRouter()


@router.get("", response_model=ProfileResponse)
async def get_profile(profiles: ProfileRepositoryDep) -> ProfileResponse:
    return ProfileResponse(profile=await profiles.latest())


@router.post("", response_model=ProfileResponse)
async def save_profile(payload: ProfileCreate, profiles: ProfileRepositoryDep) -> ProfileResponse:
    """Store ``payload`` as the newest profile version."""
    return ProfileResponse(profile=await profiles.save(payload))


@router.delete("", response_model=ProfileDeleteResponse)
async def delete_profile(profiles: ProfileRepositoryDep) -> ProfileDeleteResponse:
    removed = await profiles.delete_all()
    return ProfileDeleteResponse(removed=removed)


__all__ = ["router"]
