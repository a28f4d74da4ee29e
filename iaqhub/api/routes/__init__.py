"""API route registration for IAQHub."""

from fastapi import APIRouter

from . import advice, profile, readings, system


def _build_router(prefix: str = "", *, include_in_schema: bool = True) -> APIRouter:
    router = APIRouter(prefix=prefix, include_in_schema=include_in_schema)
    router.include_router(readings.router, tags=["readings"])
    router.include_router(advice.router, tags=["advice"])
    router.include_router(profile.router, prefix="/profile", tags=["profile"])
    router.include_router(system.router, tags=["system"])
    return router


api_router = _build_router("/api/v1")
# Same endpoints at the root, where the sensor device and the bundled client call them.
device_router = _build_router(include_in_schema=False)


__all__ = [
    "advice",
    "api_router",
    "device_router",
    "profile",
    "readings",
    "system",
]
