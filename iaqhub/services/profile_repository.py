"""Versioned household profile storage.

Each save appends a new row; reads only ever see the most recent one.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from iaqhub.core.errors import StorageError
from iaqhub.models.database import HouseholdProfile
from iaqhub.models.schemas import ProfileCreate, ProfileRecord

logger = logging.getLogger(__name__)


class ProfileRepository:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def latest(self) -> ProfileRecord | None:
        """Return the current profile, or ``None`` when none was ever saved."""
        stmt = (
            select(HouseholdProfile)
            .order_by(HouseholdProfile.updated_at.desc(), HouseholdProfile.id.desc())
            .limit(1)
        )
        try:
            async with self._session_maker() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                return ProfileRecord.model_validate(row) if row is not None else None
        except SQLAlchemyError as exc:
            logger.error("Profile lookup failed: %s", exc)
            raise StorageError(f"Failed to read profile: {exc}") from exc

    async def save(self, profile: ProfileCreate) -> ProfileRecord:
        """Append ``profile`` as the newest version."""
        row = HouseholdProfile(
            owner_name=profile.owner_name,
            members=[m.model_dump() for m in profile.members],
            preferences=profile.preferences.model_dump(),
            updated_at=datetime.now(UTC),
        )
        async with self._session_maker() as session:
            session.add(row)
            try:
                await session.flush()
                record = ProfileRecord.model_validate(row)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Failed to save profile: %s", exc)
                raise StorageError(f"Failed to save profile: {exc}") from exc
        logger.info("Saved profile version %s (%d members)", record.id, len(record.members))
        return record

    async def delete_all(self) -> int:
        """Remove every stored version. Returns the number of rows removed."""
        async with self._session_maker() as session:
            try:
                result = await session.execute(delete(HouseholdProfile))
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Failed to delete profiles: %s", exc)
                raise StorageError(f"Failed to delete profile: {exc}") from exc
        removed = result.rowcount or 0
        logger.info("Deleted %d profile versions", removed)
        return removed


__all__ = ["ProfileRepository"]
