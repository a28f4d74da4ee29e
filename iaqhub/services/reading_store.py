"""Append-only persistence for sensor readings."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from iaqhub.core.errors import StorageError
from iaqhub.models.database import Reading
from iaqhub.models.schemas import ReadingRecord

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 500
MAX_HISTORY_LIMIT = 5000
_EXPORT_PAGE_SIZE = 500


@dataclass(frozen=True, slots=True)
class NewReading:
    """A validated reading that has not been assigned an id yet."""

    ts: int
    pm25: float
    voc: float
    c2h5oh: float
    co: float
    predicted_iaq: float
    current_iaq: float | None = None


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_HISTORY_LIMIT
    return min(max(int(limit), 1), MAX_HISTORY_LIMIT)


class ReadingStore:
    """Durable, append-only log of readings ordered by ``(ts, id)``.

    Every call runs in its own session, so concurrent ingestions never share
    a transaction and each append is committed before it returns.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def append(self, reading: NewReading) -> int:
        """Insert ``reading`` and return its assigned id."""
        async with self._session_maker() as session:
            row = Reading(**asdict(reading))
            session.add(row)
            try:
                await session.flush()
                new_id = row.id
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Failed to store reading ts=%s: %s", reading.ts, exc)
                raise StorageError(f"Failed to store reading: {exc}") from exc
            return new_id

    async def latest(self) -> ReadingRecord | None:
        stmt = select(Reading).order_by(Reading.ts.desc(), Reading.id.desc()).limit(1)
        rows = await self._fetch(stmt)
        return rows[0] if rows else None

    async def range(self, limit: int | None = DEFAULT_HISTORY_LIMIT) -> list[ReadingRecord]:
        """Return the most recent ``limit`` readings, oldest first."""
        stmt = (
            select(Reading)
            .order_by(Reading.ts.desc(), Reading.id.desc())
            .limit(clamp_limit(limit))
        )
        rows = await self._fetch(stmt)
        rows.reverse()
        return rows

    async def iter_all(self, *, page_size: int = _EXPORT_PAGE_SIZE) -> AsyncIterator[ReadingRecord]:
        """Yield every stored reading in ascending time order, one page at a time."""
        last: ReadingRecord | None = None
        while True:
            stmt = select(Reading).order_by(Reading.ts.asc(), Reading.id.asc()).limit(page_size)
            if last is not None:
                stmt = stmt.where(
                    or_(
                        Reading.ts > last.ts,
                        and_(Reading.ts == last.ts, Reading.id > last.id),
                    )
                )
            page = await self._fetch(stmt)
            for record in page:
                yield record
            if len(page) < page_size:
                return
            last = page[-1]

    async def _fetch(self, stmt) -> list[ReadingRecord]:  # type: ignore[no-untyped-def]
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                return [ReadingRecord.model_validate(r) for r in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Reading query failed: %s", exc)
            raise StorageError(f"Failed to read readings: {exc}") from exc


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "MAX_HISTORY_LIMIT",
    "NewReading",
    "ReadingStore",
    "clamp_limit",
]
