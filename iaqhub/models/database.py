"""SQLAlchemy models and async engine manager for IAQHub."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

_db_logger = logging.getLogger(__name__)


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""


def utcnow() -> datetime:
    return datetime.now(UTC)


class Reading(Base):
    """One stored sensor sample. Rows are only ever inserted."""

    __tablename__ = "readings"
    __table_args__ = (Index("ix_readings_ts_id", "ts", "id"),)

    id: Mapped[int] = mapped_column(Integer(), primary_key=True, autoincrement=True)
    ts: Mapped[int] = mapped_column(Integer(), nullable=False)
    pm25: Mapped[float] = mapped_column(Float(), nullable=False)
    voc: Mapped[float] = mapped_column(Float(), nullable=False)
    c2h5oh: Mapped[float] = mapped_column(Float(), nullable=False)
    co: Mapped[float] = mapped_column(Float(), nullable=False)
    predicted_iaq: Mapped[float] = mapped_column(Float(), nullable=False)
    current_iaq: Mapped[float | None] = mapped_column(Float(), nullable=True)


class HouseholdProfile(Base):
    """One saved version of the household profile."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer(), primary_key=True, autoincrement=True)
    owner_name: Mapped[str | None] = mapped_column(String(128))
    members: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    preferences: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )


# ---------------------------------------------------------------------------
# Engine management
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    kwargs: dict[str, Any] = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)
    return create_async_engine(database_url, **kwargs)


def get_engine() -> AsyncEngine:
    """Get the global async engine."""
    global _engine
    if _engine is None:
        from iaqhub.config import get_settings

        settings = get_settings()
        _db_logger.info("Creating engine -> %s", settings.database_url)
        _engine = build_engine(settings.database_url, echo=settings.debug)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the global session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


def _reading_columns(sync_conn: Any) -> set[str]:
    return {col["name"] for col in inspect(sync_conn).get_columns("readings")}


async def _add_current_iaq_column(conn: AsyncConnection) -> None:
    """Add ``current_iaq`` to readings tables created before the column existed."""
    try:
        if "current_iaq" in await conn.run_sync(_reading_columns):
            return
        await conn.execute(text("ALTER TABLE readings ADD COLUMN current_iaq FLOAT"))
        _db_logger.info("Added current_iaq column to readings")
    except SQLAlchemyError as exc:
        _db_logger.warning("Failed to add current_iaq column: %s", exc)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables and apply the in-place column migration."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _add_current_iaq_column(conn)


async def init_db() -> None:
    """Initialize database - create all tables."""
    await create_schema(get_engine())


async def close_db() -> None:
    """Close database connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


__all__ = [
    "Base",
    "HouseholdProfile",
    "Reading",
    "build_engine",
    "close_db",
    "create_schema",
    "get_engine",
    "get_session_maker",
    "init_db",
]
