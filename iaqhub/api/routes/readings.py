"""Reading ingestion, query and export routes for IAQHub."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Annotated, Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from iaqhub.api.dependencies import IngestionDep, ReadingStoreDep, SettingsDep
from iaqhub.core.errors import ValidationError
from iaqhub.models.schemas import HistoryResponse, IngestResponse, LatestResponse
from iaqhub.services.reading_store import (
    DEFAULT_HISTORY_LIMIT,
    ReadingStore,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CSV_COLUMNS = ("id", "ts", "pm25", "voc", "c2h5oh", "co", "predicted_iaq", "current_iaq")
EXPORT_FILENAME = "iaq_export.csv"


def _csv_line(values: Iterable[Any]) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(["" if v is None else v for v in values])
    return buf.getvalue()


async def iter_csv(store: ReadingStore) -> AsyncIterator[str]:
    """Stream every stored reading as CSV, raw values, oldest first."""
    yield _csv_line(CSV_COLUMNS)
    exported = 0
    try:
        async for record in store.iter_all():
            yield _csv_line(getattr(record, col) for col in CSV_COLUMNS)
            exported += 1
    except Exception as exc:
        logger.exception("CSV export failed after %d rows", exported)
        yield f"# Error exporting CSV: {exc}\n"
        return
    logger.info("Exported %d readings as CSV", exported)


def _parse_limit(raw: str | None) -> int:
    try:
        return int(raw) if raw is not None else DEFAULT_HISTORY_LIMIT
    except ValueError:
        return DEFAULT_HISTORY_LIMIT


@router.post("/data", response_model=IngestResponse)
async def ingest_reading(request: Request, ingestion: IngestionDep) -> IngestResponse:
    """Accept one reading from the sensor device."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    record = await ingestion.ingest(payload)
    return IngestResponse(id=record.id)


@router.get("/latest", response_model=LatestResponse)
async def latest_reading(store: ReadingStoreDep, settings: SettingsDep) -> LatestResponse:
    record = await store.latest()
    if record is None:
        return LatestResponse(data=None)
    return LatestResponse(data=record.display(settings.iaq_display_offset))


@router.get("/history", response_model=HistoryResponse)
async def reading_history(
    store: ReadingStoreDep,
    settings: SettingsDep,
    limit: Annotated[str | None, Query()] = None,
) -> HistoryResponse:
    """Most recent readings in chronological order.

    ``limit`` is clamped to [1, 5000]; a value that is not an integer means
    the default of 500.
    """
    records = await store.range(_parse_limit(limit))
    offset = settings.iaq_display_offset
    return HistoryResponse(data=[r.display(offset) for r in records])


@router.get("/export.csv")
async def export_csv(store: ReadingStoreDep) -> StreamingResponse:
    return StreamingResponse(
        iter_csv(store),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


__all__ = ["CSV_COLUMNS", "iter_csv", "router"]
