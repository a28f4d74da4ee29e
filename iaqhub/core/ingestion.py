"""Validation and hand-off of readings posted by the sensor device."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol

from iaqhub.core.errors import ValidationError
from iaqhub.core.trend import as_finite
from iaqhub.models.schemas import ReadingRecord
from iaqhub.services.reading_store import NewReading

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = ("pm25", "voc", "c2h5oh", "co")
# Accepted spellings for a field besides its canonical name.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {"c2h5oh": ("ethanol",)}
# Timestamps are stored in a signed 64-bit INTEGER column.
TS_MIN = -(2**63)
TS_MAX = 2**63 - 1


class _Store(Protocol):
    async def append(self, reading: NewReading) -> int: ...


class _Broadcaster(Protocol):
    async def publish(self, record: Mapping[str, Any]) -> int: ...


def _lookup(payload: Mapping[str, Any], key: str) -> Any:
    if key in payload:
        return payload[key]
    for alias in _FIELD_ALIASES.get(key, ()):
        if alias in payload:
            return payload[alias]
    return None


def validate_reading(payload: Any, *, now: int | None = None) -> NewReading:
    """Normalize a raw device payload into a storable reading.

    Raises:
        ValidationError: when a sensor field is missing or not a finite
            number, when ``ts`` is not numeric or outside the 64-bit
            range, or when neither ``predicted_iaq`` nor ``current_iaq``
            is usable.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Reading must be a JSON object")

    sensors: dict[str, float] = {}
    bad = []
    for key in REQUIRED_FIELDS:
        value = as_finite(_lookup(payload, key))
        if value is None:
            bad.append(key)
        else:
            sensors[key] = value
    if bad:
        raise ValidationError(f"Invalid numeric sensor fields: {', '.join(bad)}")

    current_iaq = as_finite(payload.get("current_iaq"))
    predicted_iaq = as_finite(payload.get("predicted_iaq"))
    if predicted_iaq is None:
        predicted_iaq = current_iaq
    if predicted_iaq is None:
        raise ValidationError(
            "Missing predicted_iaq and no valid current_iaq fallback (no usable prediction value)"
        )

    raw_ts = payload.get("ts")
    if raw_ts is None:
        ts = now if now is not None else int(time.time())
    else:
        ts_value = as_finite(raw_ts)
        if ts_value is None:
            raise ValidationError("ts must be a finite number of epoch seconds")
        ts = int(ts_value)
        if not TS_MIN <= ts <= TS_MAX:
            raise ValidationError("ts is out of range")

    return NewReading(
        ts=ts,
        predicted_iaq=predicted_iaq,
        current_iaq=current_iaq,
        **sensors,
    )


class IngestionService:
    """Validate, persist, then broadcast each incoming reading.

    The broadcast only starts after the store write returned, and a failing
    broadcast never undoes or fails the ingestion.
    """

    def __init__(
        self,
        store: _Store,
        broadcaster: _Broadcaster,
        *,
        display_offset: float = 0.0,
    ) -> None:
        self._store = store
        self._broadcaster = broadcaster
        self._display_offset = display_offset

    async def ingest(self, payload: Any) -> ReadingRecord:
        reading = validate_reading(payload)
        reading_id = await self._store.append(reading)
        record = ReadingRecord(
            id=reading_id,
            ts=reading.ts,
            pm25=reading.pm25,
            voc=reading.voc,
            c2h5oh=reading.c2h5oh,
            co=reading.co,
            predicted_iaq=reading.predicted_iaq,
            current_iaq=reading.current_iaq,
        )
        logger.debug("Stored reading id=%s ts=%s iaq=%s", record.id, record.ts, record.predicted_iaq)
        try:
            await self._broadcaster.publish(record.display(self._display_offset))
        except Exception:
            logger.exception("Broadcast of reading %s failed", record.id)
        return record


__all__ = ["REQUIRED_FIELDS", "IngestionService", "validate_reading"]
