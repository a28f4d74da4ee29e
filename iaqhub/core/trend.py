"""Qualitative trend labels over a short window of recent samples."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from iaqhub.models.enums import Trend

TREND_WINDOW = 16
_MIN_SAMPLES = 4
_STEADY_MAGNITUDE = 0.01
_SLIGHT_RELATIVE = 0.05

# Series name -> label used in the human-readable summary.
TREND_SERIES: dict[str, str] = {
    "pm25": "PM2.5",
    "voc": "VoC",
    "c2h5oh": "Ethanol",
    "co": "CO",
    "predicted_iaq": "Pred. IAQ",
}


def as_finite(value: Any) -> float | None:
    """Return ``value`` as a float when it is a real, finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def trend(series: Iterable[Any]) -> Trend:
    """Classify the direction of the last :data:`TREND_WINDOW` usable values.

    Non-numeric and non-finite entries are dropped before windowing. The
    change between the first and last value of the window is compared with
    the first value (never less than 1) to tell slight moves from real ones.
    """
    values = [v for v in (as_finite(x) for x in series) if v is not None]
    if len(values) < _MIN_SAMPLES:
        return Trend.insufficient

    window = values[-TREND_WINDOW:]
    first, last = window[0], window[-1]
    delta = last - first
    magnitude = abs(delta)
    base = max(1.0, abs(first))
    relative = magnitude / base

    if magnitude < _STEADY_MAGNITUDE:
        return Trend.steady
    if relative < _SLIGHT_RELATIVE:
        return Trend.slightly_rising if delta > 0 else Trend.slightly_falling
    return Trend.rising if delta > 0 else Trend.falling


def series_trends(readings: Sequence[Mapping[str, Any]]) -> dict[str, Trend]:
    """Trend label for every tracked series of a list of reading dicts."""
    return {key: trend(r.get(key) for r in readings) for key in TREND_SERIES}


def summarize_trends(trends: Mapping[str, Trend]) -> str:
    parts = [f"{label}: {trends.get(key, Trend.insufficient)}" for key, label in TREND_SERIES.items()]
    return "; ".join(parts) + "."


__all__ = ["TREND_SERIES", "TREND_WINDOW", "as_finite", "series_trends", "summarize_trends", "trend"]
