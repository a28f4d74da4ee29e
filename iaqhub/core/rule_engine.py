"""Deterministic rule engine for IAQHub advisory text."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from iaqhub.core.trend import as_finite
from iaqhub.models.enums import IAQBand, SensorLevel

logger = logging.getLogger(__name__)

EMERGENCY_IAQ = 300.0

PRIMARY_EMERGENCY = (
    "Emergency: Move to fresh air if feeling unwell. Increase ventilation immediately "
    "(open windows, use exhaust fans). Avoid sources like cooking or solvents."
)
PRIMARY_VERY_UNHEALTHY = (
    "Air quality is very unhealthy. Ventilate now, pause activities that emit fumes, "
    "and consider wearing a well-fitted mask while ventilating."
)
PRIMARY_UNHEALTHY = (
    "Air quality is unhealthy. Open windows, run kitchen/bath exhaust, and reduce indoor "
    "emission sources for the next hour."
)
PRIMARY_SENSITIVE = (
    "Air quality may affect sensitive individuals. Ventilate and avoid strong cleaners "
    "or aerosols for a while."
)
PRIMARY_ACCEPTABLE = (
    "Air quality looks acceptable. Keep light ventilation and monitor for changes."
)
PRIMARY_UNKNOWN = "Maintain light ventilation and monitor."

TIP_PM25 = "Reduce dust and cooking smoke; use exhaust hoods during cooking."
TIP_VOC = "Minimize VOC sources (paints, cleaners, aerosols); ventilate during and after use."
TIP_CO = (
    "Ensure no combustion sources indoors; ventilate and step outside if headaches "
    "or dizziness occur."
)

MAX_TIPS = 3

# (high, elevated) cutoffs; a value strictly above a cutoff lands in that level.
DEFAULT_SENSOR_CUTOFFS: dict[str, tuple[float, float]] = {
    "pm25": (100.0, 50.0),
    "voc": (600.0, 300.0),
    "c2h5oh": (500.0, 200.0),
    "co": (20.0, 9.0),
}

# Upper bounds (exclusive) of each IAQ band, lowest first.
_IAQ_BANDS: tuple[tuple[float, IAQBand], ...] = (
    (50.0, IAQBand.good),
    (100.0, IAQBand.moderate),
    (150.0, IAQBand.usg),
    (200.0, IAQBand.unhealthy),
    (300.0, IAQBand.very_unhealthy),
)

# Lower bounds (inclusive) of each primary-sentence tier, highest first.
_PRIMARY_TIERS: tuple[tuple[float, str], ...] = (
    (EMERGENCY_IAQ, PRIMARY_EMERGENCY),
    (200.0, PRIMARY_VERY_UNHEALTHY),
    (150.0, PRIMARY_UNHEALTHY),
    (100.0, PRIMARY_SENSITIVE),
)


@dataclass(slots=True)
class LocalAdvice:
    """Output of the rule engine: one primary sentence plus optional tips."""

    primary: str
    tips: list[str] = field(default_factory=list)


class RuleEngine:
    """Map sensor levels and the IAQ index to cautious, non-diagnostic advice."""

    def __init__(
        self,
        *,
        sensor_cutoffs: Mapping[str, tuple[float, float]] | None = None,
        max_tips: int = MAX_TIPS,
    ) -> None:
        self._cutoffs = dict(sensor_cutoffs or DEFAULT_SENSOR_CUTOFFS)
        self._max_tips = max_tips

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def categorize(self, latest: Mapping[str, Any] | None) -> dict[str, str]:
        """Bucket every sensor of ``latest`` plus its IAQ value.

        Keys whose value is missing or not a finite number are left out.
        """
        if not latest:
            return {}
        categories: dict[str, str] = {}
        iaq = as_finite(latest.get("predicted_iaq"))
        if iaq is not None:
            categories["iaq"] = self.iaq_band(iaq)
        for key in self._cutoffs:
            value = as_finite(latest.get(key))
            if value is not None:
                categories[key] = self.sensor_level(key, value)
        return categories

    def iaq_band(self, iaq: float) -> IAQBand:
        for upper, band in _IAQ_BANDS:
            if iaq < upper:
                return band
        return IAQBand.hazardous

    def sensor_level(self, key: str, value: float) -> SensorLevel:
        high, elevated = self._cutoffs[key]
        if value > high:
            return SensorLevel.high
        if value > elevated:
            return SensorLevel.elevated
        return SensorLevel.ok

    def primary_advice(self, iaq: Any) -> str:
        value = as_finite(iaq)
        if value is None:
            return PRIMARY_UNKNOWN
        for lower, sentence in _PRIMARY_TIERS:
            if value >= lower:
                return sentence
        return PRIMARY_ACCEPTABLE

    def supplementary_tips(self, categories: Mapping[str, str]) -> list[str]:
        tips: list[str] = []
        if categories.get("pm25") == SensorLevel.high:
            tips.append(TIP_PM25)
        if self._not_ok(categories, "voc"):
            tips.append(TIP_VOC)
        if self._not_ok(categories, "co"):
            tips.append(TIP_CO)
        return tips[: self._max_tips]

    def advise(
        self, latest: Mapping[str, Any] | None, categories: Mapping[str, str] | None = None
    ) -> LocalAdvice:
        """Produce the full local advice for a reading."""
        cats = categories if categories is not None else self.categorize(latest)
        primary = self.primary_advice((latest or {}).get("predicted_iaq"))
        tips = self.supplementary_tips(cats)
        logger.debug("Local advice: iaq=%s tips=%d", cats.get("iaq"), len(tips))
        return LocalAdvice(primary=primary, tips=tips)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _not_ok(categories: Mapping[str, str], key: str) -> bool:
        level = categories.get(key)
        return level is not None and level != SensorLevel.ok


def is_emergency(iaq: Any) -> bool:
    value = as_finite(iaq)
    return value is not None and value >= EMERGENCY_IAQ


__all__ = [
    "EMERGENCY_IAQ",
    "LocalAdvice",
    "RuleEngine",
    "is_emergency",
]
