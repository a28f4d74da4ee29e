"""Domain enums for IAQHub."""

from enum import StrEnum


class Trend(StrEnum):
    insufficient = "insufficient data"
    steady = "steady"
    slightly_rising = "slightly rising"
    slightly_falling = "slightly falling"
    rising = "rising"
    falling = "falling"


class SensorLevel(StrEnum):
    ok = "ok"
    elevated = "elevated"
    high = "high"


class IAQBand(StrEnum):
    good = "good"
    moderate = "moderate"
    usg = "usg"
    unhealthy = "unhealthy"
    very_unhealthy = "very-unhealthy"
    hazardous = "hazardous"


class AdviceSource(StrEnum):
    external = "external"
    local = "local"
