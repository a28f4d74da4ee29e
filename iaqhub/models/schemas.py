"""Pydantic schemas for IAQHub models."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .enums import AdviceSource

# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------


class ReadingRecord(BaseModel):
    """A stored reading. Instances are immutable."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    ts: int
    pm25: float
    voc: float
    c2h5oh: float
    co: float
    predicted_iaq: float
    current_iaq: float | None = None

    def display(self, offset: float = 0.0) -> dict[str, Any]:
        """Return the viewer-facing dict with the display calibration applied."""
        data = self.model_dump()
        if offset and math.isfinite(self.predicted_iaq):
            data["predicted_iaq"] = self.predicted_iaq + offset
        return data


class IngestResponse(BaseModel):
    ok: bool = True
    id: int


class LatestResponse(BaseModel):
    ok: bool = True
    data: dict[str, Any] | None = None


class HistoryResponse(BaseModel):
    ok: bool = True
    data: list[dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Household profile
# ---------------------------------------------------------------------------


class HouseholdMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    relation: str = ""
    age: int | None = None
    conditions: list[str] = Field(default_factory=list)
    notes: str = ""

    @field_validator("age", mode="before")
    @classmethod
    def _coerce_age(cls, v: Any) -> int | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            age = float(v)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(age) or age < 0:
            return None
        return int(age)

    @field_validator("conditions", mode="before")
    @classmethod
    def _dedupe_conditions(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        seen: dict[str, None] = {}
        for item in v:
            cond = str(item).strip()
            if cond:
                seen.setdefault(cond, None)
        return list(seen)


class ProfilePreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    share_with_external: bool = Field(
        default=False,
        validation_alias=AliasChoices("share_with_external", "shareWithGemini"),
    )
    receive_notifications: bool = Field(
        default=True,
        validation_alias=AliasChoices("receive_notifications", "receiveNotifications"),
    )


class ProfileBase(BaseModel):
    owner_name: str = ""
    members: list[HouseholdMember] = Field(default_factory=list)
    preferences: ProfilePreferences = Field(default_factory=ProfilePreferences)


class ProfileCreate(ProfileBase):
    @field_validator("owner_name", mode="before")
    @classmethod
    def _truncate_owner(cls, v: Any) -> str:
        return str(v or "").strip()[:128]


class ProfileRecord(ProfileBase):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    updated_at: datetime

    @field_validator("owner_name", mode="before")
    @classmethod
    def _none_owner(cls, v: Any) -> str:
        return v or ""


class ProfileResponse(BaseModel):
    ok: bool = True
    profile: ProfileRecord | None = None


class ProfileDeleteResponse(BaseModel):
    ok: bool = True
    deleted: bool = True
    removed: int = 0


# ---------------------------------------------------------------------------
# Advisory
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str | None = None
    recent_data: list[dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("recentData", "recent_data"),
    )
    latest: dict[str, Any] | None = None

    @field_validator("recent_data", mode="before")
    @classmethod
    def _list_or_empty(cls, v: Any) -> list[Any]:
        return [r for r in v if isinstance(r, dict)] if isinstance(v, list) else []


class LifestyleRequest(BaseModel):
    latest: dict[str, Any] | None = None
    recent: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("recent", mode="before")
    @classmethod
    def _list_or_empty(cls, v: Any) -> list[Any]:
        return [r for r in v if isinstance(r, dict)] if isinstance(v, list) else []


class AdviceMeta(BaseModel):
    used_external: bool = False
    personalized: bool = False
    profile_summary: str | None = None
    model: str | None = None
    fallback: bool = False
    disclaimer: str = ""


class ChatResponse(BaseModel):
    ok: bool = True
    answer: str
    meta: AdviceMeta


class AdviceBody(BaseModel):
    text: str
    source: AdviceSource
    primary: str | None = None
    tips: list[str] | None = None


class LifestyleResponse(BaseModel):
    ok: bool = True
    context: dict[str, Any] = Field(default_factory=dict)
    advice: AdviceBody
    meta: AdviceMeta


class EmergencyResponse(BaseModel):
    ok: bool = True
    emergency: bool
    message: str


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
