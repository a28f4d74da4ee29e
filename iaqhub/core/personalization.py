"""Household-aware wording for advisory text.

Both helpers are additive: they never remove or reword the advice they are
given.
"""

from __future__ import annotations

import re

from iaqhub.models.schemas import HouseholdMember, ProfileRecord

RESPIRATORY_NOTE = (
    " Note: Because someone in your home has a respiratory condition, prioritize protective "
    "steps and consult a healthcare provider if symptoms occur."
)
ELDERLY_NOTE = (
    " Also, keep elderly family members out of exposure and seek medical help for dizziness "
    "or breathing difficulty."
)
ELDERLY_AGE = 60

_RESPIRATORY = re.compile(r"asthma|copd|bronch", re.IGNORECASE)


def _describe_member(member: HouseholdMember) -> str:
    age = member.age if member.age else "?"
    text = f"{member.relation or 'Member'} {member.name} (age: {age})"
    if member.conditions:
        text += f" conditions: {', '.join(member.conditions)}"
    return " ".join(text.split())


def build_profile_summary(profile: ProfileRecord | None) -> str:
    """One-line redacted household description, or ``""`` without a profile."""
    if profile is None:
        return ""
    parts: list[str] = []
    if profile.owner_name:
        parts.append(f"Household owner: {profile.owner_name}")
    if profile.members:
        parts.append("Members: " + " | ".join(_describe_member(m) for m in profile.members))
    if not profile.preferences.receive_notifications:
        parts.append("Notifications: OFF")
    return ". ".join(parts)


def has_respiratory_condition(profile: ProfileRecord) -> bool:
    return any(_RESPIRATORY.search(c) for m in profile.members for c in m.conditions)


def has_elderly_member(profile: ProfileRecord) -> bool:
    return any(m.age is not None and m.age >= ELDERLY_AGE for m in profile.members)


def personalize_text(text: str, profile: ProfileRecord | None) -> str:
    if profile is None:
        return text
    if has_respiratory_condition(profile):
        text += RESPIRATORY_NOTE
    if has_elderly_member(profile):
        text += ELDERLY_NOTE
    return text


__all__ = [
    "ELDERLY_NOTE",
    "RESPIRATORY_NOTE",
    "build_profile_summary",
    "personalize_text",
]
