"""Prompt templates for IAQHub.

Keep prompts short and structured to reduce tokens. Household details only
ever enter a prompt as the one-line redacted summary.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

IAQ_ASSISTANT_PROMPT = (
    "You are a friendly home wellness assistant for an Indoor Air Quality (IAQ) dashboard.\n"
    "Sensors: PM2.5, VoC (MQ-135), Ethanol proxy (MQ-3), CO (MQ-7). "
    "IAQ prediction is 5 minutes ahead.\n"
    "Answer clearly in 1-2 short paragraphs. Offer cautious, non-diagnostic lifestyle tips "
    "when appropriate.\n"
    "Do NOT provide medical diagnoses. Encourage consulting professionals for health concerns.\n"
    "Latest/Trend JSON follows; you may mention key trends.\n"
)

LIFESTYLE_ADVISOR_PROMPT = (
    "You are a friendly home wellness advisor. Based on the latest IAQ data (JSON below), "
    "give one research-informed tip tailored to this household. "
    "Prioritize vulnerable members if present. Keep it non-diagnostic and safety-first. "
    "End with a brief educational disclaimer.\n"
)


def chat_prompt(
    *,
    question: str,
    context: Mapping[str, Any],
    profile_summary: str | None = None,
) -> str:
    prompt = (
        IAQ_ASSISTANT_PROMPT
        + f'\nUser question: "{question.strip()}"\n'
        + f"Latest and trend:\n{_dump(context)}\n"
    )
    if profile_summary:
        prompt += (
            f"\nHousehold profile: {profile_summary}\n"
            "IMPORTANT: Use this profile to personalize language and prioritize vulnerable "
            "members. Keep it non-diagnostic and safety-first."
        )
    return prompt + "\n\nFinish with a brief educational disclaimer."


def lifestyle_prompt(*, context: Mapping[str, Any], profile_summary: str | None = None) -> str:
    return (
        LIFESTYLE_ADVISOR_PROMPT
        + f"Household profile: {profile_summary or 'none'}\n"
        + f"Context JSON: {_dump(context)}"
    )


def _dump(data: Mapping[str, Any]) -> str:
    return json.dumps(data, indent=2, default=str)


__all__ = ["IAQ_ASSISTANT_PROMPT", "LIFESTYLE_ADVISOR_PROMPT", "chat_prompt", "lifestyle_prompt"]
