"""Advisory orchestration for IAQHub.

Every advisory request runs the same pipeline:

1. Build an :class:`AdvisoryContext` (buckets + trends) from the readings.
2. Load the household profile and decide whether anything may leave the
   process. Only the one-line profile summary is ever shared, and only when
   the household opted in and a provider is configured.
3. Ask the provider, walking its model fallback chain.
4. Fall back to the local rule engine when nothing was shared or the chain
   was exhausted.
5. Personalize, append the educational disclaimer, attach metadata.

Non-retryable provider failures and safety blocks are raised to the caller
as :class:`ProviderError` / :class:`SafetyBlocked`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from iaqhub.core.errors import ProviderNotConfigured, SafetyBlocked, ValidationError
from iaqhub.core.personalization import build_profile_summary, personalize_text
from iaqhub.core.rule_engine import RuleEngine, is_emergency
from iaqhub.core.trend import series_trends, summarize_trends
from iaqhub.integrations.llm.prompts import chat_prompt, lifestyle_prompt
from iaqhub.integrations.llm.provider import (
    Aborted,
    Accepted,
    Blocked,
    Exhausted,
    GeminiProvider,
    GenerationConfig,
)
from iaqhub.models.enums import AdviceSource, Trend
from iaqhub.models.schemas import (
    AdviceBody,
    AdviceMeta,
    ChatResponse,
    EmergencyResponse,
    LifestyleResponse,
    ProfileRecord,
)

logger = logging.getLogger(__name__)

CHAT_WINDOW = 16
LIFESTYLE_WINDOW = 20

DISCLAIMER = (
    "This is educational guidance, not medical advice. If symptoms occur, seek professional care."
)
FALLBACK_NOTE = "(Temporary fallback because AI model was unavailable)"

PRIVACY_LOCAL = "Personalized locally. No household details were sent to external services."
PRIVACY_SHARED = "Profile summary was shared with Gemini for personalization."
PRIVACY_FALLBACK = "Personalized locally due to AI service issue."

EMERGENCY_MESSAGE = (
    "Predicted IAQ is hazardous. Move to fresh air, ventilate strongly, and stop emission sources."
)
NO_EMERGENCY_MESSAGE = "No emergency detected."

CHAT_CONFIG = GenerationConfig(temperature=0.4, max_output_tokens=512)
LIFESTYLE_CONFIG = GenerationConfig(temperature=0.3, max_output_tokens=320)

# Fields forwarded to the provider for each recent reading.
_SUMMARY_FIELDS = ("ts", "pm25", "voc", "c2h5oh", "co", "predicted_iaq", "current_iaq")


class _ProfileSource(Protocol):
    async def latest(self) -> ProfileRecord | None: ...


@dataclass(slots=True)
class AdvisoryContext:
    """Snapshot of the air situation an advisory answer is based on."""

    latest: dict[str, Any] | None
    recent: list[dict[str, Any]] = field(default_factory=list)
    categories: dict[str, str] = field(default_factory=dict)
    trends: dict[str, Trend] = field(default_factory=dict)
    trend_summary: str = ""

    @property
    def iaq_bucket(self) -> str | None:
        return self.categories.get("iaq")

    def as_payload(self, *, include_recent: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "latest": self.latest,
            "recent_count": len(self.recent),
            "categories": dict(self.categories),
            "trends": {k: str(v) for k, v in self.trends.items()},
            "trend_summary": self.trend_summary,
        }
        if include_recent:
            payload["recent_summary"] = [
                {k: r.get(k) for k in _SUMMARY_FIELDS} for r in self.recent
            ]
        return payload


@dataclass(slots=True)
class _Draft:
    """Advice text on its way through the pipeline."""

    text: str
    source: AdviceSource
    model: str | None = None
    fallback: bool = False
    primary: str | None = None
    tips: list[str] | None = None


class AdvisoryOrchestrator:
    """Produce chat answers, lifestyle tips and emergency checks."""

    def __init__(
        self,
        profiles: _ProfileSource,
        provider: GeminiProvider | None = None,
        rule_engine: RuleEngine | None = None,
    ) -> None:
        self._profiles = profiles
        self._provider = provider
        self._rules = rule_engine or RuleEngine()

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------
    def build_context(
        self,
        latest: Mapping[str, Any] | None,
        recent: Sequence[Mapping[str, Any]],
        *,
        window: int,
    ) -> AdvisoryContext:
        tail = [dict(r) for r in list(recent)[-window:]] if window > 0 else []
        if latest is None and tail:
            latest = tail[-1]
        trends = series_trends(tail)
        return AdvisoryContext(
            latest=dict(latest) if latest is not None else None,
            recent=tail,
            categories=self._rules.categorize(latest),
            trends=trends,
            trend_summary=summarize_trends(trends),
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def chat(
        self,
        question: str | None,
        latest: Mapping[str, Any] | None,
        recent: Sequence[Mapping[str, Any]],
    ) -> ChatResponse:
        if not question or not question.strip():
            raise ValidationError("Missing question")
        question = question.strip()
        logger.info("Chat question: %s", question[:120])

        context = self.build_context(latest, recent, window=CHAT_WINDOW)
        profile = await self._profiles.latest()
        summary = build_profile_summary(profile)

        draft: _Draft | None = None
        if self._may_share(profile):
            prompt = chat_prompt(
                question=question,
                context=context.as_payload(include_recent=True),
                profile_summary=summary,
            )
            draft = await self._ask_provider(prompt, CHAT_CONFIG)

        if draft is None or draft.fallback:
            advice = self._rules.advise(context.latest, context.categories)
            if draft is None:
                text = "Here's what I see."
                if context.iaq_bucket:
                    text += f" Projected IAQ is {context.iaq_bucket}."
                text += f" {advice.primary}"
                if advice.tips:
                    text += "\n\nOther tips:\n- " + "\n- ".join(advice.tips)
                draft = _Draft(text=text, source=AdviceSource.local)
            else:
                draft.text = advice.primary

        answer = personalize_text(draft.text, profile)
        if draft.fallback:
            answer += f"\n\n{FALLBACK_NOTE}"
        return ChatResponse(
            answer=f"{answer}\n\n{DISCLAIMER}",
            meta=self._meta(draft, profile, summary),
        )

    async def lifestyle_advice(
        self,
        latest: Mapping[str, Any] | None,
        recent: Sequence[Mapping[str, Any]],
    ) -> LifestyleResponse:
        context = self.build_context(latest, recent, window=LIFESTYLE_WINDOW)
        profile = await self._profiles.latest()
        summary = build_profile_summary(profile)

        draft: _Draft | None = None
        if self._may_share(profile):
            prompt = lifestyle_prompt(
                context=context.as_payload(include_recent=True),
                profile_summary=summary,
            )
            draft = await self._ask_provider(prompt, LIFESTYLE_CONFIG)

        if draft is None or draft.fallback:
            advice = self._rules.advise(context.latest, context.categories)
            fallback = draft is not None
            draft = _Draft(
                text=advice.primary,
                source=AdviceSource.local,
                fallback=fallback,
                primary=advice.primary,
                tips=list(advice.tips),
            )

        text = personalize_text(draft.text, profile)
        return LifestyleResponse(
            context=context.as_payload(),
            advice=AdviceBody(
                text=f"{text}\n\n{DISCLAIMER}",
                source=draft.source,
                primary=draft.primary,
                tips=draft.tips,
            ),
            meta=self._meta(draft, profile, summary),
        )

    async def emergency_check(self, latest: Mapping[str, Any] | None) -> EmergencyResponse:
        """Evaluate the raw stored prediction against the emergency threshold."""
        if latest is None:
            return EmergencyResponse(emergency=False, message=NO_EMERGENCY_MESSAGE)
        if not is_emergency(latest.get("predicted_iaq")):
            return EmergencyResponse(emergency=False, message=NO_EMERGENCY_MESSAGE)
        profile = await self._profiles.latest()
        logger.warning("Emergency IAQ level detected: %s", latest.get("predicted_iaq"))
        return EmergencyResponse(
            emergency=True, message=personalize_text(EMERGENCY_MESSAGE, profile)
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _may_share(self, profile: ProfileRecord | None) -> bool:
        return (
            profile is not None
            and profile.preferences.share_with_external
            and self._provider is not None
        )

    async def _ask_provider(self, prompt: str, config: GenerationConfig) -> _Draft:
        if self._provider is None:
            raise ProviderNotConfigured("GEMINI_API_KEY not set")
        outcome = await self._provider.generate(prompt, config=config)
        match outcome:
            case Accepted(text=text, model=model):
                return _Draft(text=text.strip(), source=AdviceSource.external, model=model)
            case Blocked(reason=reason):
                raise SafetyBlocked(reason)
            case Aborted(error=error):
                raise error
            case Exhausted(last_error=last_error):
                logger.warning("Provider unavailable, using local advice: %s", last_error)
                return _Draft(text="", source=AdviceSource.local, fallback=True)
        raise TypeError(f"Unexpected provider outcome: {outcome!r}")

    @staticmethod
    def _meta(draft: _Draft, profile: ProfileRecord | None, summary: str) -> AdviceMeta:
        if draft.source is AdviceSource.external:
            disclaimer = PRIVACY_SHARED
        elif draft.fallback:
            disclaimer = PRIVACY_FALLBACK
        else:
            disclaimer = PRIVACY_LOCAL
        return AdviceMeta(
            used_external=draft.source is AdviceSource.external,
            personalized=profile is not None,
            profile_summary=summary or None,
            model=draft.model,
            fallback=draft.fallback,
            disclaimer=disclaimer,
        )


__all__ = [
    "CHAT_CONFIG",
    "CHAT_WINDOW",
    "DISCLAIMER",
    "EMERGENCY_MESSAGE",
    "LIFESTYLE_WINDOW",
    "NO_EMERGENCY_MESSAGE",
    "AdvisoryContext",
    "AdvisoryOrchestrator",
]
