"""IAQHub external text provider (Google Gemini ``generateContent``).

Features:
- Prioritized, de-duplicated model candidate chain (configured default first)
- Per-attempt outcome classification: retryable errors move on to the next
  candidate, non-retryable errors abort the chain
- Safety-filter detection reported as its own terminal outcome
- Per-attempt timeout so a hung upstream call cannot stall the caller forever

The chain ends in exactly one of: Accepted, Blocked, Aborted, Exhausted.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeAlias
from urllib.parse import quote

import httpx

from iaqhub.core.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1"
DEFAULT_MODEL = "gemini-1.5-flash-latest"
FALLBACK_MODELS: tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-flash-latest",
)

_RETRYABLE_MESSAGE = re.compile(
    r"overloaded|not found|unsupported|unavailable|unrecognized|quota|rate limit",
    re.IGNORECASE,
)
_RETRYABLE_STATUS = frozenset({404, 429, 503})


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Accepted:
    text: str
    model: str


@dataclass(frozen=True, slots=True)
class Blocked:
    reason: str
    model: str


@dataclass(frozen=True, slots=True)
class Aborted:
    error: ProviderError


@dataclass(frozen=True, slots=True)
class Exhausted:
    last_error: str | None
    errors: tuple[ProviderError, ...] = ()


GenerationOutcome: TypeAlias = Accepted | Blocked | Aborted | Exhausted


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    temperature: float = 0.4
    top_p: float = 0.9
    max_output_tokens: int = 512

    def as_payload(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "topP": self.top_p,
            "maxOutputTokens": self.max_output_tokens,
        }


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    api_key: str
    default_model: str = DEFAULT_MODEL
    fallback_models: Sequence[str] = field(default=FALLBACK_MODELS)
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 30.0


def is_retryable(message: str, status: int | None) -> bool:
    """Return True when an upstream failure should move on to the next model."""
    if status in _RETRYABLE_STATUS:
        return True
    return bool(_RETRYABLE_MESSAGE.search(message or ""))


def candidate_models(default_model: str | None, fallbacks: Sequence[str]) -> list[str]:
    """Configured default first, then the fallbacks, without duplicates."""
    ordered: dict[str, None] = {}
    for model in (default_model, *fallbacks):
        if model and model.strip():
            ordered.setdefault(model.strip(), None)
    return list(ordered)


def extract_text(payload: Mapping[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], Mapping):
        return ""
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or [] if isinstance(content, Mapping) else []
    return "".join(p["text"] for p in parts if isinstance(p, Mapping) and isinstance(p.get("text"), str))


def block_reason(payload: Mapping[str, Any]) -> str | None:
    """Return the safety block reason reported by the API, if any."""
    feedback = payload.get("promptFeedback") or {}
    reason = feedback.get("blockReason") if isinstance(feedback, Mapping) else None
    if not reason:
        candidates = payload.get("candidates") or []
        if candidates and isinstance(candidates[0], Mapping):
            reason = candidates[0].get("finishReason")
    if reason and "SAFETY" in str(reason).upper():
        return str(reason)
    return None


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class GeminiProvider:
    """Generate text through the Gemini REST API with model fallbacks.

    Usage::

        provider = GeminiProvider(ProviderSettings(api_key="..."))
        outcome = await provider.generate("How is the air today?")
        match outcome:
            case Accepted(text=text): ...
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.api_key:
            raise ValueError("Gemini API key is required")
        self.settings = settings
        self._transport = transport

    @property
    def candidates(self) -> list[str]:
        return candidate_models(self.settings.default_model, self.settings.fallback_models)

    async def generate(
        self,
        prompt: str,
        *,
        config: GenerationConfig | None = None,
    ) -> GenerationOutcome:
        """Try each candidate model in order until one settles the request."""
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": (config or GenerationConfig()).as_payload(),
        }
        errors: list[ProviderError] = []

        async with self._client() as client:
            for model in self.candidates:
                logger.info("Trying provider model: %s", model)
                try:
                    outcome = await self._attempt(client, model, body)
                except ProviderError as exc:
                    if not exc.retryable:
                        logger.warning("Model %s failed, aborting chain: %s", model, exc.message)
                        return Aborted(exc)
                    logger.warning("Model %s failed, trying next: %s", model, exc.message)
                    errors.append(exc)
                    continue
                if isinstance(outcome, Accepted):
                    logger.info("Answered with model: %s", model)
                return outcome

        last_error = errors[-1].message if errors else None
        logger.warning("All provider models exhausted; last error: %s", last_error)
        return Exhausted(last_error=last_error, errors=tuple(errors))

    async def list_models(self) -> list[dict[str, Any]]:
        """Return the models visible to the configured key."""
        async with self._client() as client:
            try:
                resp = await client.get("/models", params={"key": self.settings.api_key})
            except httpx.HTTPError as exc:
                raise ProviderError(f"Unable to reach provider: {exc}", retryable=True) from exc
            data = _json_or_empty(resp)
            if not resp.is_success or data.get("error"):
                raise ProviderError(
                    _error_message(data, resp.status_code), upstream_status=resp.status_code
                )
        return list(data.get("models") or [])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.base_url.rstrip("/"),
            timeout=self.settings.timeout_s,
            transport=self._transport,
        )

    async def _attempt(
        self, client: httpx.AsyncClient, model: str, body: dict[str, Any]
    ) -> Accepted | Blocked:
        """Run one request. Raises ``ProviderError`` for every failed attempt."""
        url = f"/models/{quote(model, safe='')}:generateContent"
        try:
            resp = await client.post(url, params={"key": self.settings.api_key}, json=body)
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"{type(exc).__name__}: {exc}", model=model, retryable=True
            ) from exc

        data = _json_or_empty(resp)
        if not resp.is_success or data.get("error"):
            message = _error_message(data, resp.status_code)
            raise ProviderError(
                message,
                upstream_status=resp.status_code,
                model=model,
                retryable=is_retryable(message, resp.status_code),
            )

        reason = block_reason(data)
        if reason:
            logger.info("Model %s blocked the request: %s", model, reason)
            return Blocked(reason=reason, model=model)

        text = extract_text(data)
        if not text.strip():
            raise ProviderError("Empty response from model", model=model, retryable=True)
        return Accepted(text=text, model=model)


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_message(data: Mapping[str, Any], status: int) -> str:
    error = data.get("error")
    if isinstance(error, Mapping) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return f"Upstream error (status {status})"


__all__ = [
    "FALLBACK_MODELS",
    "Aborted",
    "Accepted",
    "Blocked",
    "Exhausted",
    "GeminiProvider",
    "GenerationConfig",
    "GenerationOutcome",
    "ProviderSettings",
    "block_reason",
    "candidate_models",
    "extract_text",
    "is_retryable",
]
