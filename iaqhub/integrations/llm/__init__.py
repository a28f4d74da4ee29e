"""IAQHub text provider integration package.

This package provides:
- GeminiProvider: Gemini client with a model fallback chain
- Prompt templates
"""

from .prompts import chat_prompt, lifestyle_prompt
from .provider import (
    Aborted,
    Accepted,
    Blocked,
    Exhausted,
    GeminiProvider,
    GenerationConfig,
    ProviderSettings,
)

__all__ = [
    "Aborted",
    "Accepted",
    "Blocked",
    "Exhausted",
    "GeminiProvider",
    "GenerationConfig",
    "ProviderSettings",
    "chat_prompt",
    "lifestyle_prompt",
]
