"""Core domain logic for IAQHub."""

from __future__ import annotations

from .errors import IAQHubError, ProviderError, SafetyBlocked, StorageError, ValidationError
from .rule_engine import LocalAdvice, RuleEngine, is_emergency
from .trend import series_trends, summarize_trends, trend

__all__ = [
    "IAQHubError",
    "LocalAdvice",
    "ProviderError",
    "RuleEngine",
    "SafetyBlocked",
    "StorageError",
    "ValidationError",
    "is_emergency",
    "series_trends",
    "summarize_trends",
    "trend",
]
