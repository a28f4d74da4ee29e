"""Exception hierarchy for IAQHub.

Every error carries the HTTP status it is rendered with, so the API layer
can translate them with a single exception handler.
"""

from __future__ import annotations


class IAQHubError(Exception):
    """Base exception for all IAQHub errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(IAQHubError):
    """Raised when an incoming reading is malformed or incomplete."""

    status_code = 400


class NotFoundError(IAQHubError):
    """Raised when a requested resource has no data yet."""

    status_code = 404


class StorageError(IAQHubError):
    """Raised when the reading or profile store cannot complete an operation."""

    status_code = 500


class ProviderError(IAQHubError):
    """Raised when the external text provider fails.

    ``retryable`` errors are absorbed by the model fallback chain; only
    non-retryable ones ever reach a caller.
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        model: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        self.model = model
        self.retryable = retryable


class ProviderNotConfigured(IAQHubError):
    """Raised when an operation needs the provider but no API key is set."""

    status_code = 503


class SafetyBlocked(IAQHubError):
    """Raised when the provider refused to answer because of a safety filter.

    Rendered as a normal 200 response so clients can display the message.
    """

    status_code = 200

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Response blocked by safety filter ({reason}). Try rephrasing the question."
        )
        self.reason = reason


__all__ = [
    "IAQHubError",
    "NotFoundError",
    "ProviderError",
    "ProviderNotConfigured",
    "SafetyBlocked",
    "StorageError",
    "ValidationError",
]
