"""
Failure classification for the translation service.

Every failure that reaches a caller is a KnownError subclass rendered as
``{"error": ..., "success": false}`` with the error's status code.
Anything else is an unknown failure and is reported with a fixed message.

INVARIANT: No file paths, tokens, API keys, connection strings, or stack
frames ever appear in a caller-visible message. Full detail goes to logs.

Taxonomy:
- InputValidationError: terminal 400, never retried
- RateLimitExceededError: terminal 429 with retry-after guidance
- TransientNetworkError: retried inside the live validator only
- FeedbackProcessingError: recorded as a failed feedback item
- NotFoundError: admin surface lookups
"""

import re
from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"
    INVALID_FILTER = "invalid_filter"
    UNKNOWN_SEARCH_KEY = "unknown_search_key"
    TOO_MANY_PARAMETERS = "too_many_parameters"

    # Resource failures
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"

    # Throttling
    RATE_LIMITED = "rate_limited"

    # Service failures
    EXTERNAL_API_ERROR = "external_api_error"
    FEEDBACK_PROCESSING = "feedback_processing"

    # Unknown
    UNKNOWN = "unknown"


class ErrorResponse(BaseModel):
    """Body returned for every failed request."""

    error: str = Field(..., description="Sanitized, user-appropriate explanation")
    success: bool = Field(default=False)


UNKNOWN_FAILURE_MESSAGE = "Translation failed unexpectedly. Try simplifying the request or retrying."


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to the caller-visible error body."""
        return ErrorResponse(error=sanitize_error_message(self.message))


class InputValidationError(KnownError):
    """
    Raised for empty, oversized, malformed, or otherwise unusable input.

    Terminal: retrying cannot change the user's input.
    """

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        kind: FailureKind = FailureKind.INVALID_INPUT,
    ):
        super().__init__(
            kind=kind,
            message=message,
            detail=detail,
            suggestion="Rephrase the search using card types, colors, or mechanics.",
            status_code=400,
        )


class RateLimitExceededError(KnownError):
    """
    Raised when a session, IP, or global window is exhausted.

    Returns HTTP 429; ``retry_after`` feeds the Retry-After header.
    """

    def __init__(self, scope: str, limit: int, retry_after: int):
        self.scope = scope
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            kind=FailureKind.RATE_LIMITED,
            message=f"Too many requests. Please try again in {retry_after} seconds.",
            detail=f"{scope} rate limit: {limit} per window",
            suggestion="Wait for the window to reset before retrying.",
            status_code=429,
        )


class TransientNetworkError(KnownError):
    """
    Raised when the card-search service is unreachable or keeps failing.

    Only the live validator raises this, and it never escapes the pipeline:
    exhaustion degrades to the unvalidated compiled query.
    """

    def __init__(self, detail: str):
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message="The card search service is temporarily unavailable.",
            detail=detail,
            status_code=502,
        )


class FeedbackProcessingError(KnownError):
    """Raised when a feedback item cannot be turned into a rule."""

    def __init__(self, feedback_id: str, detail: str):
        self.feedback_id = feedback_id
        super().__init__(
            kind=FailureKind.FEEDBACK_PROCESSING,
            message="Feedback could not be processed.",
            detail=detail,
            suggestion="Re-trigger the item from the admin queue once the cause is fixed.",
            status_code=500,
        )


class NotFoundError(KnownError):
    """Raised when an admin action references a missing row."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{resource} not found",
            detail=f"{resource} id={identifier}",
            status_code=404,
        )


class InvalidTransitionError(KnownError):
    """Raised when a feedback item is asked to move to a disallowed status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            kind=FailureKind.INVALID_TRANSITION,
            message=f"Cannot move feedback from '{current}' to '{target}'",
            status_code=409,
        )


# =============================================================================
# MESSAGE SANITIZATION
# =============================================================================

_SENSITIVE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    # Connection strings
    (re.compile(r"\b[a-z][a-z0-9+.-]*://[^\s'\"]+", re.IGNORECASE), "[redacted-url]"),
    # API keys and bearer tokens
    (re.compile(r"\bsk-[A-Za-z0-9_-]{8,}"), "[redacted-key]"),
    (re.compile(r"\bBearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE), "[redacted-token]"),
    (
        re.compile(r"\b(api[_-]?key|token|secret|password)\s*[=:]\s*\S+", re.IGNORECASE),
        r"\1=[redacted]",
    ),
    # Stack frames
    (re.compile(r'File "[^"]+", line \d+(?:, in \S+)?'), "[frame]"),
    (re.compile(r"Traceback \(most recent call last\):"), ""),
    # Filesystem paths
    (re.compile(r"(?:[A-Za-z]:\\|/)(?:[\w.-]+[/\\])+[\w.-]*"), "[path]"),
)


def sanitize_error_message(message: str) -> str:
    """
    Remove secrets and internals from a message before a caller sees it.

    Returns the generic unknown-failure message if nothing readable is left.
    """
    cleaned = message
    for pattern, replacement in _SENSITIVE_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or UNKNOWN_FAILURE_MESSAGE
