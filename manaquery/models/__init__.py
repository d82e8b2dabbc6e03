from manaquery.models.failure import (
    ErrorResponse,
    FailureKind,
    FeedbackProcessingError,
    InputValidationError,
    InvalidTransitionError,
    KnownError,
    NotFoundError,
    RateLimitExceededError,
    TransientNetworkError,
    sanitize_error_message,
)
from manaquery.models.feedback import (
    RETRIGGERABLE_STATUSES,
    TERMINAL_STATUSES,
    FeedbackItem,
    FeedbackRequest,
    FeedbackResponse,
    FeedbackStatus,
    can_transition,
    ensure_transition,
)
from manaquery.models.intent import (
    Color,
    ColorConstraint,
    Comparator,
    NumericConstraint,
    SearchIntent,
)
from manaquery.models.rules import (
    RuleActivationRequest,
    RuleProposal,
    RuleResponse,
    StatusResponse,
    TranslationRule,
)
from manaquery.models.translation import (
    Explanation,
    SearchFilters,
    TranslateRequest,
    TranslationResult,
    TranslationSource,
)

__all__ = [
    # Failures
    "ErrorResponse",
    "FailureKind",
    "FeedbackProcessingError",
    "InputValidationError",
    "InvalidTransitionError",
    "KnownError",
    "NotFoundError",
    "RateLimitExceededError",
    "TransientNetworkError",
    "sanitize_error_message",
    # Feedback
    "RETRIGGERABLE_STATUSES",
    "TERMINAL_STATUSES",
    "FeedbackItem",
    "FeedbackRequest",
    "FeedbackResponse",
    "FeedbackStatus",
    "can_transition",
    "ensure_transition",
    # Intent
    "Color",
    "ColorConstraint",
    "Comparator",
    "NumericConstraint",
    "SearchIntent",
    # Rules
    "RuleActivationRequest",
    "RuleProposal",
    "RuleResponse",
    "StatusResponse",
    "TranslationRule",
    # Translation
    "Explanation",
    "SearchFilters",
    "TranslateRequest",
    "TranslationResult",
    "TranslationSource",
]
