"""
Feedback item lifecycle.

    pending -> processing -> {completed, updated_existing, failed, skipped, duplicate}
    any terminal state -> archived
    failed | skipped -> pending   (explicit admin re-trigger only)

INVARIANTS:
- An item never reaches a terminal state without passing through processing
- Only failed and skipped items are re-triggerable
- The pending -> processing claim is exclusive per item (see db.operations)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from manaquery.config import MAX_INPUT_LENGTH
from manaquery.models.failure import InvalidTransitionError


class FeedbackStatus(str, Enum):
    """Processing status of a feedback item."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    UPDATED_EXISTING = "updated_existing"
    FAILED = "failed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    ARCHIVED = "archived"


TERMINAL_STATUSES: frozenset[FeedbackStatus] = frozenset(
    {
        FeedbackStatus.COMPLETED,
        FeedbackStatus.UPDATED_EXISTING,
        FeedbackStatus.FAILED,
        FeedbackStatus.SKIPPED,
        FeedbackStatus.DUPLICATE,
    }
)

RETRIGGERABLE_STATUSES: frozenset[FeedbackStatus] = frozenset(
    {FeedbackStatus.FAILED, FeedbackStatus.SKIPPED}
)

ALLOWED_TRANSITIONS: dict[FeedbackStatus, frozenset[FeedbackStatus]] = {
    FeedbackStatus.PENDING: frozenset({FeedbackStatus.PROCESSING}),
    FeedbackStatus.PROCESSING: TERMINAL_STATUSES,
    FeedbackStatus.COMPLETED: frozenset({FeedbackStatus.ARCHIVED}),
    FeedbackStatus.UPDATED_EXISTING: frozenset({FeedbackStatus.ARCHIVED}),
    FeedbackStatus.DUPLICATE: frozenset({FeedbackStatus.ARCHIVED}),
    FeedbackStatus.FAILED: frozenset({FeedbackStatus.ARCHIVED, FeedbackStatus.PENDING}),
    FeedbackStatus.SKIPPED: frozenset({FeedbackStatus.ARCHIVED, FeedbackStatus.PENDING}),
    FeedbackStatus.ARCHIVED: frozenset(),
}


def can_transition(current: FeedbackStatus, target: FeedbackStatus) -> bool:
    """Whether ``current -> target`` is a legal lifecycle step."""
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: FeedbackStatus, target: FeedbackStatus) -> None:
    """
    Raise if ``current -> target`` is not a legal lifecycle step.

    Raises:
        InvalidTransitionError: For any step outside ALLOWED_TRANSITIONS
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)


@dataclass(frozen=True, slots=True)
class FeedbackItem:
    """Snapshot of a feedback row handed to rule synthesis."""

    id: str
    original_query: str
    issue_description: str
    translated_query: str | None
    processing_status: FeedbackStatus
    generated_rule_id: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None


class FeedbackRequest(BaseModel):
    """Body of ``POST /feedback``."""

    model_config = ConfigDict(populate_by_name=True)

    original_query: str = Field(..., alias="originalQuery", min_length=1, max_length=MAX_INPUT_LENGTH)
    translated_query: str | None = Field(default=None, alias="translatedQuery", max_length=1000)
    issue_description: str = Field(..., alias="issueDescription", min_length=1, max_length=2000)


class FeedbackResponse(BaseModel):
    """A feedback item as shown to callers and the admin queue."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    original_query: str = Field(..., alias="originalQuery")
    translated_query: str | None = Field(default=None, alias="translatedQuery")
    issue_description: str = Field(..., alias="issueDescription")
    processing_status: FeedbackStatus = Field(..., alias="processingStatus")
    generated_rule_id: str | None = Field(default=None, alias="generatedRuleId")
    processed_at: datetime | None = Field(default=None, alias="processedAt")
