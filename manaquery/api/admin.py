"""
Administrative endpoints for the feedback queue and rule table.

Successes return ``{"status": ...}``; failures go through the KnownError
handler and return ``{"error": ..., "success": false}``.

- Re-trigger is the ONLY way a failed or skipped item is processed again
- Rules are deactivated, never deleted
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.db.database import get_session
from manaquery.db.operations import (
    feedback_to_response,
    list_feedback,
    list_rules,
    rule_to_response,
    set_rule_active,
)
from manaquery.models.failure import ErrorResponse
from manaquery.models.feedback import FeedbackResponse, FeedbackStatus
from manaquery.models.rules import RuleActivationRequest, RuleResponse, StatusResponse
from manaquery.services.rule_learning import (
    FeedbackProcessor,
    RuleSynthesizer,
    archive_feedback,
    get_rule_synthesizer,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

_ERRORS = {404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


@router.get("/feedback", response_model=list[FeedbackResponse])
async def get_feedback_queue(
    session: Annotated[AsyncSession, Depends(get_session)],
    status: FeedbackStatus | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[FeedbackResponse]:
    """Feedback items, newest first, optionally filtered by status."""
    return [feedback_to_response(item) for item in await list_feedback(session, status, limit)]


@router.post(
    "/feedback/{feedback_id}/retrigger",
    response_model=StatusResponse,
    responses=_ERRORS,
)
async def retrigger_feedback(
    feedback_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    synthesizer: Annotated[RuleSynthesizer, Depends(get_rule_synthesizer)],
) -> StatusResponse:
    """
    Reset a failed or skipped item to pending and process it again.

    Returns the item's new status.
    """
    outcome = await FeedbackProcessor(session, synthesizer).retrigger(feedback_id)
    new_status = outcome.status if outcome else FeedbackStatus.PENDING
    logger.info(
        "ADMIN_FEEDBACK_RETRIGGER",
        extra={"feedback_id": feedback_id, "status": new_status.value},
    )
    return StatusResponse(status=new_status.value)


@router.post(
    "/feedback/{feedback_id}/archive",
    response_model=StatusResponse,
    responses=_ERRORS,
)
async def archive_feedback_item(
    feedback_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> StatusResponse:
    """Archive an item that reached a terminal state."""
    await archive_feedback(session, feedback_id)
    return StatusResponse(status=FeedbackStatus.ARCHIVED.value)


@router.get("/rules", response_model=list[RuleResponse])
async def get_rules(
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=1000)] = 200,
) -> list[RuleResponse]:
    """Every rule, active or not, newest first."""
    return [rule_to_response(rule) for rule in await list_rules(session, limit)]


@router.patch(
    "/rules/{rule_id}",
    response_model=StatusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_rule_activation(
    rule_id: str,
    body: RuleActivationRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> StatusResponse:
    """Activate or deactivate a rule. Repeating the same call is a no-op."""
    rule = await set_rule_active(session, rule_id, body.is_active)
    logger.info(
        "ADMIN_RULE_TOGGLED",
        extra={"rule_id": rule_id, "is_active": rule.is_active},
    )
    return StatusResponse(status="active" if rule.is_active else "inactive")
