"""
Feedback endpoint.

Users report bad translations here. Items are stored as ``pending`` and
picked up by the rule-learning worker; nothing is processed inline.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.db.database import get_session
from manaquery.db.operations import create_feedback, feedback_to_response
from manaquery.models.failure import ErrorResponse
from manaquery.models.feedback import FeedbackRequest, FeedbackResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/feedback", tags=["feedback"])


@router.post(
    "",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def submit_feedback(
    body: FeedbackRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> FeedbackResponse:
    """Record a report that a translation was wrong."""
    feedback = await create_feedback(
        session,
        original_query=body.original_query.strip(),
        issue_description=body.issue_description.strip(),
        translated_query=body.translated_query,
    )
    logger.info("FEEDBACK_SUBMITTED", extra={"feedback_id": feedback.id})
    return feedback_to_response(feedback)
