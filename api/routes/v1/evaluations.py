"""
Interview feedback endpoints.

Interviewers submit a scored rubric once per interview; the decision moves
the candidate to to_offer, on_hold or rejected.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import publish_result_events, raise_for_result
from core.middleware.authorization import (
    CANDIDATE_VIEWER_ROLES,
    INTERVIEWER_ROLES,
    OFFER_APPROVER_ROLES,
    Resource,
    SessionContext,
    Verb,
    require_roles,
)
from database.engine import get_db
from database.models.interviews import EmploymentType, FeedbackDecision, PositionType
from api.services import evaluations as evaluation_service

router = APIRouter(tags=["feedback"])

CREATE_FEEDBACK = (Resource.FEEDBACK, Verb.CREATE)


class RubricRow(BaseModel):
    """One scored rubric topic."""
    topic_index: int = Field(..., ge=0, description="Index of the topic in its section")
    score: Optional[int] = Field(None, description="Score from 1 to 5")
    opinion: Optional[str] = Field(None, description="Interviewer's comment on the topic")


class FeedbackRequest(BaseModel):
    """Request model for submitting interview feedback."""
    interview_id: Optional[int] = Field(None, description="Interview; defaults to the latest one")
    interview_date: Optional[date] = Field(None, description="Date the interview took place")
    employment_type: Optional[EmploymentType] = Field(None, description="Recommended employment type")
    position_type: Optional[PositionType] = Field(None, description="Permanent or temporary")
    temp_start_date: Optional[date] = Field(None, description="Temporary position start")
    temp_end_date: Optional[date] = Field(None, description="Temporary position end")
    competency_scores: list[RubricRow] = Field(..., description="Competency rubric")
    core_value_scores: list[RubricRow] = Field(..., description="Core value rubric")
    comment: Optional[str] = Field(None, description="Overall comment")
    decision: FeedbackDecision = Field(..., description="to_offer, on_hold or reject")


@router.post(
    "/candidates/{candidate_id}/feedback",
    summary="Submit Interview Feedback",
    description="Submit the scored rubric. Only the assigned interviewer (or hr_admin) may submit.",
)
async def submit_feedback(
    request: FeedbackRequest,
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*INTERVIEWER_ROLES, permission=CREATE_FEEDBACK)),
    db: AsyncSession = Depends(get_db),
):
    result = await evaluation_service.submit_feedback(
        db,
        candidate_id,
        context,
        interview_date=request.interview_date,
        employment_type=request.employment_type,
        position_type=request.position_type,
        competency_scores=[row.model_dump() for row in request.competency_scores],
        core_value_scores=[row.model_dump() for row in request.core_value_scores],
        decision=request.decision,
        comment=request.comment,
        temp_start_date=request.temp_start_date,
        temp_end_date=request.temp_end_date,
        interview_id=request.interview_id,
    )
    raise_for_result(result, "Failed to submit feedback")
    return await publish_result_events(db, result, context)


@router.get(
    "/feedback/{feedback_id}",
    summary="Get Interview Feedback",
    description="Full feedback with rubric rows. Interviewers only see their own.",
)
async def get_feedback(
    feedback_id: int = Path(..., description="Feedback ID"),
    context: SessionContext = Depends(
        require_roles(*set(CANDIDATE_VIEWER_ROLES) | set(OFFER_APPROVER_ROLES))
    ),
    db: AsyncSession = Depends(get_db),
):
    result = await evaluation_service.get_feedback(db, feedback_id, context)
    if not result:
        raise HTTPException(status_code=404, detail="Feedback not found")
    return result
