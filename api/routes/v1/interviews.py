"""
Interview endpoints.

Scheduling (including reschedule and reassignment), interest confirmation
and the interviewer dashboard.
"""

from datetime import date, time
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import publish_result_events, raise_for_result
from core.middleware.authorization import (
    CANDIDATE_VIEWER_ROLES,
    HR_ROLES,
    INTERVIEWER_ROLES,
    Resource,
    SessionContext,
    Verb,
    require_roles,
)
from database.engine import get_db
from api.services import candidates as candidate_service
from api.services import interviews as interview_service

router = APIRouter(tags=["interviews"])

CREATE_INTERVIEWS = (Resource.INTERVIEWS, Verb.CREATE)
UPDATE_INTERVIEWS = (Resource.INTERVIEWS, Verb.UPDATE)


class ScheduleInterviewRequest(BaseModel):
    """Request model for scheduling an interview."""
    interviewer_email: EmailStr = Field(..., description="Interviewer email")
    interviewer_name: Optional[str] = Field(None, max_length=200, description="Interviewer name")
    interview_date: date = Field(..., description="Interview date")
    interview_time: time = Field(..., description="Interview start time")
    location: Optional[str] = Field(None, max_length=500, description="Room or address")
    meeting_link: Optional[str] = Field(None, max_length=500, description="Online meeting URL")
    notes: Optional[str] = Field(None, description="Notes for the interviewer")


class ConfirmInterestRequest(BaseModel):
    """Request model for confirming interest."""
    notes: Optional[str] = Field(None, description="History note")


@router.post(
    "/candidates/{candidate_id}/interviews",
    summary="Schedule Interview",
    description=(
        "Schedule an interview. The same interviewer reschedules in place; a different "
        "interviewer cancels the old interview and reassigns the candidate. HR only."
    ),
)
async def schedule_interview(
    request: ScheduleInterviewRequest,
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*HR_ROLES, permission=CREATE_INTERVIEWS)),
    db: AsyncSession = Depends(get_db),
):
    result = await interview_service.schedule_interview(
        db,
        candidate_id,
        interviewer_email=request.interviewer_email,
        interview_date=request.interview_date,
        interview_time=request.interview_time,
        context=context,
        interviewer_name=request.interviewer_name,
        location=request.location,
        meeting_link=request.meeting_link,
        notes=request.notes,
    )
    raise_for_result(result, "Failed to schedule interview")
    return await publish_result_events(db, result, context)


@router.get(
    "/candidates/{candidate_id}/interviews",
    summary="List Interviews",
    description="Every interview for the candidate, newest first.",
)
async def list_interviews(
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*CANDIDATE_VIEWER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    if context.is_interviewer and not await candidate_service.is_assigned_to(
        db, candidate_id, context.email
    ):
        return {"interviews": [], "total": 0}
    return await interview_service.list_interviews(db, candidate_id)


@router.post(
    "/candidates/{candidate_id}/confirm-interest",
    summary="Confirm Interest",
    description="The assigned interviewer confirms interest; shortlisted candidates move to to_interview.",
)
async def confirm_interest(
    request: Optional[ConfirmInterestRequest] = None,
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*INTERVIEWER_ROLES, permission=UPDATE_INTERVIEWS)),
    db: AsyncSession = Depends(get_db),
):
    result = await interview_service.confirm_interest(
        db, candidate_id, context, notes=request.notes if request else None
    )
    raise_for_result(result, "Failed to confirm interest")
    return await publish_result_events(db, result, context)


@router.get(
    "/interviewer/dashboard",
    summary="Interviewer Dashboard",
    description="Candidates assigned to the caller, grouped by stage, with per-group counts.",
)
async def interviewer_dashboard(
    status_group: str = Query(
        "all",
        description="all, shortlisted, to_interview, interview_scheduled or interviewed",
    ),
    context: SessionContext = Depends(require_roles(*INTERVIEWER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    result = await interview_service.get_interviewer_dashboard(db, context, status_group)
    return raise_for_result(result)
