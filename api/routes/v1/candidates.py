"""
Candidate management endpoints.

Provides REST API for listing and viewing candidates, shortlisting,
reassigning interviewers and generic status changes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Path
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import publish_result_events, raise_for_result
from core.middleware.authorization import (
    CANDIDATE_VIEWER_ROLES,
    HR_ROLES,
    Resource,
    SessionContext,
    Verb,
    require_roles,
)
from database.engine import get_db
from database.models.candidates import CandidateStatus
from api.services import candidates as candidate_service

router = APIRouter(prefix="/candidates", tags=["candidates"])

UPDATE_CANDIDATES = (Resource.CANDIDATES, Verb.UPDATE)


class ShortlistRequest(BaseModel):
    """Request model for shortlisting a candidate."""
    interviewer_name: str = Field(..., min_length=1, max_length=200, description="Interviewer display name")
    interviewer_email: EmailStr = Field(..., description="Interviewer email")
    notes: Optional[str] = Field(None, description="History note")


class ReassignRequest(BaseModel):
    """Request model for handing a candidate to another interviewer."""
    interviewer_name: str = Field(..., min_length=1, max_length=200, description="New interviewer name")
    interviewer_email: EmailStr = Field(..., description="New interviewer email")
    notes: Optional[str] = Field(None, description="Reason for the change")


class StatusChangeRequest(BaseModel):
    """Request model for a generic status change."""
    status: CandidateStatus = Field(..., description="Target status")
    notes: Optional[str] = Field(None, description="History note")


@router.get(
    "",
    summary="List Candidates",
    description="List candidates with optional status filter and search. HR only.",
)
async def list_candidates(
    status: Optional[str] = Query(None, description="Filter by status"),
    search: Optional[str] = Query(None, description="Search by name, email or position"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    context: SessionContext = Depends(require_roles(*HR_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Retrieve a paginated list of candidates."""
    result = await candidate_service.list_candidates(
        db, status=status, search=search, limit=limit, offset=offset
    )
    return raise_for_result(result)


@router.get(
    "/{candidate_id}",
    summary="Get Candidate Details",
    description="Candidate profile with assignment, interviews, feedback and allowed transitions.",
)
async def get_candidate(
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*CANDIDATE_VIEWER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Interviewers only see candidates assigned to them."""
    result = await candidate_service.get_candidate(db, candidate_id, context)
    if not result:
        raise HTTPException(status_code=404, detail="Candidate not found")
    return result


@router.get(
    "/{candidate_id}/history",
    summary="Get Status History",
    description="Full status audit trail, oldest first.",
)
async def get_status_history(
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*CANDIDATE_VIEWER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    if context.is_interviewer and not await candidate_service.is_assigned_to(
        db, candidate_id, context.email
    ):
        raise HTTPException(status_code=404, detail="Candidate not found")
    return raise_for_result(await candidate_service.get_status_history(db, candidate_id))


@router.get(
    "/{candidate_id}/assignments",
    summary="List Assignments",
    description="Every interviewer assignment for the candidate, active and superseded.",
)
async def list_assignments(
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*HR_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    assignments = await candidate_service.list_assignments(db, candidate_id)
    return {"assignments": assignments, "total": len(assignments)}


@router.post(
    "/{candidate_id}/shortlist",
    summary="Shortlist Candidate",
    description="Shortlist the candidate and assign an interviewer. HR only.",
)
async def shortlist_candidate(
    request: ShortlistRequest,
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*HR_ROLES, permission=UPDATE_CANDIDATES)),
    db: AsyncSession = Depends(get_db),
):
    """Move to shortlisted, create the assignment and email the interviewer."""
    result = await candidate_service.shortlist_candidate(
        db,
        candidate_id,
        interviewer_name=request.interviewer_name,
        interviewer_email=request.interviewer_email,
        context=context,
        notes=request.notes,
    )
    raise_for_result(result, "Failed to shortlist candidate")
    return await publish_result_events(db, result, context)


@router.post(
    "/{candidate_id}/reassign",
    summary="Reassign Interviewer",
    description="Deactivate the current assignment and assign a new interviewer. HR only.",
)
async def reassign_interviewer(
    request: ReassignRequest,
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*HR_ROLES, permission=UPDATE_CANDIDATES)),
    db: AsyncSession = Depends(get_db),
):
    result = await candidate_service.reassign_interviewer(
        db,
        candidate_id,
        interviewer_name=request.interviewer_name,
        interviewer_email=request.interviewer_email,
        context=context,
        notes=request.notes,
    )
    raise_for_result(result, "Failed to reassign interviewer")
    return await publish_result_events(db, result, context)


@router.post(
    "/{candidate_id}/status",
    summary="Change Candidate Status",
    description=(
        "Move the candidate along the transition table (hold, reject, hire...). "
        "Illegal moves return 409. HR only."
    ),
)
async def change_status(
    request: StatusChangeRequest,
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*HR_ROLES, permission=UPDATE_CANDIDATES)),
    db: AsyncSession = Depends(get_db),
):
    result = await candidate_service.change_status(
        db, candidate_id, request.status, context, request.notes
    )
    raise_for_result(result, "Failed to change status")
    return await publish_result_events(db, result, context)
