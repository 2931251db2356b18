"""
Job offer endpoints.

HR submits an offer, the assigned HR Manager approves or rejects it, then the
interviewer acknowledges or rejects it. Rejected offers are amended and
re-submitted.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import publish_result_events, raise_for_result
from core.middleware.authorization import (
    HR_ROLES,
    INTERVIEWER_ROLES,
    OFFER_APPROVER_ROLES,
    Resource,
    SessionContext,
    Verb,
    require_roles,
)
from database.engine import get_db
from database.models.users import Role
from api.services import offers as offer_service

router = APIRouter(tags=["offers"])

OFFER_READER_ROLES = (Role.HR_ADMIN, Role.HR_STAFF, Role.HR_MANAGER, Role.INTERVIEWER)
CREATE_OFFERS = (Resource.JOB_PROPOSALS, Verb.CREATE)
UPDATE_OFFERS = (Resource.JOB_PROPOSALS, Verb.UPDATE)


class OfferDetails(BaseModel):
    """Employment terms of the offer."""
    position_offered: Optional[str] = Field(None, max_length=200)
    position_level: Optional[str] = Field(None, max_length=100)
    job_grade: Optional[str] = Field(None, max_length=50)
    expected_salary: Optional[Decimal] = Field(None, description="Offered salary")
    start_date: Optional[date] = None
    company_name: Optional[str] = Field(None, max_length=200)
    department_th: Optional[str] = Field(None, max_length=200)
    department_en: Optional[str] = Field(None, max_length=200)
    division_th: Optional[str] = Field(None, max_length=200)
    division_en: Optional[str] = Field(None, max_length=200)
    section_th: Optional[str] = Field(None, max_length=200)
    section_en: Optional[str] = Field(None, max_length=200)
    direct_report_name: Optional[str] = Field(None, max_length=200)
    direct_report_email: Optional[str] = Field(None, max_length=255)
    manager_name: Optional[str] = Field(None, max_length=200)
    manager_email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    current_salary: Optional[Decimal] = Field(None, description="Back-filled onto the latest feedback")
    current_position: Optional[str] = Field(None, max_length=200)


class PersonalInfo(BaseModel):
    """Candidate identification collected with the offer."""
    name_title: Optional[str] = Field(None, max_length=50)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    first_name_en: Optional[str] = Field(None, max_length=100)
    last_name_en: Optional[str] = Field(None, max_length=100)
    national_id: Optional[str] = Field(None, description="13 digits, dashes allowed")
    birthday: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    religion: Optional[str] = Field(None, max_length=50)
    house_no: Optional[str] = Field(None, max_length=50)
    moo: Optional[str] = Field(None, max_length=50)
    soi: Optional[str] = Field(None, max_length=100)
    street: Optional[str] = Field(None, max_length=200)
    sub_district: Optional[str] = Field(None, max_length=100)
    district: Optional[str] = Field(None, max_length=100)
    province: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=10)


class SendOfferRequest(BaseModel):
    """Request model for submitting an offer."""
    offer: OfferDetails
    personal: PersonalInfo
    hr_manager_id: Optional[str] = Field(None, description="Approver; defaults to the first active HR Manager")


class ResubmitOfferRequest(BaseModel):
    """Request model for re-submitting an amended offer."""
    offer: OfferDetails
    personal: PersonalInfo


class RejectOfferRequest(BaseModel):
    """Request model for rejecting an offer."""
    notes: str = Field(..., description="What must change (required)")


def _forms(offer: OfferDetails, personal: PersonalInfo) -> tuple[dict[str, Any], dict[str, Any]]:
    return offer.model_dump(), personal.model_dump()


@router.get(
    "/offers/hr-managers",
    summary="List HR Managers",
    description="Active HR Managers who can approve offers.",
)
async def list_hr_managers(
    context: SessionContext = Depends(require_roles(*HR_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    managers = await offer_service.list_hr_managers(db)
    return {"hr_managers": managers, "total": len(managers)}


@router.get(
    "/offers/pending",
    summary="List Pending Offers",
    description="Offers waiting on the caller's approval or acknowledgment.",
)
async def list_pending_offers(
    context: SessionContext = Depends(require_roles(*OFFER_READER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await offer_service.list_pending_offers(db, context)


@router.post(
    "/candidates/{candidate_id}/offers",
    summary="Send Offer",
    description="Submit a job offer for HR Manager approval. HR only.",
)
async def send_offer(
    request: SendOfferRequest,
    candidate_id: int = Path(..., description="Candidate ID"),
    context: SessionContext = Depends(require_roles(*HR_ROLES, permission=CREATE_OFFERS)),
    db: AsyncSession = Depends(get_db),
):
    offer, personal = _forms(request.offer, request.personal)
    result = await offer_service.send_offer(
        db, candidate_id, offer, personal, context, hr_manager_id=request.hr_manager_id
    )
    raise_for_result(result, "Failed to send offer")
    return await publish_result_events(db, result, context)


@router.get(
    "/offers/{proposal_id}",
    summary="Get Offer",
    description="Offer with approval state and candidate details.",
)
async def get_offer(
    proposal_id: int = Path(..., description="Offer ID"),
    context: SessionContext = Depends(require_roles(*OFFER_READER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    result = await offer_service.get_offer(db, proposal_id, context)
    if not result:
        raise HTTPException(status_code=404, detail="Offer not found")
    return result


@router.post(
    "/offers/{proposal_id}/approve",
    summary="Approve Offer (HR Manager)",
    description="First approval stage.",
)
async def approve_offer(
    proposal_id: int = Path(..., description="Offer ID"),
    context: SessionContext = Depends(require_roles(*OFFER_APPROVER_ROLES, permission=UPDATE_OFFERS)),
    db: AsyncSession = Depends(get_db),
):
    result = await offer_service.approve_by_manager(db, proposal_id, context)
    raise_for_result(result, "Failed to approve offer")
    return await publish_result_events(db, result, context)


@router.post(
    "/offers/{proposal_id}/reject",
    summary="Reject Offer (HR Manager)",
    description="Send the offer back to the submitter with notes.",
)
async def reject_offer(
    request: RejectOfferRequest,
    proposal_id: int = Path(..., description="Offer ID"),
    context: SessionContext = Depends(require_roles(*OFFER_APPROVER_ROLES, permission=UPDATE_OFFERS)),
    db: AsyncSession = Depends(get_db),
):
    result = await offer_service.reject_by_manager(db, proposal_id, request.notes, context)
    raise_for_result(result, "Failed to reject offer")
    return await publish_result_events(db, result, context)


@router.post(
    "/offers/{proposal_id}/acknowledge",
    summary="Acknowledge Offer (Interviewer)",
    description="Final approval; the candidate moves to offer_sent.",
)
async def acknowledge_offer(
    proposal_id: int = Path(..., description="Offer ID"),
    context: SessionContext = Depends(require_roles(*INTERVIEWER_ROLES, permission=UPDATE_OFFERS)),
    db: AsyncSession = Depends(get_db),
):
    result = await offer_service.acknowledge(db, proposal_id, context)
    raise_for_result(result, "Failed to acknowledge offer")
    return await publish_result_events(db, result, context)


@router.post(
    "/offers/{proposal_id}/interviewer-reject",
    summary="Reject Offer (Interviewer)",
    description="Reject the offer; the HR Manager's approval is withdrawn.",
)
async def interviewer_reject_offer(
    request: RejectOfferRequest,
    proposal_id: int = Path(..., description="Offer ID"),
    context: SessionContext = Depends(require_roles(*INTERVIEWER_ROLES, permission=UPDATE_OFFERS)),
    db: AsyncSession = Depends(get_db),
):
    result = await offer_service.reject_by_interviewer(db, proposal_id, request.notes, context)
    raise_for_result(result, "Failed to reject offer")
    return await publish_result_events(db, result, context)


@router.put(
    "/offers/{proposal_id}",
    summary="Resubmit Offer",
    description="Apply amendments and restart both approvals with the same HR Manager. HR only.",
)
async def resubmit_offer(
    request: ResubmitOfferRequest,
    proposal_id: int = Path(..., description="Offer ID"),
    context: SessionContext = Depends(require_roles(*HR_ROLES, permission=UPDATE_OFFERS)),
    db: AsyncSession = Depends(get_db),
):
    offer, personal = _forms(request.offer, request.personal)
    result = await offer_service.resubmit(db, proposal_id, offer, personal, context)
    raise_for_result(result, "Failed to resubmit offer")
    return await publish_result_events(db, result, context)
