"""Offer service functions.

An offer moves through two approvals before the candidate reaches
``offer_sent``: the assigned HR Manager approves, then the interviewer
acknowledges. Rejections at either stage keep the candidate in
``pending_approval`` and leave notes for the HR user who submitted it.
"""

from typing import Any, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.events import DomainEvent, InAppNotice
from core.middleware.authorization import SessionContext
from core.utils.datetime import now
from core.utils.validators import is_simple_email, validate_national_id
from core.workflow import WorkflowError, assert_transition, record_note, record_transition
from database.models.candidates import Candidate, CandidateStatus
from database.models.communications import EmailEventType, NotificationType
from database.models.offers import JobProposal, OfferStatus
from database.models.users import Role, User, UserRole
from api.services import communications
from api.services.candidates import (
    candidate_to_dict,
    get_candidate_row,
    get_latest_interview,
    personal_info_to_dict,
)
from api.services.evaluations import get_latest_feedback

logger = logging.getLogger(__name__)

OFFER_FIELDS = (
    "position_offered",
    "position_level",
    "job_grade",
    "expected_salary",
    "start_date",
    "company_name",
    "department_th",
    "department_en",
    "division_th",
    "division_en",
    "section_th",
    "section_en",
)
OPTIONAL_OFFER_FIELDS = (
    "direct_report_name",
    "direct_report_email",
    "manager_name",
    "manager_email",
    "notes",
)
PERSONAL_FIELDS = (
    "name_title",
    "first_name",
    "last_name",
    "first_name_en",
    "last_name_en",
    "national_id",
    "birthday",
    "gender",
    "religion",
    "house_no",
    "sub_district",
    "district",
    "province",
    "postal_code",
)
OPTIONAL_PERSONAL_FIELDS = ("moo", "soi", "street")
FEEDBACK_BACKFILL_FIELDS = ("current_salary", "expected_salary", "current_position")


def proposal_to_dict(proposal: JobProposal) -> dict[str, Any]:
    def iso(value):
        return value.isoformat() if value is not None else None

    return {
        "id": proposal.id,
        "candidate_id": proposal.candidate_id,
        "position_offered": proposal.position_offered,
        "position_level": proposal.position_level,
        "job_grade": proposal.job_grade,
        "expected_salary": str(proposal.expected_salary),
        "start_date": iso(proposal.start_date),
        "company_name": proposal.company_name,
        "department_th": proposal.department_th,
        "department_en": proposal.department_en,
        "division_th": proposal.division_th,
        "division_en": proposal.division_en,
        "section_th": proposal.section_th,
        "section_en": proposal.section_en,
        "direct_report_name": proposal.direct_report_name,
        "direct_report_email": proposal.direct_report_email,
        "manager_name": proposal.manager_name,
        "manager_email": proposal.manager_email,
        "notes": proposal.notes,
        "offer_status": proposal.offer_status.value,
        "assigned_hr_manager_id": proposal.assigned_hr_manager_id,
        "assigned_hr_manager_email": proposal.assigned_hr_manager_email,
        "hr_manager_approved": proposal.hr_manager_approved,
        "hr_manager_approved_by": proposal.hr_manager_approved_by,
        "hr_manager_approved_at": iso(proposal.hr_manager_approved_at),
        "hr_manager_rejection_notes": proposal.hr_manager_rejection_notes,
        "interviewer_acknowledged": proposal.interviewer_acknowledged,
        "interviewer_acknowledged_by": proposal.interviewer_acknowledged_by,
        "interviewer_acknowledged_at": iso(proposal.interviewer_acknowledged_at),
        "interviewer_rejection_notes": proposal.interviewer_rejection_notes,
        "created_by": proposal.created_by,
        "created_by_email": proposal.created_by_email,
        "created_at": iso(proposal.created_at),
        "updated_at": iso(proposal.updated_at),
    }


# ==================== Validation ===================== #

def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_offer_input(
    offer: dict[str, Any], personal: dict[str, Any]
) -> Optional[str]:
    """
    Check the offer form.

    Returns:
        An error message, or None when the form is complete. ``personal``
        has its national ID normalized in place.
    """
    missing = [f for f in OFFER_FIELDS if _blank(offer.get(f))]
    missing += [f for f in PERSONAL_FIELDS if _blank(personal.get(f))]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"

    ok, national_id = validate_national_id(str(personal["national_id"]))
    if not ok:
        return national_id
    personal["national_id"] = national_id

    for field in ("direct_report_email", "manager_email"):
        value = offer.get(field)
        if value and not is_simple_email(value):
            return f"Invalid email address for {field}"

    if offer["expected_salary"] is not None and offer["expected_salary"] < 0:
        return "expected_salary must not be negative"
    return None


# ==================== Lookups ===================== #

async def get_proposal_row(db: AsyncSession, proposal_id: int) -> Optional[JobProposal]:
    return await db.get(JobProposal, proposal_id)


async def find_user_id_by_email(db: AsyncSession, email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    result = await db.execute(select(User.id).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def list_hr_managers(db: AsyncSession) -> list[dict[str, Any]]:
    """Active HR Managers that have signed in at least once."""
    result = await db.execute(
        select(UserRole)
        .where(
            UserRole.role == Role.HR_MANAGER,
            UserRole.is_active.is_(True),
            UserRole.user_id.is_not(None),
        )
        .order_by(UserRole.id)
    )
    return [
        {"user_id": row.user_id, "email": row.email, "department": row.department}
        for row in result.scalars().all()
    ]


async def _resolve_hr_manager(
    db: AsyncSession, hr_manager_id: Optional[str]
) -> Optional[dict[str, Any]]:
    managers = await list_hr_managers(db)
    if hr_manager_id is None:
        return managers[0] if managers else None
    return next((m for m in managers if m["user_id"] == hr_manager_id), None)


async def get_offer(
    db: AsyncSession, proposal_id: int, context: SessionContext
) -> Optional[dict[str, Any]]:
    """Offer with candidate summary; interviewers only see offers they must acknowledge."""
    proposal = await get_proposal_row(db, proposal_id)
    if proposal is None:
        return None
    candidate = await get_candidate_row(db, proposal.candidate_id)

    if context.is_interviewer:
        interview = await get_latest_interview(db, proposal.candidate_id)
        if interview is None or interview.interviewer_email.lower() != context.email.lower():
            return None

    return {
        **proposal_to_dict(proposal),
        "candidate": candidate_to_dict(candidate),
        "personal_info": personal_info_to_dict(candidate),
    }


async def list_pending_offers(db: AsyncSession, context: SessionContext) -> dict[str, Any]:
    """
    Offers waiting on the caller.

    HR Managers see offers assigned to them and not yet approved; interviewers
    see manager-approved offers for candidates they interviewed. HR staff see
    every offer in progress.
    """
    query = (
        select(JobProposal, Candidate)
        .join(Candidate, Candidate.id == JobProposal.candidate_id)
        .where(Candidate.status == CandidateStatus.PENDING_APPROVAL)
        .order_by(JobProposal.created_at.desc(), JobProposal.id.desc())
    )
    if context.is_hr_manager:
        query = query.where(
            JobProposal.assigned_hr_manager_id == context.user_id,
            JobProposal.hr_manager_approved.is_(False),
        )
    elif context.is_interviewer:
        query = query.where(
            JobProposal.hr_manager_approved.is_(True),
            JobProposal.interviewer_acknowledged.is_(False),
        )

    offers = []
    for proposal, candidate in (await db.execute(query)).all():
        if context.is_interviewer:
            interview = await get_latest_interview(db, candidate.id)
            if interview is None or interview.interviewer_email.lower() != context.email.lower():
                continue
        offers.append({**proposal_to_dict(proposal), "candidate": candidate_to_dict(candidate)})

    return {"offers": offers, "total": len(offers)}


# ==================== Commands ===================== #

def _apply_personal(candidate: Candidate, personal: dict[str, Any], context: SessionContext) -> None:
    for field in PERSONAL_FIELDS:
        setattr(candidate, field, personal[field])
    for field in OPTIONAL_PERSONAL_FIELDS:
        setattr(candidate, field, personal.get(field) or None)
    candidate.updated_by = context.user_id
    candidate.updated_by_email = context.email


def _apply_offer(proposal: JobProposal, offer: dict[str, Any]) -> None:
    for field in OFFER_FIELDS:
        setattr(proposal, field, offer[field])
    for field in OPTIONAL_OFFER_FIELDS:
        setattr(proposal, field, offer.get(field) or None)


async def _backfill_feedback(db: AsyncSession, candidate_id: int, offer: dict[str, Any]) -> None:
    feedback = await get_latest_feedback(db, candidate_id)
    if feedback is None:
        return
    for field in FEEDBACK_BACKFILL_FIELDS:
        setattr(feedback, field, offer.get(field))


def _approval_request(candidate: Candidate, proposal: JobProposal) -> Optional[InAppNotice]:
    if not proposal.assigned_hr_manager_id:
        return None
    return InAppNotice(
        user_id=proposal.assigned_hr_manager_id,
        type=NotificationType.OFFER_APPROVAL_HR_MANAGER,
        title="New Offer Pending Approval",
        message=(
            f"Offer for {candidate.full_name} - {proposal.position_offered} "
            f"requires your approval"
        ),
        related_candidate_id=candidate.id,
        related_proposal_id=proposal.id,
    )


async def send_offer(
    db: AsyncSession,
    candidate_id: int,
    offer: dict[str, Any],
    personal: dict[str, Any],
    context: SessionContext,
    hr_manager_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Submit a job offer for HR Manager approval.

    Args:
        db: Database session
        candidate_id: Candidate ID
        offer: Employment fields (plus optional current_salary and
            current_position, back-filled onto the latest feedback)
        personal: Personal identification fields for the candidate
        context: Caller context
        hr_manager_id: Approving HR Manager; defaults to the first active one

    Returns:
        Result dict with the proposal and the manager's in-app notice
    """
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    assert_transition(candidate.status, CandidateStatus.PENDING_APPROVAL)

    error = validate_offer_input(offer, personal)
    if error:
        return {"success": False, "error": error}

    manager = await _resolve_hr_manager(db, hr_manager_id)
    if manager is None:
        return {"success": False, "error": "No active HR Manager available to approve the offer"}

    await _backfill_feedback(db, candidate_id, offer)

    proposal = JobProposal(
        candidate_id=candidate.id,
        offer_status=OfferStatus.PENDING,
        hr_manager_approved=False,
        interviewer_acknowledged=False,
        assigned_hr_manager_id=manager["user_id"],
        assigned_hr_manager_email=manager["email"],
        created_by=context.user_id,
        created_by_email=context.email,
    )
    _apply_offer(proposal, offer)
    db.add(proposal)

    _apply_personal(candidate, personal, context)
    record_transition(
        db, candidate, CandidateStatus.PENDING_APPROVAL, context, "Job offer submitted for approval"
    )
    await db.commit()

    logger.info(
        f"Offer {proposal.id} for candidate {candidate.id} sent to HR Manager {manager['email']}"
    )
    return {
        "success": True,
        "proposal": proposal_to_dict(proposal),
        "candidate": candidate_to_dict(candidate),
        "events": [_approval_request(candidate, proposal)],
    }


async def _load_pending(
    db: AsyncSession, proposal_id: int
) -> tuple[Optional[JobProposal], Optional[Candidate], Optional[dict[str, Any]]]:
    proposal = await get_proposal_row(db, proposal_id)
    if proposal is None:
        return None, None, {"success": False, "error": "Offer not found", "status_code": 404}
    candidate = await get_candidate_row(db, proposal.candidate_id)
    if candidate.status != CandidateStatus.PENDING_APPROVAL:
        raise WorkflowError(
            f"Offer is not awaiting approval (candidate status '{candidate.status.value}')"
        )
    return proposal, candidate, None


def _check_manager(proposal: JobProposal, context: SessionContext) -> Optional[dict[str, Any]]:
    if (
        context.is_hr_manager
        and proposal.assigned_hr_manager_id
        and proposal.assigned_hr_manager_id != context.user_id
    ):
        return {
            "success": False,
            "error": "Offer is assigned to a different HR Manager",
            "status_code": 403,
        }
    return None


async def _check_interviewer(
    db: AsyncSession, candidate: Candidate, context: SessionContext
) -> tuple[Optional[Any], Optional[dict[str, Any]]]:
    interview = await get_latest_interview(db, candidate.id)
    if context.is_hr_admin:
        return interview, None
    if interview is None or interview.interviewer_email.lower() != context.email.lower():
        return interview, {
            "success": False,
            "error": "Only the candidate's interviewer can act on this offer",
            "status_code": 403,
        }
    return interview, None


async def approve_by_manager(
    db: AsyncSession, proposal_id: int, context: SessionContext
) -> dict[str, Any]:
    """First approval stage."""
    proposal, candidate, error = await _load_pending(db, proposal_id)
    if error:
        return error
    error = _check_manager(proposal, context)
    if error:
        return error
    if proposal.hr_manager_approved:
        return {"success": False, "error": "Offer is already approved by HR Manager", "status_code": 409}

    proposal.hr_manager_approved = True
    proposal.hr_manager_approved_by = context.user_id
    proposal.hr_manager_approved_at = now()
    proposal.hr_manager_rejection_notes = None
    await db.commit()

    events: list[DomainEvent] = []
    interview = await get_latest_interview(db, candidate.id)
    if interview is not None:
        interviewer_id = await find_user_id_by_email(db, interview.interviewer_email)
        if interviewer_id:
            events.append(InAppNotice(
                user_id=interviewer_id,
                type=NotificationType.OFFER_APPROVAL_INTERVIEWER,
                title="Offer Acknowledgment Required",
                message=(
                    f"Offer for {candidate.full_name} - {proposal.position_offered} "
                    f"needs your acknowledgment"
                ),
                related_candidate_id=candidate.id,
                related_proposal_id=proposal.id,
            ))
            events.append(communications.offer_approved_by_hr_manager(
                candidate,
                proposal,
                interview.interviewer_email,
                interview.interviewer_name or interview.interviewer_email,
                context,
            ))
        else:
            logger.warning(
                f"Offer {proposal.id} approved but interviewer {interview.interviewer_email} "
                f"has no account; acknowledgment request not sent"
            )
    else:
        logger.warning(f"Offer {proposal.id} approved but candidate {candidate.id} has no interview")

    events.append(InAppNotice(
        user_id=proposal.created_by,
        type=NotificationType.OFFER_APPROVED_HR_MANAGER,
        title="Offer Approved by HR Manager",
        message=(
            f"Offer for {candidate.full_name} - {proposal.position_offered} was approved "
            f"by the HR Manager and awaits interviewer acknowledgment"
        ),
        related_candidate_id=candidate.id,
        related_proposal_id=proposal.id,
    ))

    logger.info(f"Offer {proposal.id} approved by HR Manager {context.user_id}")
    return {"success": True, "proposal": proposal_to_dict(proposal), "events": events}


def _rejection_events(
    candidate: Candidate,
    proposal: JobProposal,
    event_type: EmailEventType,
    role_label: str,
    notes: str,
    context: SessionContext,
) -> list[DomainEvent]:
    return [
        InAppNotice(
            user_id=proposal.created_by,
            type=NotificationType.OFFER_REJECTED,
            title=f"Offer Rejected by {role_label}",
            message=(
                f"Offer for {candidate.full_name} - {proposal.position_offered} was rejected "
                f"by the {role_label} and needs amendments"
            ),
            related_candidate_id=candidate.id,
            related_proposal_id=proposal.id,
        ),
        communications.offer_rejected(candidate, proposal, event_type, role_label, notes, context),
    ]


async def reject_by_manager(
    db: AsyncSession, proposal_id: int, notes: str, context: SessionContext
) -> dict[str, Any]:
    """HR Manager sends the offer back to the submitter. Status is unchanged."""
    if _blank(notes):
        return {"success": False, "error": "Rejection notes are required"}

    proposal, candidate, error = await _load_pending(db, proposal_id)
    if error:
        return error
    error = _check_manager(proposal, context)
    if error:
        return error
    if proposal.hr_manager_approved:
        return {"success": False, "error": "Offer is already approved by HR Manager", "status_code": 409}

    proposal.hr_manager_rejection_notes = notes
    record_note(db, candidate, context, f"Job offer rejected by HR Manager: {notes}")
    await db.commit()

    logger.info(f"Offer {proposal.id} rejected by HR Manager {context.user_id}")
    return {
        "success": True,
        "proposal": proposal_to_dict(proposal),
        "events": _rejection_events(
            candidate, proposal, EmailEventType.OFFER_REJECTED_BY_HR_MANAGER,
            "HR Manager", notes, context,
        ),
    }


async def acknowledge(
    db: AsyncSession, proposal_id: int, context: SessionContext
) -> dict[str, Any]:
    """Final approval by the interviewer; the candidate moves to ``offer_sent``."""
    proposal, candidate, error = await _load_pending(db, proposal_id)
    if error:
        return error
    _, error = await _check_interviewer(db, candidate, context)
    if error:
        return error
    if not proposal.hr_manager_approved:
        return {"success": False, "error": "Offer must be approved by the HR Manager first"}

    proposal.interviewer_acknowledged = True
    proposal.interviewer_acknowledged_by = context.user_id
    proposal.interviewer_acknowledged_at = now()
    proposal.interviewer_rejection_notes = None
    proposal.offer_status = OfferStatus.APPROVED
    record_transition(
        db,
        candidate,
        CandidateStatus.OFFER_SENT,
        context,
        "Job offer acknowledged by interviewer - final approval",
    )
    await db.commit()

    message = (
        f"Offer for {candidate.full_name} - {proposal.position_offered} has been fully "
        f"approved and sent"
    )
    events: list[DomainEvent] = [
        InAppNotice(
            user_id=proposal.created_by,
            type=NotificationType.OFFER_APPROVAL_COMPLETE,
            title="Offer Approval Complete",
            message=message,
            related_candidate_id=candidate.id,
            related_proposal_id=proposal.id,
        ),
        communications.offer_acknowledged(candidate, proposal, context),
    ]
    if proposal.assigned_hr_manager_id:
        events.append(InAppNotice(
            user_id=proposal.assigned_hr_manager_id,
            type=NotificationType.OFFER_APPROVAL_COMPLETE,
            title="Offer Approval Complete",
            message=message,
            related_candidate_id=candidate.id,
            related_proposal_id=proposal.id,
        ))

    logger.info(f"Offer {proposal.id} acknowledged by interviewer {context.user_id}")
    return {
        "success": True,
        "proposal": proposal_to_dict(proposal),
        "candidate": candidate_to_dict(candidate),
        "events": events,
    }


async def reject_by_interviewer(
    db: AsyncSession, proposal_id: int, notes: str, context: SessionContext
) -> dict[str, Any]:
    """Interviewer rejection also withdraws the HR Manager's approval."""
    if _blank(notes):
        return {"success": False, "error": "Rejection notes are required"}

    proposal, candidate, error = await _load_pending(db, proposal_id)
    if error:
        return error
    _, error = await _check_interviewer(db, candidate, context)
    if error:
        return error

    proposal.interviewer_rejection_notes = notes
    proposal.hr_manager_approved = False
    proposal.hr_manager_approved_by = None
    proposal.hr_manager_approved_at = None
    record_note(db, candidate, context, f"Job offer rejected by Interviewer: {notes}")
    await db.commit()

    logger.info(f"Offer {proposal.id} rejected by interviewer {context.user_id}")
    return {
        "success": True,
        "proposal": proposal_to_dict(proposal),
        "events": _rejection_events(
            candidate, proposal, EmailEventType.OFFER_REJECTED_BY_INTERVIEWER,
            "Interviewer", notes, context,
        ),
    }


async def resubmit(
    db: AsyncSession,
    proposal_id: int,
    offer: dict[str, Any],
    personal: dict[str, Any],
    context: SessionContext,
) -> dict[str, Any]:
    """Apply the amended offer and restart both approvals with the same HR Manager."""
    proposal, candidate, error = await _load_pending(db, proposal_id)
    if error:
        return error

    error = validate_offer_input(offer, personal)
    if error:
        return {"success": False, "error": error}

    await _backfill_feedback(db, candidate.id, offer)
    _apply_offer(proposal, offer)
    proposal.reset_approvals()
    _apply_personal(candidate, personal, context)
    record_note(
        db,
        candidate,
        context,
        f"Job offer updated and re-submitted for approval to {proposal.assigned_hr_manager_email}",
    )
    await db.commit()

    logger.info(f"Offer {proposal.id} re-submitted to {proposal.assigned_hr_manager_email}")
    return {
        "success": True,
        "proposal": proposal_to_dict(proposal),
        "candidate": candidate_to_dict(candidate),
        "events": [
            _approval_request(candidate, proposal),
            communications.offer_submitted_for_approval(candidate, proposal, context),
        ],
    }
