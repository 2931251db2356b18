"""Candidate service functions."""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from core.middleware.authorization import SessionContext
from core.workflow import allowed_targets, can_transition, record_transition
from database.models.candidates import Candidate, CandidateStatus, StatusHistory
from database.models.interviews import (
    AssignmentStatus,
    CandidateAssignment,
    Interview,
    InterviewFeedback,
    InterviewStatus,
)
from database.models.offers import JobProposal
from api.services import communications

logger = logging.getLogger(__name__)

# Entered through their own commands rather than a generic status change
MANAGED_STATUSES = {
    CandidateStatus.SHORTLISTED: "shortlist",
    CandidateStatus.INTERVIEW_SCHEDULED: "schedule interview",
    CandidateStatus.PENDING_APPROVAL: "send offer",
    CandidateStatus.OFFER_SENT: "acknowledge offer",
}


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def candidate_to_dict(candidate: Candidate) -> Dict[str, Any]:
    return {
        "id": candidate.id,
        "first_name": candidate.first_name,
        "last_name": candidate.last_name,
        "full_name": candidate.full_name,
        "email": candidate.email,
        "phone_number": candidate.phone_number,
        "position_applied": candidate.position_applied,
        "years_of_experience": _str(candidate.years_of_experience),
        "current_position": candidate.current_position,
        "current_employer": candidate.current_employer,
        "education_level": candidate.education_level,
        "institution": candidate.institution,
        "message": candidate.message,
        "cv_file_url": candidate.cv_file_url,
        "cv_file_name": candidate.cv_file_name,
        "status": candidate.status.value,
        "updated_by_email": candidate.updated_by_email,
        "created_at": _iso(candidate.created_at),
        "updated_at": _iso(candidate.updated_at),
    }


def personal_info_to_dict(candidate: Candidate) -> Dict[str, Any]:
    return {
        "name_title": candidate.name_title,
        "first_name_en": candidate.first_name_en,
        "last_name_en": candidate.last_name_en,
        "national_id": candidate.national_id,
        "birthday": _iso(candidate.birthday),
        "gender": candidate.gender,
        "religion": candidate.religion,
        "house_no": candidate.house_no,
        "moo": candidate.moo,
        "soi": candidate.soi,
        "street": candidate.street,
        "sub_district": candidate.sub_district,
        "district": candidate.district,
        "province": candidate.province,
        "postal_code": candidate.postal_code,
    }


def assignment_to_dict(assignment: CandidateAssignment) -> Dict[str, Any]:
    return {
        "id": assignment.id,
        "candidate_id": assignment.candidate_id,
        "interviewer_name": assignment.interviewer_name,
        "interviewer_email": assignment.interviewer_email,
        "assigned_by_email": assignment.assigned_by_email,
        "status": assignment.status.value,
        "is_active": assignment.is_active,
        "notes": assignment.notes,
        "assigned_at": _iso(assignment.assigned_at),
    }


def interview_to_dict(interview: Interview) -> Dict[str, Any]:
    return {
        "id": interview.id,
        "candidate_id": interview.candidate_id,
        "assignment_id": interview.assignment_id,
        "interviewer_name": interview.interviewer_name,
        "interviewer_email": interview.interviewer_email,
        "interview_date": _iso(interview.interview_date),
        "interview_time": interview.interview_time.strftime("%H:%M") if interview.interview_time else None,
        "location": interview.location,
        "meeting_link": interview.meeting_link,
        "notes": interview.notes,
        "status": interview.status.value,
        "feedback_submitted": interview.feedback_submitted,
        "feedback_id": interview.feedback_id,
    }


def history_to_dict(entry: StatusHistory) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "from_status": entry.from_status,
        "to_status": entry.to_status,
        "changed_by": entry.changed_by,
        "changed_by_email": entry.changed_by_email,
        "notes": entry.notes,
        "changed_at": _iso(entry.changed_at),
    }


# ==================== Lookups ===================== #

async def get_candidate_row(db: AsyncSession, candidate_id: int) -> Optional[Candidate]:
    return await db.get(Candidate, candidate_id)


async def get_active_assignment(
    db: AsyncSession, candidate_id: int
) -> Optional[CandidateAssignment]:
    result = await db.execute(
        select(CandidateAssignment).where(
            CandidateAssignment.candidate_id == candidate_id,
            CandidateAssignment.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def get_scheduled_interview(db: AsyncSession, candidate_id: int) -> Optional[Interview]:
    result = await db.execute(
        select(Interview).where(
            Interview.candidate_id == candidate_id,
            Interview.status == InterviewStatus.SCHEDULED,
        )
    )
    return result.scalar_one_or_none()


async def get_latest_interview(db: AsyncSession, candidate_id: int) -> Optional[Interview]:
    result = await db.execute(
        select(Interview)
        .where(Interview.candidate_id == candidate_id, Interview.status != InterviewStatus.CANCELLED)
        .order_by(Interview.created_at.desc(), Interview.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def is_assigned_to(db: AsyncSession, candidate_id: int, email: str) -> bool:
    """True when ``email`` holds the active assignment for the candidate."""
    assignment = await get_active_assignment(db, candidate_id)
    return assignment is not None and assignment.interviewer_email.lower() == email.lower()


# ==================== Queries ===================== #

async def list_candidates(
    db: AsyncSession,
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    """List candidates with optional status filter and name/email/position search."""
    query = select(Candidate)
    count_query = select(func.count(Candidate.id))

    filters = []
    if status:
        try:
            filters.append(Candidate.status == CandidateStatus(status))
        except ValueError:
            return {"success": False, "error": f"Invalid status: {status}"}
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(
            Candidate.first_name.ilike(pattern),
            Candidate.last_name.ilike(pattern),
            Candidate.email.ilike(pattern),
            Candidate.position_applied.ilike(pattern),
        ))

    if filters:
        query = query.where(*filters)
        count_query = count_query.where(*filters)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(Candidate.created_at.desc(), Candidate.id.desc()).offset(offset).limit(limit)
    )

    return {
        "success": True,
        "candidates": [candidate_to_dict(c) for c in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def get_candidate(
    db: AsyncSession,
    candidate_id: int,
    context: SessionContext,
) -> Optional[Dict[str, Any]]:
    """
    Candidate detail with assignment, interviews, feedback and latest offer.

    Interviewers only see candidates actively assigned to them.
    """
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return None

    assignment = await get_active_assignment(db, candidate_id)
    if context.is_interviewer and (
        assignment is None or assignment.interviewer_email.lower() != context.email.lower()
    ):
        return None

    interviews = (await db.execute(
        select(Interview)
        .where(Interview.candidate_id == candidate_id)
        .order_by(Interview.created_at.desc(), Interview.id.desc())
    )).scalars().all()

    feedback = (await db.execute(
        select(InterviewFeedback)
        .where(InterviewFeedback.candidate_id == candidate_id)
        .order_by(InterviewFeedback.created_at.desc(), InterviewFeedback.id.desc())
    )).scalars().all()

    proposal = (await db.execute(
        select(JobProposal)
        .where(JobProposal.candidate_id == candidate_id)
        .order_by(JobProposal.created_at.desc(), JobProposal.id.desc())
        .limit(1)
    )).scalar_one_or_none()

    return {
        **candidate_to_dict(candidate),
        "personal_info": personal_info_to_dict(candidate),
        "allowed_transitions": allowed_targets(candidate.status),
        "assignment": assignment_to_dict(assignment) if assignment else None,
        "interviews": [interview_to_dict(i) for i in interviews],
        "feedback": [
            {
                "id": f.id,
                "interview_id": f.interview_id,
                "interviewer_email": f.interviewer_email,
                "total_score": f.total_score,
                "max_score": f.max_score,
                "percentage": f.percentage,
                "decision": f.decision.value,
                "created_at": _iso(f.created_at),
            }
            for f in feedback
        ],
        "latest_proposal_id": proposal.id if proposal else None,
    }


async def get_status_history(db: AsyncSession, candidate_id: int) -> Dict[str, Any]:
    """Full audit trail, oldest first."""
    if not await get_candidate_row(db, candidate_id):
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    result = await db.execute(
        select(StatusHistory)
        .where(StatusHistory.candidate_id == candidate_id)
        .order_by(StatusHistory.changed_at, StatusHistory.id)
    )
    entries = result.scalars().all()
    return {
        "success": True,
        "candidate_id": candidate_id,
        "history": [history_to_dict(e) for e in entries],
        "total": len(entries),
    }


# ==================== Commands ===================== #

async def _has_managed_prerequisite(
    db: AsyncSession, candidate_id: int, new_status: CandidateStatus
) -> bool:
    """A held candidate may return to a managed status its records still support."""
    if new_status == CandidateStatus.SHORTLISTED:
        return await get_active_assignment(db, candidate_id) is not None
    if new_status == CandidateStatus.INTERVIEW_SCHEDULED:
        return await get_scheduled_interview(db, candidate_id) is not None
    return False


async def change_status(
    db: AsyncSession,
    candidate_id: int,
    new_status: CandidateStatus,
    context: SessionContext,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Generic status change along the transition table (hold, reject, hire...).

    Raises:
        IllegalStatusTransition: If the move is not in the table
    """
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    if new_status in MANAGED_STATUSES and can_transition(candidate.status, new_status):
        if not await _has_managed_prerequisite(db, candidate_id, new_status):
            return {
                "success": False,
                "error": (
                    f"Use the {MANAGED_STATUSES[new_status]} action to move to "
                    f"'{new_status.value}'"
                ),
            }

    record_transition(db, candidate, new_status, context, notes)
    await db.commit()

    return {"success": True, "candidate": candidate_to_dict(candidate), "events": []}


async def shortlist_candidate(
    db: AsyncSession,
    candidate_id: int,
    interviewer_name: str,
    interviewer_email: str,
    context: SessionContext,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """Shortlist and assign an interviewer in one transaction."""
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    if await get_active_assignment(db, candidate_id):
        return {
            "success": False,
            "error": "Candidate already has an active interviewer; reassign instead",
            "status_code": 409,
        }

    record_transition(
        db,
        candidate,
        CandidateStatus.SHORTLISTED,
        context,
        notes or "Candidate shortlisted and assigned to interviewer",
    )
    assignment = CandidateAssignment(
        candidate_id=candidate.id,
        interviewer_name=interviewer_name,
        interviewer_email=interviewer_email.lower(),
        assigned_by=context.user_id,
        assigned_by_email=context.email,
        status=AssignmentStatus.PENDING,
        is_active=True,
        notes=notes,
    )
    db.add(assignment)
    await db.commit()

    logger.info(f"Candidate {candidate.id} shortlisted for {assignment.interviewer_email}")
    return {
        "success": True,
        "candidate": candidate_to_dict(candidate),
        "assignment": assignment_to_dict(assignment),
        "events": [communications.candidate_assigned(candidate, assignment, context)],
    }


async def replace_assignment(
    db: AsyncSession,
    candidate: Candidate,
    previous: CandidateAssignment,
    interviewer_name: str,
    interviewer_email: str,
    context: SessionContext,
    notes: Optional[str] = None,
) -> CandidateAssignment:
    """
    Deactivate ``previous`` and add a new active assignment. Not committed.
    """
    previous.is_active = False
    previous.status = AssignmentStatus.REASSIGNED
    # The partial unique index needs the old row inactive before the insert
    await db.flush()

    note = f"Reassigned from {previous.interviewer_name} ({previous.interviewer_email})"
    current = CandidateAssignment(
        candidate_id=candidate.id,
        interviewer_name=interviewer_name,
        interviewer_email=interviewer_email.lower(),
        assigned_by=context.user_id,
        assigned_by_email=context.email,
        status=AssignmentStatus.PENDING,
        is_active=True,
        notes=f"{note}. {notes}" if notes else note,
    )
    db.add(current)
    return current


async def reassign_interviewer(
    db: AsyncSession,
    candidate_id: int,
    interviewer_name: str,
    interviewer_email: str,
    context: SessionContext,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """Hand the candidate to a different interviewer; history of assignments is kept."""
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    previous = await get_active_assignment(db, candidate_id)
    if previous is None:
        return {"success": False, "error": "Candidate has no assigned interviewer"}

    if previous.interviewer_email.lower() == interviewer_email.lower():
        return {"success": False, "error": "Candidate is already assigned to this interviewer"}

    current = await replace_assignment(
        db, candidate, previous, interviewer_name, interviewer_email, context, notes
    )
    await db.commit()

    logger.info(
        f"Candidate {candidate.id} reassigned from {previous.interviewer_email} "
        f"to {current.interviewer_email}"
    )
    return {
        "success": True,
        "candidate": candidate_to_dict(candidate),
        "assignment": assignment_to_dict(current),
        "previous_assignment": assignment_to_dict(previous),
        "events": communications.interviewer_changed(candidate, previous, current, context),
    }


async def list_assignments(db: AsyncSession, candidate_id: int) -> List[Dict[str, Any]]:
    """All assignments for a candidate, active and superseded."""
    result = await db.execute(
        select(CandidateAssignment)
        .where(CandidateAssignment.candidate_id == candidate_id)
        .order_by(CandidateAssignment.assigned_at, CandidateAssignment.id)
    )
    return [assignment_to_dict(a) for a in result.scalars().all()]
