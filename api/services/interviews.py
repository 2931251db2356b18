"""Interview scheduling, interest confirmation and the interviewer dashboard."""

from datetime import date, time
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.events import DomainEvent
from core.middleware.authorization import SessionContext
from core.workflow import record_transition
from database.models.candidates import Candidate, CandidateStatus
from database.models.interviews import (
    AssignmentStatus,
    CandidateAssignment,
    Interview,
    InterviewStatus,
)
from api.services import communications
from api.services.candidates import (
    assignment_to_dict,
    candidate_to_dict,
    get_active_assignment,
    get_candidate_row,
    get_scheduled_interview,
    interview_to_dict,
    replace_assignment,
)

logger = logging.getLogger(__name__)

S = CandidateStatus

# Dashboard tabs; "interviewed" covers every post-interview outcome
DASHBOARD_GROUPS: Dict[str, frozenset] = {
    "shortlisted": frozenset({S.SHORTLISTED}),
    "to_interview": frozenset({S.TO_INTERVIEW}),
    "interview_scheduled": frozenset({S.INTERVIEW_SCHEDULED}),
    "interviewed": frozenset({
        S.INTERVIEWED, S.TO_OFFER, S.PENDING_APPROVAL, S.OFFER_SENT,
        S.OFFER_REJECTED, S.HIRED, S.ON_HOLD, S.REJECTED,
    }),
}


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


async def schedule_interview(
    db: AsyncSession,
    candidate_id: int,
    interviewer_email: str,
    interview_date: date,
    interview_time: time,
    context: SessionContext,
    interviewer_name: Optional[str] = None,
    location: Optional[str] = None,
    meeting_link: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Schedule, reschedule or reassign the candidate's interview.

    - Same interviewer as the scheduled interview: reschedule in place.
    - Different interviewer: cancel the old interview, supersede the
      assignment, and schedule a new interview.
    - No scheduled interview: schedule one and move the candidate to
      ``interview_scheduled``.
    """
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    interviewer_email = interviewer_email.strip().lower()
    interviewer_name = interviewer_name or interviewer_email
    events: List[DomainEvent] = []
    existing = await get_scheduled_interview(db, candidate_id)

    if existing and _same_email(existing.interviewer_email, interviewer_email):
        existing.interview_date = interview_date
        existing.interview_time = interview_time
        existing.interviewer_name = interviewer_name
        existing.location = location
        existing.meeting_link = meeting_link
        existing.notes = notes
        await db.commit()

        logger.info(f"Interview {existing.id} for candidate {candidate.id} rescheduled")
        events.append(communications.interview_scheduled(candidate, existing, context))
        return {
            "success": True,
            "mode": "rescheduled",
            "interview": interview_to_dict(existing),
            "candidate": candidate_to_dict(candidate),
            "events": events,
        }

    if existing:
        existing.status = InterviewStatus.CANCELLED
        await db.flush()

    assignment = await _ensure_assignment(
        db, candidate, interviewer_name, interviewer_email, context, events
    )

    interview = Interview(
        candidate_id=candidate.id,
        assignment_id=assignment.id,
        interviewer_name=interviewer_name,
        interviewer_email=interviewer_email,
        interview_date=interview_date,
        interview_time=interview_time,
        location=location,
        meeting_link=meeting_link,
        notes=notes,
        status=InterviewStatus.SCHEDULED,
        created_by=context.user_id,
        created_by_email=context.email,
    )
    db.add(interview)

    if candidate.status != CandidateStatus.INTERVIEW_SCHEDULED:
        record_transition(
            db, candidate, CandidateStatus.INTERVIEW_SCHEDULED, context, "Interview scheduled"
        )

    await db.commit()

    mode = "reassigned" if existing else "scheduled"
    logger.info(f"Interview {interview.id} {mode} for candidate {candidate.id}")
    events.append(communications.interview_scheduled(candidate, interview, context))
    return {
        "success": True,
        "mode": mode,
        "interview": interview_to_dict(interview),
        "assignment": assignment_to_dict(assignment),
        "candidate": candidate_to_dict(candidate),
        "events": events,
    }


async def _ensure_assignment(
    db: AsyncSession,
    candidate: Candidate,
    interviewer_name: str,
    interviewer_email: str,
    context: SessionContext,
    events: List[DomainEvent],
) -> CandidateAssignment:
    """Active assignment for the interviewer, superseding any other one. Flushed."""
    active = await get_active_assignment(db, candidate.id)

    if active is not None and _same_email(active.interviewer_email, interviewer_email):
        return active

    if active is not None:
        current = await replace_assignment(
            db, candidate, active, interviewer_name, interviewer_email, context
        )
        events.extend(communications.interviewer_changed(candidate, active, current, context))
    else:
        current = CandidateAssignment(
            candidate_id=candidate.id,
            interviewer_name=interviewer_name,
            interviewer_email=interviewer_email,
            assigned_by=context.user_id,
            assigned_by_email=context.email,
            status=AssignmentStatus.PENDING,
            is_active=True,
        )
        db.add(current)

    await db.flush()
    return current


async def confirm_interest(
    db: AsyncSession,
    candidate_id: int,
    context: SessionContext,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """The assigned interviewer confirms they want to interview the candidate."""
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    assignment = await get_active_assignment(db, candidate_id)
    if assignment is None:
        return {"success": False, "error": "Candidate has no assigned interviewer"}
    if not context.is_hr_admin and not _same_email(assignment.interviewer_email, context.email):
        return {
            "success": False,
            "error": "Only the assigned interviewer can confirm interest",
            "status_code": 403,
        }
    if assignment.status != AssignmentStatus.PENDING:
        return {"success": False, "error": "Interest has already been confirmed", "status_code": 409}

    assignment.status = AssignmentStatus.CONFIRMED
    if candidate.status == CandidateStatus.SHORTLISTED:
        record_transition(
            db,
            candidate,
            CandidateStatus.TO_INTERVIEW,
            context,
            notes or "Interviewer confirmed interest in candidate",
        )
    await db.commit()

    return {
        "success": True,
        "candidate": candidate_to_dict(candidate),
        "assignment": assignment_to_dict(assignment),
        "events": [communications.interest_confirmed(candidate, assignment, context)],
    }


async def list_interviews(db: AsyncSession, candidate_id: int) -> Dict[str, Any]:
    result = await db.execute(
        select(Interview)
        .where(Interview.candidate_id == candidate_id)
        .order_by(Interview.created_at.desc(), Interview.id.desc())
    )
    interviews = result.scalars().all()
    return {"interviews": [interview_to_dict(i) for i in interviews], "total": len(interviews)}


async def get_interviewer_dashboard(
    db: AsyncSession,
    context: SessionContext,
    status_group: str = "all",
) -> Dict[str, Any]:
    """
    Candidates actively assigned to the caller (every active assignment for
    hr_admin), filtered by dashboard tab, with per-tab counts.
    """
    if status_group != "all" and status_group not in DASHBOARD_GROUPS:
        return {"success": False, "error": f"Unknown status group: {status_group}"}

    query = (
        select(Candidate, CandidateAssignment)
        .join(CandidateAssignment, CandidateAssignment.candidate_id == Candidate.id)
        .where(CandidateAssignment.is_active.is_(True))
        .order_by(CandidateAssignment.assigned_at.desc(), CandidateAssignment.id.desc())
    )
    if not context.is_hr_admin:
        query = query.where(CandidateAssignment.interviewer_email == context.email.lower())

    rows = (await db.execute(query)).all()

    scheduled = {}
    if rows:
        interviews = await db.execute(
            select(Interview).where(
                Interview.candidate_id.in_([c.id for c, _ in rows]),
                Interview.status == InterviewStatus.SCHEDULED,
            )
        )
        scheduled = {i.candidate_id: i for i in interviews.scalars().all()}

    counts = {"all": len(rows)}
    for name, statuses in DASHBOARD_GROUPS.items():
        counts[name] = sum(1 for c, _ in rows if c.status in statuses)

    selected = DASHBOARD_GROUPS.get(status_group)
    candidates = []
    for candidate, assignment in rows:
        if selected is not None and candidate.status not in selected:
            continue
        interview = scheduled.get(candidate.id)
        candidates.append({
            **candidate_to_dict(candidate),
            "assignment": assignment_to_dict(assignment),
            "scheduled_interview": interview_to_dict(interview) if interview else None,
        })

    return {
        "success": True,
        "status_group": status_group,
        "candidates": candidates,
        "counts": counts,
    }
