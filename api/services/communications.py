"""Email event builders.

Each builder turns workflow records into the ``data`` block the mail
automation renders. Links point at the web front end (PUBLIC_APP_URL).
"""

from typing import Any, Optional
import logging

from core.config import settings
from core.events import EmailEvent
from core.integrations.calendar import build_interview_invite
from core.middleware.authorization import SessionContext
from core.utils.datetime import isoformat_now
from database.models.candidates import Candidate
from database.models.communications import EmailEventType
from database.models.interviews import CandidateAssignment, Interview, InterviewFeedback
from database.models.offers import JobProposal

logger = logging.getLogger(__name__)


def candidate_link(candidate_id: int) -> str:
    return f"{settings.public_app_url.rstrip('/')}/candidates/{candidate_id}"


def feedback_link(feedback_id: int) -> str:
    return f"{settings.public_app_url.rstrip('/')}/interviewer/feedback/{feedback_id}/view"


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def candidate_assigned(
    candidate: Candidate,
    assignment: CandidateAssignment,
    context: SessionContext,
) -> EmailEvent:
    """Interviewer learns a candidate was assigned to them."""
    return EmailEvent(
        event_type=EmailEventType.CANDIDATE_ASSIGNED,
        candidate_id=candidate.id,
        recipient_email=assignment.interviewer_email,
        recipient_name=assignment.interviewer_name,
        data={
            "candidate_name": candidate.full_name,
            "candidate_position": candidate.position_applied,
            "candidate_link": candidate_link(candidate.id),
            "assigned_by": context.display_name,
            "assigned_at": isoformat_now(),
        },
    )


def interviewer_changed(
    candidate: Candidate,
    previous: CandidateAssignment,
    current: CandidateAssignment,
    context: SessionContext,
) -> list[EmailEvent]:
    """One "removed" email to the previous interviewer, one "assigned" to the new one."""
    base = {
        "candidate_name": candidate.full_name,
        "candidate_position": candidate.position_applied,
        "changed_by": context.display_name,
        "changed_at": isoformat_now(),
    }
    return [
        EmailEvent(
            event_type=EmailEventType.INTERVIEWER_CHANGED,
            candidate_id=candidate.id,
            recipient_email=previous.interviewer_email,
            recipient_name=previous.interviewer_name,
            data={
                **base,
                "notification_type": "removed",
                "new_interviewer": current.interviewer_name,
            },
        ),
        EmailEvent(
            event_type=EmailEventType.INTERVIEWER_CHANGED,
            candidate_id=candidate.id,
            recipient_email=current.interviewer_email,
            recipient_name=current.interviewer_name,
            data={
                **base,
                "notification_type": "assigned",
                "candidate_link": candidate_link(candidate.id),
            },
        ),
    ]


def interest_confirmed(
    candidate: Candidate,
    assignment: CandidateAssignment,
    context: SessionContext,
) -> Optional[EmailEvent]:
    """The HR user who assigned the candidate hears the interviewer is interested."""
    if not assignment.assigned_by_email:
        return None
    return EmailEvent(
        event_type=EmailEventType.INTEREST_CONFIRMED,
        candidate_id=candidate.id,
        recipient_email=assignment.assigned_by_email,
        data={
            "candidate_name": candidate.full_name,
            "candidate_position": candidate.position_applied,
            "interviewer_name": assignment.interviewer_name,
            "interviewer_email": assignment.interviewer_email,
            "hr_staff_email": assignment.assigned_by_email,
            "candidate_link": candidate_link(candidate.id),
            "confirmed_at": isoformat_now(),
        },
    )


def interview_scheduled(
    candidate: Candidate,
    interview: Interview,
    context: SessionContext,
) -> EmailEvent:
    """Interviewer receives the schedule with a calendar invite."""
    invite = build_interview_invite(
        candidate_name=candidate.full_name,
        candidate_email=candidate.email,
        position=candidate.position_applied,
        interviewer_email=interview.interviewer_email,
        interviewer_name=interview.interviewer_name,
        interview_date=interview.interview_date,
        interview_time=interview.interview_time,
        location=interview.location,
        meeting_link=interview.meeting_link,
        notes=interview.notes,
    )
    return EmailEvent(
        event_type=EmailEventType.INTERVIEW_SCHEDULED,
        candidate_id=candidate.id,
        recipient_email=interview.interviewer_email,
        recipient_name=interview.interviewer_name,
        data={
            "candidate_id": candidate.id,
            "candidate_name": candidate.full_name,
            "candidate_email": candidate.email,
            "candidate_position": candidate.position_applied,
            "interviewer_name": interview.interviewer_name,
            "interviewer_email": interview.interviewer_email,
            "interview_date": _iso(interview.interview_date),
            "interview_time": interview.interview_time.strftime("%H:%M"),
            "location": interview.location,
            "meeting_link": interview.meeting_link,
            "notes": interview.notes,
            "scheduled_by": context.display_name,
            "scheduled_at": isoformat_now(),
            "calendar_event": invite.to_dict(),
        },
    )


def feedback_submitted(
    candidate: Candidate,
    feedback: InterviewFeedback,
    assignment: Optional[CandidateAssignment],
) -> Optional[EmailEvent]:
    """The assigning HR user is told the interviewer's verdict."""
    if assignment is None or not assignment.assigned_by_email:
        logger.info(f"No assigning HR user to notify for candidate {candidate.id}")
        return None
    return EmailEvent(
        event_type=EmailEventType.FEEDBACK_SUBMITTED,
        candidate_id=candidate.id,
        recipient_email=assignment.assigned_by_email,
        data={
            "candidate_name": candidate.full_name,
            "candidate_position": candidate.position_applied,
            "interviewer_name": feedback.interviewer_name,
            "interviewer_email": feedback.interviewer_email,
            "decision": feedback.decision.value,
            "total_score": feedback.total_score,
            "max_score": feedback.max_score,
            "percentage": feedback.percentage,
            "feedback_link": feedback_link(feedback.id),
            "candidate_link": candidate_link(candidate.id),
            "submitted_at": isoformat_now(),
        },
    )


def _offer_base(candidate: Candidate, proposal: JobProposal) -> dict[str, Any]:
    return {
        "candidate_name": candidate.full_name,
        "position_offered": proposal.position_offered,
        "company_name": proposal.company_name,
        "candidate_link": candidate_link(candidate.id),
    }


def offer_submitted_for_approval(
    candidate: Candidate,
    proposal: JobProposal,
    context: SessionContext,
) -> Optional[EmailEvent]:
    """The assigned HR Manager is asked to approve."""
    if not proposal.assigned_hr_manager_email:
        return None
    return EmailEvent(
        event_type=EmailEventType.OFFER_SUBMITTED_FOR_APPROVAL,
        candidate_id=candidate.id,
        recipient_email=proposal.assigned_hr_manager_email,
        data={
            **_offer_base(candidate, proposal),
            "candidate_email": candidate.email,
            "start_date": _iso(proposal.start_date),
            "submitted_by": context.display_name,
            "submitted_at": isoformat_now(),
        },
    )


def offer_approved_by_hr_manager(
    candidate: Candidate,
    proposal: JobProposal,
    interviewer_email: str,
    interviewer_name: Optional[str],
    context: SessionContext,
) -> EmailEvent:
    """The interviewer is asked to acknowledge a manager-approved offer."""
    return EmailEvent(
        event_type=EmailEventType.OFFER_APPROVED_BY_HR_MANAGER,
        candidate_id=candidate.id,
        recipient_email=interviewer_email,
        recipient_name=interviewer_name,
        data={
            **_offer_base(candidate, proposal),
            "approved_by": context.display_name,
            "approved_at": isoformat_now(),
        },
    )


def offer_acknowledged(
    candidate: Candidate,
    proposal: JobProposal,
    context: SessionContext,
) -> Optional[EmailEvent]:
    """The submitter learns the offer has final approval."""
    if not proposal.created_by_email:
        return None
    return EmailEvent(
        event_type=EmailEventType.OFFER_ACKNOWLEDGED,
        candidate_id=candidate.id,
        recipient_email=proposal.created_by_email,
        data={
            **_offer_base(candidate, proposal),
            "candidate_email": candidate.email,
            "interviewer_name": context.display_name,
            "interviewer_email": context.email,
            "acknowledged_at": isoformat_now(),
        },
    )


def offer_rejected(
    candidate: Candidate,
    proposal: JobProposal,
    event_type: EmailEventType,
    rejected_by_role: str,
    notes: str,
    context: SessionContext,
) -> Optional[EmailEvent]:
    """The submitter learns who rejected the offer and why."""
    if not proposal.created_by_email:
        return None
    return EmailEvent(
        event_type=event_type,
        candidate_id=candidate.id,
        recipient_email=proposal.created_by_email,
        data={
            **_offer_base(candidate, proposal),
            "rejected_by": context.display_name,
            "rejected_by_role": rejected_by_role,
            "rejection_notes": notes,
            "rejected_at": isoformat_now(),
        },
    )
