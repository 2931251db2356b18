"""Interview feedback service functions."""

from datetime import date
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.middleware.authorization import SessionContext
from core.utils.scoring import IncompleteRubric, compute_score
from core.workflow import record_transition
from database.models.candidates import CandidateStatus
from database.models.interviews import (
    AssignmentStatus,
    EmploymentType,
    FeedbackDecision,
    Interview,
    InterviewFeedback,
    InterviewStatus,
    PositionType,
)
from api.services import communications
from api.services.candidates import (
    get_active_assignment,
    get_candidate_row,
    get_latest_interview,
)

logger = logging.getLogger(__name__)

DECISION_STATUS = {
    FeedbackDecision.TO_OFFER: CandidateStatus.TO_OFFER,
    FeedbackDecision.ON_HOLD: CandidateStatus.ON_HOLD,
    FeedbackDecision.REJECT: CandidateStatus.REJECTED,
}


def feedback_to_dict(feedback: InterviewFeedback) -> Dict[str, Any]:
    return {
        "id": feedback.id,
        "candidate_id": feedback.candidate_id,
        "interview_id": feedback.interview_id,
        "interviewer_name": feedback.interviewer_name,
        "interviewer_email": feedback.interviewer_email,
        "interview_date": feedback.interview_date.isoformat(),
        "employment_type": feedback.employment_type.value,
        "position_type": feedback.position_type.value,
        "temp_start_date": feedback.temp_start_date.isoformat() if feedback.temp_start_date else None,
        "temp_end_date": feedback.temp_end_date.isoformat() if feedback.temp_end_date else None,
        "current_salary": str(feedback.current_salary) if feedback.current_salary is not None else None,
        "expected_salary": str(feedback.expected_salary) if feedback.expected_salary is not None else None,
        "current_position": feedback.current_position,
        "competency_scores": feedback.competency_scores,
        "core_value_scores": feedback.core_value_scores,
        "total_score": feedback.total_score,
        "max_score": feedback.max_score,
        "percentage": feedback.percentage,
        "comment": feedback.comment,
        "decision": feedback.decision.value,
        "created_at": feedback.created_at.isoformat() if feedback.created_at else None,
    }


async def submit_feedback(
    db: AsyncSession,
    candidate_id: int,
    context: SessionContext,
    interview_date: Optional[date],
    employment_type: Optional[EmploymentType],
    position_type: Optional[PositionType],
    competency_scores: List[Dict[str, Any]],
    core_value_scores: List[Dict[str, Any]],
    decision: FeedbackDecision,
    comment: Optional[str] = None,
    temp_start_date: Optional[date] = None,
    temp_end_date: Optional[date] = None,
    interview_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Record the interviewer's scored assessment and move the candidate on.

    The feedback row, interview/assignment completion and the status change
    are committed together.

    Returns:
        Result dict; ``events`` carries the email to the assigning HR user
    """
    candidate = await get_candidate_row(db, candidate_id)
    if not candidate:
        return {"success": False, "error": "Candidate not found", "status_code": 404}

    assignment = await get_active_assignment(db, candidate_id)
    if not context.is_hr_admin and (
        assignment is None or assignment.interviewer_email.lower() != context.email.lower()
    ):
        return {
            "success": False,
            "error": "Only the assigned interviewer can submit feedback",
            "status_code": 403,
        }

    if interview_id is not None:
        interview = await db.get(Interview, interview_id)
        if interview is None or interview.candidate_id != candidate_id:
            return {"success": False, "error": "Interview not found", "status_code": 404}
    else:
        interview = await get_latest_interview(db, candidate_id)
        if interview is None:
            return {"success": False, "error": "Candidate has no interview to give feedback on"}

    existing = await db.execute(
        select(InterviewFeedback.id).where(InterviewFeedback.interview_id == interview.id)
    )
    if existing.scalar_one_or_none() is not None or interview.feedback_submitted:
        return {
            "success": False,
            "error": "Feedback has already been submitted for this interview",
            "status_code": 409,
        }

    missing = [
        name for name, value in (
            ("interview_date", interview_date),
            ("employment_type", employment_type),
            ("position_type", position_type),
        ) if value is None
    ]
    if missing:
        return {"success": False, "error": f"Missing required fields: {', '.join(missing)}"}

    if position_type == PositionType.TEMPORARY:
        if temp_start_date is None or temp_end_date is None:
            return {
                "success": False,
                "error": "Temporary positions require temp_start_date and temp_end_date",
            }
        if temp_end_date < temp_start_date:
            return {"success": False, "error": "temp_end_date must not be before temp_start_date"}

    try:
        score = compute_score(competency_scores, core_value_scores)
    except IncompleteRubric as e:
        return {"success": False, "error": str(e)}

    feedback = InterviewFeedback(
        candidate_id=candidate.id,
        interview_id=interview.id,
        interviewer_name=interview.interviewer_name or context.display_name,
        interviewer_email=interview.interviewer_email,
        interview_date=interview_date,
        employment_type=employment_type,
        position_type=position_type,
        temp_start_date=temp_start_date if position_type == PositionType.TEMPORARY else None,
        temp_end_date=temp_end_date if position_type == PositionType.TEMPORARY else None,
        competency_scores=[dict(row) for row in competency_scores],
        core_value_scores=[dict(row) for row in core_value_scores],
        total_score=score.total_score,
        max_score=score.max_score,
        percentage=score.percentage,
        comment=comment,
        decision=decision,
    )
    db.add(feedback)
    await db.flush()

    interview.feedback_submitted = True
    interview.feedback_id = feedback.id
    interview.status = InterviewStatus.COMPLETED
    if assignment is not None:
        assignment.status = AssignmentStatus.COMPLETED

    record_transition(
        db,
        candidate,
        DECISION_STATUS[decision],
        context,
        f"Interview feedback submitted with decision: {decision.value}",
    )
    await db.commit()

    logger.info(
        f"Feedback {feedback.id} for candidate {candidate.id}: "
        f"{score.total_score}/{score.max_score} ({decision.value})"
    )
    return {
        "success": True,
        "feedback": feedback_to_dict(feedback),
        "candidate_status": candidate.status.value,
        "events": [communications.feedback_submitted(candidate, feedback, assignment)],
    }


async def get_feedback(
    db: AsyncSession,
    feedback_id: int,
    context: SessionContext,
) -> Optional[Dict[str, Any]]:
    """Feedback by id; interviewers only see their own."""
    feedback = await db.get(InterviewFeedback, feedback_id)
    if feedback is None:
        return None
    if context.is_interviewer and feedback.interviewer_email.lower() != context.email.lower():
        return None
    return feedback_to_dict(feedback)


async def get_latest_feedback(db: AsyncSession, candidate_id: int) -> Optional[InterviewFeedback]:
    result = await db.execute(
        select(InterviewFeedback)
        .where(InterviewFeedback.candidate_id == candidate_id)
        .order_by(InterviewFeedback.created_at.desc(), InterviewFeedback.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
