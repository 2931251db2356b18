"""
Candidate status workflow.

The pipeline is a closed set of states with an explicit transition table.
Every change goes through ``record_transition``, which appends the history
row before touching the candidate so both land in the same transaction.
"""

import logging
from typing import TYPE_CHECKING, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database.models.candidates import Candidate, CandidateStatus, StatusHistory

if TYPE_CHECKING:
    from core.middleware.authorization import SessionContext

logger = logging.getLogger(__name__)

S = CandidateStatus

TRANSITIONS: dict[CandidateStatus, frozenset[CandidateStatus]] = {
    S.NEW: frozenset({
        S.SHORTLISTED, S.TO_INTERVIEW, S.INTERVIEW_SCHEDULED, S.ON_HOLD, S.REJECTED,
    }),
    S.SHORTLISTED: frozenset({
        S.TO_INTERVIEW, S.INTERVIEW_SCHEDULED, S.PENDING_APPROVAL, S.ON_HOLD, S.REJECTED,
    }),
    S.TO_INTERVIEW: frozenset({S.INTERVIEW_SCHEDULED, S.ON_HOLD, S.REJECTED}),
    S.INTERVIEW_SCHEDULED: frozenset({S.INTERVIEWED, S.TO_OFFER, S.ON_HOLD, S.REJECTED}),
    S.INTERVIEWED: frozenset({S.TO_OFFER, S.ON_HOLD, S.REJECTED}),
    S.TO_OFFER: frozenset({S.PENDING_APPROVAL, S.ON_HOLD, S.REJECTED}),
    S.PENDING_APPROVAL: frozenset({S.OFFER_SENT, S.ON_HOLD, S.REJECTED}),
    S.OFFER_SENT: frozenset({S.HIRED, S.OFFER_REJECTED, S.ON_HOLD, S.REJECTED}),
    S.ON_HOLD: frozenset({
        S.SHORTLISTED, S.TO_INTERVIEW, S.INTERVIEW_SCHEDULED, S.TO_OFFER, S.REJECTED,
    }),
    S.OFFER_REJECTED: frozenset({S.TO_OFFER, S.REJECTED}),
    S.HIRED: frozenset(),
    S.REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)


class WorkflowError(Exception):
    """A workflow command cannot proceed in the candidate's current state."""

    code = "WORKFLOW_CONFLICT"
    status_code = 409


class IllegalStatusTransition(WorkflowError, ValueError):
    """Raised when a status move is not in the transition table."""

    code = "ILLEGAL_TRANSITION"

    def __init__(self, from_status: CandidateStatus, to_status: CandidateStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move candidate from '{from_status.value}' to '{to_status.value}'"
        )


def can_transition(from_status: CandidateStatus, to_status: CandidateStatus) -> bool:
    """True when ``from_status -> to_status`` is in the table."""
    return to_status in TRANSITIONS.get(from_status, frozenset())


def assert_transition(from_status: CandidateStatus, to_status: CandidateStatus) -> None:
    if not can_transition(from_status, to_status):
        raise IllegalStatusTransition(from_status, to_status)


def allowed_targets(from_status: CandidateStatus) -> list[str]:
    return sorted(status.value for status in TRANSITIONS.get(from_status, frozenset()))


def record_transition(
    db: AsyncSession,
    candidate: Candidate,
    to_status: CandidateStatus,
    context: "SessionContext",
    notes: Optional[str] = None,
    allow_same: bool = False,
) -> StatusHistory:
    """
    Append a history row and move the candidate to ``to_status``.

    Nothing is flushed; the caller commits. With ``allow_same`` a move to the
    current status is written as a note-only row (from == to).

    Raises:
        IllegalStatusTransition: If the move is not in the table
    """
    from_status = CandidateStatus(candidate.status)
    if not (allow_same and from_status == to_status):
        assert_transition(from_status, to_status)

    entry = StatusHistory(
        candidate_id=candidate.id,
        from_status=from_status.value,
        to_status=to_status.value,
        changed_by=context.user_id,
        changed_by_email=context.email,
        notes=notes,
    )
    db.add(entry)

    candidate.status = to_status
    candidate.updated_by = context.user_id
    candidate.updated_by_email = context.email

    if from_status != to_status:
        logger.info(
            f"Candidate {candidate.id} moved {from_status.value} -> {to_status.value} "
            f"by {context.user_id}"
        )
    return entry


def record_note(
    db: AsyncSession,
    candidate: Candidate,
    context: "SessionContext",
    notes: str,
) -> StatusHistory:
    """Append a note-only history row without changing status."""
    return record_transition(
        db, candidate, CandidateStatus(candidate.status), context, notes, allow_same=True
    )
