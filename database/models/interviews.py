"""
Interview Models

Assignments bind a candidate to an interviewer, interviews are the scheduled
sessions for an assignment cycle, and feedback is the interviewer's scored
rubric. Superseded assignments and interviews are deactivated or cancelled,
never deleted; partial unique indexes keep at most one active assignment and
one scheduled interview per candidate.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    DateTime,
    Date,
    Time,
    func,
    Text,
    JSON,
    Integer,
    Numeric,
    Enum as SQLEnum,
    Index,
    text,
)
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime, date, time
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.candidates import Candidate


# ==================== Enums ===================== #
class AssignmentStatus(str, PyEnum):
    """Lifecycle of an interviewer assignment."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    REASSIGNED = "reassigned"


class InterviewStatus(str, PyEnum):
    """Status of a scheduled interview."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class FeedbackDecision(str, PyEnum):
    """Interviewer recommendation recorded with feedback."""

    TO_OFFER = "to_offer"
    ON_HOLD = "on_hold"
    REJECT = "reject"


class EmploymentType(str, PyEnum):
    """Employment type the interviewer recommends."""

    FULL_TIME = "full_time"
    PART_TIME = "part_time"
    CONTRACT = "contract"
    INTERNSHIP = "internship"


class PositionType(str, PyEnum):
    """Whether the opening is permanent or temporary."""

    PERMANENT = "permanent"
    TEMPORARY = "temporary"


# ==================== Candidate Assignment ===================== #
class CandidateAssignment(Base):
    """Binding of a candidate to an interviewer."""

    __tablename__ = "candidate_assignments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        ForeignKey("candidates.id"), nullable=False, index=True
    )
    interviewer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    interviewer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    assigned_by: Mapped[str] = mapped_column(String(64), nullable=False)
    assigned_by_email: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[AssignmentStatus] = mapped_column(
        SQLEnum(AssignmentStatus, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=AssignmentStatus.PENDING,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now,
        server_default=func.now(),
        onupdate=now,
    )

    candidate: Mapped["Candidate"] = relationship("Candidate", back_populates="assignments")

    __table_args__ = (
        Index(
            "uq_candidate_active_assignment",
            "candidate_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )


# ==================== Interview ===================== #
class Interview(Base):
    """One scheduled interview session."""

    __tablename__ = "interviews"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        ForeignKey("candidates.id"), nullable=False, index=True
    )
    assignment_id: Mapped[int | None] = mapped_column(
        ForeignKey("candidate_assignments.id")
    )
    interviewer_name: Mapped[str | None] = mapped_column(String(200))
    interviewer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    interview_date: Mapped[date] = mapped_column(Date, nullable=False)
    interview_time: Mapped[time] = mapped_column(Time, nullable=False)
    location: Mapped[str | None] = mapped_column(String(500))
    meeting_link: Mapped[str | None] = mapped_column(String(500))
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[InterviewStatus] = mapped_column(
        SQLEnum(InterviewStatus, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=InterviewStatus.SCHEDULED,
    )
    feedback_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    feedback_id: Mapped[int | None] = mapped_column(Integer)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by_email: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now,
        server_default=func.now(),
        onupdate=now,
    )

    candidate: Mapped["Candidate"] = relationship("Candidate", back_populates="interviews")

    __table_args__ = (
        Index(
            "uq_candidate_scheduled_interview",
            "candidate_id",
            unique=True,
            postgresql_where=text("status = 'scheduled'"),
            sqlite_where=text("status = 'scheduled'"),
        ),
    )


# ==================== Interview Feedback ===================== #
class InterviewFeedback(Base):
    """Interviewer's scored assessment. Immutable once submitted, except for
    the salary/position back-fill done while preparing an offer."""

    __tablename__ = "interview_feedback"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        ForeignKey("candidates.id"), nullable=False, index=True
    )
    interview_id: Mapped[int] = mapped_column(
        ForeignKey("interviews.id"), nullable=False, unique=True
    )
    interviewer_name: Mapped[str | None] = mapped_column(String(200))
    interviewer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    interview_date: Mapped[date] = mapped_column(Date, nullable=False)
    employment_type: Mapped[EmploymentType] = mapped_column(
        SQLEnum(EmploymentType, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
    )
    position_type: Mapped[PositionType] = mapped_column(
        SQLEnum(PositionType, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
    )
    temp_start_date: Mapped[date | None] = mapped_column(Date)
    temp_end_date: Mapped[date | None] = mapped_column(Date)

    # Back-filled by HR while preparing an offer
    current_salary: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    expected_salary: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    current_position: Mapped[str | None] = mapped_column(String(200))

    # [{"topic_index": 0, "score": 4, "opinion": "..."}]
    competency_scores: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    core_value_scores: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False)
    max_score: Mapped[int] = mapped_column(Integer, nullable=False)
    percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text)
    decision: Mapped[FeedbackDecision] = mapped_column(
        SQLEnum(FeedbackDecision, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
    )
    is_final: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    candidate: Mapped["Candidate"] = relationship("Candidate", back_populates="feedback")
