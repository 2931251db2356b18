"""
Candidate Models

Candidates are applicants tracked through the hiring pipeline. A candidate is
created by the public application form and mutated by every workflow
transition; rows are never hard-deleted. Every status change is mirrored by an
append-only StatusHistory row.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    ForeignKey,
    DateTime,
    Date,
    func,
    Text,
    Numeric,
    Enum as SQLEnum,
    Index,
)
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime, date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.interviews import CandidateAssignment, Interview, InterviewFeedback
    from database.models.offers import JobProposal


# ==================== Candidate Enums ===================== #
class CandidateStatus(str, PyEnum):
    """Pipeline status of a candidate. Legal moves live in core.workflow."""

    NEW = "new"
    SHORTLISTED = "shortlisted"
    TO_INTERVIEW = "to_interview"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEWED = "interviewed"
    TO_OFFER = "to_offer"
    PENDING_APPROVAL = "pending_approval"
    OFFER_SENT = "offer_sent"
    HIRED = "hired"
    REJECTED = "rejected"
    ON_HOLD = "on_hold"
    OFFER_REJECTED = "offer_rejected"


# ==================== Candidate Model ===================== #
class Candidate(Base):
    """An applicant and the personal data collected while making an offer."""

    __tablename__ = "candidates"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # Application form
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone_number: Mapped[str | None] = mapped_column(String(50))
    position_applied: Mapped[str] = mapped_column(String(200), nullable=False)
    years_of_experience: Mapped[Decimal | None] = mapped_column(Numeric(4, 1))
    current_position: Mapped[str | None] = mapped_column(String(200))
    current_employer: Mapped[str | None] = mapped_column(String(200))
    education_level: Mapped[str | None] = mapped_column(String(100))
    institution: Mapped[str | None] = mapped_column(String(200))
    message: Mapped[str | None] = mapped_column(Text)
    cv_file_url: Mapped[str | None] = mapped_column(String(500))
    cv_file_name: Mapped[str | None] = mapped_column(String(255))

    # Personal identification, completed when an offer is prepared
    name_title: Mapped[str | None] = mapped_column(String(50))
    first_name_en: Mapped[str | None] = mapped_column(String(100))
    last_name_en: Mapped[str | None] = mapped_column(String(100))
    national_id: Mapped[str | None] = mapped_column(String(13))
    birthday: Mapped[date | None] = mapped_column(Date)
    gender: Mapped[str | None] = mapped_column(String(20))
    religion: Mapped[str | None] = mapped_column(String(50))
    house_no: Mapped[str | None] = mapped_column(String(50))
    moo: Mapped[str | None] = mapped_column(String(50))
    soi: Mapped[str | None] = mapped_column(String(100))
    street: Mapped[str | None] = mapped_column(String(200))
    sub_district: Mapped[str | None] = mapped_column(String(100))
    district: Mapped[str | None] = mapped_column(String(100))
    province: Mapped[str | None] = mapped_column(String(100))
    postal_code: Mapped[str | None] = mapped_column(String(10))

    status: Mapped[CandidateStatus] = mapped_column(
        SQLEnum(CandidateStatus, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=CandidateStatus.NEW,
        index=True,
    )

    # Audit
    updated_by: Mapped[str | None] = mapped_column(String(64))
    updated_by_email: Mapped[str | None] = mapped_column(String(255))
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

    # Relationships
    status_history: Mapped[list["StatusHistory"]] = relationship(
        "StatusHistory",
        back_populates="candidate",
        order_by="StatusHistory.id",
    )
    assignments: Mapped[list["CandidateAssignment"]] = relationship(
        "CandidateAssignment", back_populates="candidate"
    )
    interviews: Mapped[list["Interview"]] = relationship(
        "Interview", back_populates="candidate"
    )
    feedback: Mapped[list["InterviewFeedback"]] = relationship(
        "InterviewFeedback", back_populates="candidate"
    )
    proposals: Mapped[list["JobProposal"]] = relationship(
        "JobProposal", back_populates="candidate"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Candidate(id={self.id}, status={self.status})>"


# ==================== Status History ===================== #
class StatusHistory(Base):
    """Append-only audit row for one candidate status transition."""

    __tablename__ = "status_history"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        ForeignKey("candidates.id"), nullable=False, index=True
    )
    from_status: Mapped[str | None] = mapped_column(String(50))
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    changed_by_email: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    candidate: Mapped["Candidate"] = relationship(
        "Candidate", back_populates="status_history"
    )

    __table_args__ = (
        Index("idx_status_history_candidate_time", "candidate_id", "changed_at"),
    )
