"""
Offers Module

Job proposals and their two-stage approval: the assigned HR Manager approves
first, then the interviewer acknowledges. A rejection at either stage leaves
notes for the submitter; resubmission resets both stages.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    DateTime,
    Date,
    func,
    Text,
    Numeric,
    Enum as SQLEnum,
)
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime, date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.candidates import Candidate


# ==================== Enums ===================== #
class OfferStatus(str, PyEnum):
    """Status of a job proposal."""

    PENDING = "pending"
    APPROVED = "approved"
    SENT = "sent"


# ==================== Job Proposal Model ===================== #
class JobProposal(Base):
    """The offer record subject to two-stage approval."""

    __tablename__ = "job_proposals"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        ForeignKey("candidates.id"), nullable=False, index=True
    )

    # Position
    position_offered: Mapped[str] = mapped_column(String(200), nullable=False)
    position_level: Mapped[str] = mapped_column(String(100), nullable=False)
    job_grade: Mapped[str] = mapped_column(String(50), nullable=False)
    expected_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Organisational placement
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)
    department_th: Mapped[str] = mapped_column(String(200), nullable=False)
    department_en: Mapped[str] = mapped_column(String(200), nullable=False)
    division_th: Mapped[str] = mapped_column(String(200), nullable=False)
    division_en: Mapped[str] = mapped_column(String(200), nullable=False)
    section_th: Mapped[str] = mapped_column(String(200), nullable=False)
    section_en: Mapped[str] = mapped_column(String(200), nullable=False)
    direct_report_name: Mapped[str | None] = mapped_column(String(200))
    direct_report_email: Mapped[str | None] = mapped_column(String(255))
    manager_name: Mapped[str | None] = mapped_column(String(200))
    manager_email: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)

    offer_status: Mapped[OfferStatus] = mapped_column(
        SQLEnum(OfferStatus, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=OfferStatus.PENDING,
    )

    # Stage 1: HR Manager approval
    assigned_hr_manager_id: Mapped[str | None] = mapped_column(String(64))
    assigned_hr_manager_email: Mapped[str | None] = mapped_column(String(255))
    hr_manager_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hr_manager_approved_by: Mapped[str | None] = mapped_column(String(64))
    hr_manager_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    hr_manager_rejection_notes: Mapped[str | None] = mapped_column(Text)

    # Stage 2: interviewer acknowledgment
    interviewer_acknowledged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    interviewer_acknowledged_by: Mapped[str | None] = mapped_column(String(64))
    interviewer_acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    interviewer_rejection_notes: Mapped[str | None] = mapped_column(Text)

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

    candidate: Mapped["Candidate"] = relationship("Candidate", back_populates="proposals")

    def reset_approvals(self) -> None:
        """Restart the two-stage approval from scratch."""
        self.hr_manager_approved = False
        self.hr_manager_approved_by = None
        self.hr_manager_approved_at = None
        self.hr_manager_rejection_notes = None
        self.interviewer_acknowledged = False
        self.interviewer_acknowledged_by = None
        self.interviewer_acknowledged_at = None
        self.interviewer_rejection_notes = None
        self.offer_status = OfferStatus.PENDING
