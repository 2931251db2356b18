"""
Communications Module

In-app notifications for the bell dropdown, the outbound email log written by
the webhook relay, and the per-event webhook configuration. Configuration rows
hold a secret and are only read server-side.
"""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    DateTime,
    func,
    Text,
    JSON,
    Enum as SQLEnum,
    Index,
)
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any


# ==================== Enums ===================== #
class NotificationType(str, PyEnum):
    """Type tag of an in-app notification."""

    OFFER_APPROVAL_HR_MANAGER = "offer_approval_hr_manager"
    OFFER_APPROVAL_INTERVIEWER = "offer_approval_interviewer"
    OFFER_APPROVED_HR_MANAGER = "offer_approved_hr_manager"
    OFFER_APPROVAL_COMPLETE = "offer_approval_complete"
    OFFER_REJECTED = "offer_rejected"


class EmailEventType(str, PyEnum):
    """Outbound email event types routed through the webhook relay."""

    CANDIDATE_ASSIGNED = "candidate_assigned"
    INTERVIEWER_CHANGED = "interviewer_changed"
    INTEREST_CONFIRMED = "interest_confirmed"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    FEEDBACK_SUBMITTED = "feedback_submitted"
    OFFER_SUBMITTED_FOR_APPROVAL = "offer_submitted_for_approval"
    OFFER_APPROVED_BY_HR_MANAGER = "offer_approved_by_hr_manager"
    OFFER_ACKNOWLEDGED = "offer_acknowledged"
    OFFER_REJECTED = "offer_rejected"
    OFFER_REJECTED_BY_HR_MANAGER = "offer_rejected_by_hr_manager"
    OFFER_REJECTED_BY_INTERVIEWER = "offer_rejected_by_interviewer"


class EmailDeliveryStatus(str, PyEnum):
    """Delivery status of a logged email event."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# ==================== In-app Notification ===================== #
class Notification(Base):
    """Alert addressed to one user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_candidate_id: Mapped[int | None] = mapped_column(ForeignKey("candidates.id"))
    related_proposal_id: Mapped[int | None] = mapped_column(ForeignKey("job_proposals.id"))
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read"),
    )


# ==================== Email Log ===================== #
class EmailNotification(Base):
    """Audit row for one outbound email attempt."""

    __tablename__ = "email_notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    candidate_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[str | None] = mapped_column(String(200))
    webhook_payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[EmailDeliveryStatus] = mapped_column(
        SQLEnum(EmailDeliveryStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=EmailDeliveryStatus.PENDING,
    )
    webhook_response: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_email_notifications_event_created", "event_type", "created_at"),
    )


# ==================== Webhook Config ===================== #
class NotificationConfig(Base):
    """Webhook destination for one email event type."""

    __tablename__ = "notification_config"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    webhook_url: Mapped[str] = mapped_column(String(500), nullable=False)
    webhook_secret: Mapped[str | None] = mapped_column(String(255))
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
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
