"""
Domain events produced by workflow commands.

Commands return these instead of notifying anyone; the dispatcher delivers
them after the command's transaction has committed.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from database.models.communications import EmailEventType, NotificationType


@dataclass
class EmailEvent:
    """Outbound email routed through a webhook for ``event_type``."""

    event_type: EmailEventType
    candidate_id: Union[int, str]
    recipient_email: str
    recipient_name: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Request body accepted by the send-email-notification relay."""
        return {
            "event_type": self.event_type.value,
            "candidate_id": str(self.candidate_id),
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "data": self.data,
        }


@dataclass
class InAppNotice:
    """Bell notification addressed to one user id."""

    user_id: str
    type: NotificationType
    title: str
    message: str
    related_candidate_id: Optional[int] = None
    related_proposal_id: Optional[int] = None


DomainEvent = Union[EmailEvent, InAppNotice]
