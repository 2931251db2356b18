"""
Notification dispatcher and in-app notification service functions.

``publish`` delivers the events a workflow command returned, after the
command's transaction has committed. Delivery is best-effort: failures are
logged and never raised to the caller.
"""

from typing import Any, Iterable, Optional
import logging

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.events import DomainEvent, EmailEvent, InAppNotice
from database.models.communications import Notification
from api.services import webhooks as webhook_service

logger = logging.getLogger(__name__)


async def create_notification(db: AsyncSession, notice: InAppNotice) -> Notification:
    notification = Notification(
        user_id=notice.user_id,
        type=notice.type,
        title=notice.title,
        message=notice.message,
        related_candidate_id=notice.related_candidate_id,
        related_proposal_id=notice.related_proposal_id,
    )
    db.add(notification)
    await db.commit()
    return notification


async def send_email_event(
    db: AsyncSession,
    event: EmailEvent,
    caller_id: Optional[str] = None,
) -> bool:
    """
    Hand one email event to the configured transport.

    Returns:
        True when the transport accepted the event
    """
    transport = settings.email_transport

    if transport == "queue":
        from workers.tasks.emails import send_email_notification

        send_email_notification.delay(event.to_payload(), caller_id)
        return True

    if transport == "direct":
        log = await webhook_service.send_direct(db, event)
        return log is not None and log.status.value == "sent"

    status_code, body = await webhook_service.relay_email(db, event.to_payload(), caller_id)
    if status_code != 200:
        logger.warning(
            f"Email relay returned {status_code} for {event.event_type.value}: "
            f"{body.get('error')}",
            extra={"event_type": event.event_type.value},
        )
        return False
    return True


async def publish(
    db: AsyncSession,
    events: Iterable[DomainEvent],
    caller_id: Optional[str] = None,
) -> dict[str, int]:
    """
    Deliver events to their sinks; never raises.

    Args:
        db: Database session (the command's transaction must be committed)
        events: Events returned by a workflow command
        caller_id: Acting user, attached to relayed emails for rate limiting

    Returns:
        Counts of delivered and failed events
    """
    summary = {"in_app": 0, "email": 0, "failed": 0}
    for event in events:
        if event is None:
            continue
        try:
            if isinstance(event, InAppNotice):
                await create_notification(db, event)
                summary["in_app"] += 1
            elif await send_email_event(db, event, caller_id):
                summary["email"] += 1
            else:
                summary["failed"] += 1
        except Exception as e:
            summary["failed"] += 1
            kind = getattr(getattr(event, "event_type", None), "value", None) or getattr(
                getattr(event, "type", None), "value", "unknown"
            )
            logger.error(f"Failed to deliver {kind} notification: {e}", exc_info=True)
            await db.rollback()
    return summary


# ==================== In-app notifications ===================== #

def notification_to_dict(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type.value,
        "title": notification.title,
        "message": notification.message,
        "related_candidate_id": notification.related_candidate_id,
        "related_proposal_id": notification.related_proposal_id,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


async def list_notifications(
    db: AsyncSession,
    user_id: str,
    unread_only: bool = False,
    limit: int = 20,
) -> dict[str, Any]:
    """The caller's notifications, newest first, with the unread count."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    )
    return {
        "notifications": [notification_to_dict(n) for n in result.scalars().all()],
        "unread_count": await count_unread(db, user_id),
    }


async def count_unread(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
    )
    return result.scalar_one()


async def mark_read(db: AsyncSession, notification_id: int, user_id: str) -> dict[str, Any]:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        return {"success": False, "error": "Notification not found", "status_code": 404}
    notification.is_read = True
    await db.commit()
    return {"success": True, "notification": notification_to_dict(notification)}


async def mark_all_read(db: AsyncSession, user_id: str) -> dict[str, Any]:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.commit()
    return {"success": True, "updated": result.rowcount}
