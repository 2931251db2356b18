"""Email webhook relay, webhook configuration and the email log."""

import json
from typing import Any, Optional
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.events import EmailEvent
from core.integrations.email import EmailWebhookClient, WebhookResult
from core.utils.datetime import now, isoformat_now, seconds_ago
from database.models.communications import (
    EmailDeliveryStatus,
    EmailEventType,
    EmailNotification,
    NotificationConfig,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("event_type", "candidate_id", "recipient_email")


async def count_recent_emails(db: AsyncSession, event_type: str) -> int:
    """Email log rows for ``event_type`` inside the rate limit window."""
    window_start = seconds_ago(settings.email_rate_limit_window_seconds)
    result = await db.execute(
        select(func.count(EmailNotification.id)).where(
            EmailNotification.event_type == event_type,
            EmailNotification.created_at >= window_start,
        )
    )
    return result.scalar_one()


async def get_config(db: AsyncSession, event_type: str) -> Optional[NotificationConfig]:
    result = await db.execute(
        select(NotificationConfig).where(NotificationConfig.event_type == event_type)
    )
    return result.scalar_one_or_none()


def error_text(result: WebhookResult) -> str:
    """Readable failure reason; structured error bodies are stored as JSON text."""
    reason = result.body.get("error") or result.body.get("message") or result.error
    if not reason:
        return "Unknown error"
    if isinstance(reason, str):
        return reason
    return json.dumps(reason, default=str)


async def deliver(
    db: AsyncSession,
    config: NotificationConfig,
    payload: dict[str, Any],
    client: Optional[EmailWebhookClient] = None,
) -> tuple[EmailNotification, WebhookResult]:
    """
    Log the attempt as pending, POST it, then record the outcome.

    Returns:
        The email log row and the webhook result
    """
    log = EmailNotification(
        candidate_id=str(payload["candidate_id"]),
        event_type=payload["event_type"],
        recipient_email=payload["recipient_email"],
        recipient_name=payload.get("recipient_name"),
        webhook_payload=payload,
        status=EmailDeliveryStatus.PENDING,
    )
    db.add(log)
    await db.commit()

    body = {
        "event_type": payload["event_type"],
        "candidate_id": str(payload["candidate_id"]),
        "recipient_email": payload["recipient_email"],
        "recipient_name": payload.get("recipient_name"),
        "data": payload.get("data") or {},
        "timestamp": isoformat_now(),
        "notification_id": log.id,
    }
    result = await (client or EmailWebhookClient()).post(
        config.webhook_url, body, secret=config.webhook_secret
    )

    log.status = EmailDeliveryStatus.SENT if result.ok else EmailDeliveryStatus.FAILED
    log.webhook_response = result.body
    log.sent_at = now()
    if not result.ok:
        log.error_message = error_text(result)
    await db.commit()

    logger.info(
        f"Email event {payload['event_type']} for candidate {payload['candidate_id']} "
        f"{log.status.value}"
    )
    return log, result


async def relay_email(
    db: AsyncSession,
    payload: Any,
    caller_id: Optional[str] = None,
    client: Optional[EmailWebhookClient] = None,
) -> tuple[int, dict[str, Any]]:
    """
    The send-email-notification function body, after authentication and
    JSON parsing.

    Args:
        db: Database session
        payload: Decoded request body
        caller_id: Caller identity; enables the per-event-type rate limit
        client: Webhook client override

    Returns:
        Tuple of (HTTP status, response body)
    """
    try:
        if not isinstance(payload, dict) or not all(payload.get(f) for f in REQUIRED_FIELDS):
            return 400, {
                "error": "Invalid payload",
                "message": "Missing required fields: event_type, candidate_id, recipient_email",
            }

        event_type = payload["event_type"]

        if caller_id:
            recent = await count_recent_emails(db, event_type)
            if recent >= settings.email_rate_limit_per_minute:
                logger.warning(f"Email rate limit hit for {event_type} by {caller_id}")
                return 429, {
                    "error": "Rate limit exceeded",
                    "message": (
                        f"Maximum {settings.email_rate_limit_per_minute} emails per minute "
                        f"per event type"
                    ),
                }

        config = await get_config(db, event_type)
        if config is None:
            logger.error(f"No webhook config for {event_type}")
            return 404, {
                "error": "Webhook not configured",
                "message": f"No configuration found for event type: {event_type}",
            }

        if not config.is_enabled:
            logger.info(f"Webhook disabled for {event_type}")
            return 200, {"message": "Webhook disabled", "event_type": event_type}

        log, result = await deliver(db, config, payload, client)

        if not result.ok:
            return 500, {
                "error": "Webhook failed",
                "details": result.body or {"message": result.error},
                "notification_id": log.id,
            }

        return 200, {"success": True, "notification_id": log.id, "event_type": event_type}

    except Exception as e:
        logger.error(f"Email relay error: {e}", exc_info=True)
        await db.rollback()
        return 500, {"error": "Internal server error", "message": str(e)}


async def send_direct(
    db: AsyncSession,
    event: EmailEvent,
    client: Optional[EmailWebhookClient] = None,
) -> Optional[EmailNotification]:
    """
    Legacy transport: post straight to the configured webhook, without the
    relay's rate limit.

    Returns:
        The email log row, or None when no enabled webhook is configured
    """
    config = await get_config(db, event.event_type.value)
    if config is None or not config.is_enabled:
        logger.warning(f"No enabled webhook for {event.event_type.value}, email skipped")
        return None
    log, _ = await deliver(db, config, event.to_payload(), client)
    return log


# ==================== Webhook configuration ===================== #

def config_to_dict(config: NotificationConfig) -> dict[str, Any]:
    """Public view of a config row. The secret is never returned."""
    return {
        "id": config.id,
        "event_type": config.event_type,
        "webhook_url": config.webhook_url,
        "has_secret": bool(config.webhook_secret),
        "is_enabled": config.is_enabled,
        "created_at": config.created_at.isoformat() if config.created_at else None,
        "updated_at": config.updated_at.isoformat() if config.updated_at else None,
    }


async def list_configs(db: AsyncSession) -> dict[str, Any]:
    result = await db.execute(select(NotificationConfig).order_by(NotificationConfig.event_type))
    configs = result.scalars().all()
    return {"configs": [config_to_dict(c) for c in configs], "total": len(configs)}


async def upsert_config(
    db: AsyncSession,
    event_type: str,
    webhook_url: str,
    webhook_secret: Optional[str] = None,
    is_enabled: bool = True,
) -> dict[str, Any]:
    """Create or replace the webhook for one event type."""
    if event_type not in {e.value for e in EmailEventType}:
        return {"success": False, "error": f"Unknown event type: {event_type}"}

    config = await get_config(db, event_type)
    if config is None:
        config = NotificationConfig(event_type=event_type, webhook_url=webhook_url)
        db.add(config)
    config.webhook_url = webhook_url
    config.is_enabled = is_enabled
    if webhook_secret is not None:
        config.webhook_secret = webhook_secret or None

    await db.commit()
    logger.info(f"Webhook config saved for {event_type}")
    return {"success": True, "config": config_to_dict(config)}


# ==================== Email log ===================== #

def email_log_to_dict(log: EmailNotification) -> dict[str, Any]:
    return {
        "id": log.id,
        "candidate_id": log.candidate_id,
        "event_type": log.event_type,
        "recipient_email": log.recipient_email,
        "recipient_name": log.recipient_name,
        "status": log.status.value,
        "webhook_response": log.webhook_response,
        "error_message": log.error_message,
        "sent_at": log.sent_at.isoformat() if log.sent_at else None,
        "created_at": log.created_at.isoformat() if log.created_at else None,
    }


async def list_email_log(
    db: AsyncSession,
    candidate_id: Optional[str] = None,
    event_type: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """Email log, newest first."""
    query = select(EmailNotification)
    count_query = select(func.count(EmailNotification.id))

    filters = []
    if candidate_id:
        filters.append(EmailNotification.candidate_id == str(candidate_id))
    if event_type:
        filters.append(EmailNotification.event_type == event_type)
    if status:
        try:
            filters.append(EmailNotification.status == EmailDeliveryStatus(status))
        except ValueError:
            return {"success": False, "error": f"Invalid status: {status}"}

    if filters:
        query = query.where(*filters)
        count_query = count_query.where(*filters)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(EmailNotification.created_at.desc(), EmailNotification.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return {
        "success": True,
        "emails": [email_log_to_dict(log) for log in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
