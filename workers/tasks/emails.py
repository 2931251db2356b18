"""Email notification delivery through the send-email-notification relay."""

import logging
from typing import Any, Dict, Optional

import httpx
from celery import Task

from core.config import settings
from core.security import create_access_token
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Relay answers worth another attempt
RETRY_STATUSES = {429, 500, 502, 503, 504}


class RelayUnavailable(Exception):
    """The relay answered with a status that may succeed later."""


def relay_headers(caller_id: Optional[str] = None) -> Dict[str, str]:
    """Bearer token for the relay plus the caller id used for rate limiting."""
    token = settings.email_relay_token or create_access_token(
        user_id="email-worker", email="email-worker@localhost", name="Email worker"
    )
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
    if caller_id:
        headers["X-User-Id"] = caller_id
    return headers


@celery_app.task(name="workers.tasks.emails.send_email_notification", bind=True, max_retries=5)
def send_email_notification(
    self: Task,
    payload: Dict[str, Any],
    caller_id: Optional[str] = None,
) -> dict:
    """POST one email event to the relay.

    Args:
        payload: ``{event_type, candidate_id, recipient_email, recipient_name, data}``
        caller_id: User whose action produced the event

    Returns:
        Relay status code and response body
    """
    try:
        with httpx.Client(timeout=settings.webhook_timeout_seconds) as client:
            response = client.post(
                settings.email_relay_url,
                json=payload,
                headers=relay_headers(caller_id),
            )
        if response.status_code in RETRY_STATUSES:
            raise RelayUnavailable(f"Relay returned {response.status_code}: {response.text}")
    except (httpx.HTTPError, RelayUnavailable) as e:
        logger.warning(
            f"Email relay attempt {self.request.retries + 1} failed for "
            f"{payload.get('event_type')}: {e}"
        )
        raise self.retry(exc=e, countdown=2 ** self.request.retries * 60)

    try:
        body = response.json()
    except ValueError:
        body = {"message": response.text}

    if response.status_code >= 400:
        logger.error(
            f"Email relay rejected {payload.get('event_type')} with "
            f"{response.status_code}: {body}"
        )
    return {"status_code": response.status_code, "body": body}
