"""
Server function endpoints.

``send-email-notification`` relays one email event to the webhook configured
for its event type. Responses are plain JSON bodies (not the API error
envelope) so existing callers keep working.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from core.middleware.authorization import get_authenticated_user
from core.security import AuthenticatedUser
from database.engine import get_db
from api.services import webhooks as webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["functions"])


@router.post(
    "/send-email-notification",
    summary="Relay Email Notification",
    description=(
        "Validate an email event, apply the per-event-type rate limit when X-User-Id "
        "is sent, and POST it to the configured webhook."
    ),
)
async def send_email_notification(
    request: Request,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    user: AuthenticatedUser = Depends(get_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})

    status_code, body = await webhook_service.relay_email(db, payload, caller_id=x_user_id)
    return JSONResponse(status_code=status_code, content=body)
