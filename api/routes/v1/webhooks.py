"""
Email webhook configuration and email log endpoints.

Each email event type is delivered to one configured webhook URL. Secrets
are write-only.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, HttpUrl
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import raise_for_result
from core.middleware.authorization import ADMIN_ROLES, SessionContext, require_roles
from database.engine import get_db
from database.models.users import Role
from api.services import webhooks as webhook_service

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

EMAIL_LOG_ROLES = (Role.HR_ADMIN, Role.HR_STAFF, Role.HR_MANAGER)


class WebhookConfigRequest(BaseModel):
    """Request model for configuring an event type's webhook."""
    event_type: str = Field(..., description="Email event type, e.g. candidate_assigned")
    webhook_url: HttpUrl = Field(..., description="URL the email payload is POSTed to")
    webhook_secret: Optional[str] = Field(
        None, description="Sent as a Bearer token; empty string clears it, omit to keep"
    )
    is_enabled: bool = Field(True, description="Disabled webhooks are skipped")


@router.get(
    "/config",
    summary="List Webhook Configs",
    description="Webhook configuration per email event type. Secrets are never returned.",
)
async def list_configs(
    context: SessionContext = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await webhook_service.list_configs(db)


@router.put(
    "/config",
    summary="Save Webhook Config",
    description="Create or replace the webhook for one email event type. hr_admin only.",
)
async def save_config(
    request: WebhookConfigRequest,
    context: SessionContext = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    result = await webhook_service.upsert_config(
        db,
        event_type=request.event_type,
        webhook_url=str(request.webhook_url),
        webhook_secret=request.webhook_secret,
        is_enabled=request.is_enabled,
    )
    return raise_for_result(result, "Failed to save webhook config")


@router.get(
    "/emails",
    summary="Email Log",
    description="Every email delivery attempt, newest first.",
)
async def list_email_log(
    candidate_id: Optional[str] = Query(None, description="Filter by candidate"),
    event_type: Optional[str] = Query(None, description="Filter by event type"),
    status: Optional[str] = Query(None, description="pending, sent or failed"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    context: SessionContext = Depends(require_roles(*EMAIL_LOG_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    result = await webhook_service.list_email_log(
        db,
        candidate_id=candidate_id,
        event_type=event_type,
        status=status,
        limit=limit,
        offset=offset,
    )
    return raise_for_result(result)
