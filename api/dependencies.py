"""FastAPI dependencies and route helpers."""

from typing import Any, Iterable, Optional
import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from database.engine import get_db
from core.events import DomainEvent
from core.middleware.authorization import (
    SessionContext,
    get_authenticated_user,
    load_session_context,
)
from core.security import AuthenticatedUser
from api.services import notifications

logger = logging.getLogger(__name__)


async def get_caller_context(
    user: AuthenticatedUser = Depends(get_authenticated_user),
    db: AsyncSession = Depends(get_db),
) -> SessionContext:
    """
    The caller's context without requiring an active role.

    Used by endpoints a pending user may still call (their own profile).
    """
    return await load_session_context(db, user)


def raise_for_result(result: dict[str, Any], default_error: str = "Request failed") -> dict[str, Any]:
    """
    Turn a failed service result into an HTTPException.

    Services report failures as ``{"success": False, "error": ..., "status_code"?}``;
    a missing status code means a 400.
    """
    if not result.get("success"):
        raise HTTPException(
            status_code=result.get("status_code", status.HTTP_400_BAD_REQUEST),
            detail=result.get("error", default_error),
        )
    return result


async def publish_result_events(
    db: AsyncSession,
    result: dict[str, Any],
    context: Optional[SessionContext] = None,
) -> dict[str, Any]:
    """
    Publish the events a committed command returned and strip them from the
    response. Delivery failures never surface to the caller.
    """
    events: Iterable[DomainEvent] = result.pop("events", None) or []
    summary = await notifications.publish(
        db, events, caller_id=context.user_id if context else None
    )
    if summary["failed"]:
        logger.warning(f"{summary['failed']} notification(s) could not be delivered")
    return result
