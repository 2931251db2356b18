"""In-app notification endpoints for the current user."""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import raise_for_result
from core.middleware.authorization import SessionContext, get_session_context
from database.engine import get_db
from api.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get(
    "",
    summary="List Notifications",
    description="The caller's notifications, newest first, with the unread count.",
)
async def list_notifications(
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(20, ge=1, le=100),
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.list_notifications(
        db, context.user_id, unread_only=unread_only, limit=limit
    )


@router.get("/unread-count", summary="Unread Count")
async def unread_count(
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return {"unread_count": await notification_service.count_unread(db, context.user_id)}


@router.post("/{notification_id}/read", summary="Mark Notification Read")
async def mark_read(
    notification_id: int = Path(..., description="Notification ID"),
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    result = await notification_service.mark_read(db, notification_id, context.user_id)
    return raise_for_result(result)


@router.post("/read-all", summary="Mark All Notifications Read")
async def mark_all_read(
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.mark_all_read(db, context.user_id)
