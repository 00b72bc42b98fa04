"""
Endpoints de notificaciones in-app.
"""

from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import get_current_user
from bagami.services import notification_service

router = APIRouter()


@router.get("")
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    notifications = await notification_service.list_notifications(db, user.id, limit, offset)
    return {
        "notifications": [notification_service.serialize_notification(n) for n in notifications],
        "unreadCount": await notification_service.count_unread(db, user.id),
    }


@router.get("/unread-count")
async def unread_count(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"count": await notification_service.count_unread(db, user.id)}


@router.patch("")
async def mark_as_read(
    notification_ids: Optional[List[str]] = Body(None, embed=True, alias="notificationIds"),
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    updated = await notification_service.mark_as_read(db, user.id, notification_ids)
    return {"success": True, "updated": updated}
