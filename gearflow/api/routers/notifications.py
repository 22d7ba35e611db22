from typing import Optional

from fastapi import APIRouter, Depends, Query

from gearflow.api.deps import (
    get_current_user,
    get_notification_service,
    require_admin,
)
from gearflow.api.schemas import (
    NotificationCreateBody,
    NotificationUpdateBody,
    envelope,
)
from gearflow.modules.notifications.service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    rows = await service.list_notifications(user["id"], unread_only=unread_only, limit=limit)
    return envelope(rows)


@router.post("")
async def create_notification(
    body: NotificationCreateBody,
    _admin: dict = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    row = await service.create_notification(
        body.user_id, body.title, body.message, category=body.type, link=body.link,
    )
    return envelope(row)


@router.get("/unread-count")
async def unread_count(
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return envelope({"count": await service.unread_count(user["id"])})


@router.post("/mark-all-read")
async def mark_all_read(
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return envelope({"updated": await service.mark_all_read(user["id"])})


@router.post("/overdue-reminders")
async def send_overdue_reminders(
    _admin: dict = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    return envelope({"sent": await service.send_overdue_reminders()})


@router.get("/{notification_id}")
async def get_notification(
    notification_id: str,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return envelope(await service.get_notification(notification_id, user["id"]))


@router.put("/{notification_id}")
async def mark_notification_read(
    notification_id: str,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return envelope(await service.mark_read(notification_id, user["id"]))


@router.patch("/{notification_id}")
async def update_notification(
    notification_id: str,
    body: NotificationUpdateBody,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    row = await service.mark_read(notification_id, user["id"], is_read=body.is_read)
    return envelope(row)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    await service.delete_notification(notification_id, user["id"])
    return envelope({"id": notification_id, "deleted": True})
