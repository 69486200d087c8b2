from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.deps.auth import get_current_profile, get_current_user
from sutra.models.dto import NotificationPatch
from sutra.services.notifications import notification_service

router = APIRouter()


@router.get("")
async def list_notifications(
    unreadOnly: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: Dict[str, Any] = Depends(get_current_user),
):
    return {"items": notification_service.list(user["uid"], unread_only=unreadOnly, limit=limit)}


@router.get("/count")
async def unread_count(user: Dict[str, Any] = Depends(get_current_user)):
    return {"unread": notification_service.unread_count(user["uid"])}


@router.post("/read-all")
async def read_all(user: Dict[str, Any] = Depends(get_current_user)):
    return {"updated": notification_service.mark_all_read(user["uid"])}


@router.get("/preferences")
async def get_preferences(profile: Dict[str, Any] = Depends(get_current_profile)):
    return notification_service.get_preferences(profile["id"])


@router.patch("/preferences")
async def update_preferences(body: Dict[str, bool], profile: Dict[str, Any] = Depends(get_current_profile)):
    return notification_service.update_preferences(profile["id"], body)


@router.patch("/{notification_id}")
async def mark_notification(
    notification_id: str,
    body: NotificationPatch,
    user: Dict[str, Any] = Depends(get_current_user),
):
    item = notification_service.mark(user["uid"], notification_id, read=body.read)
    if item is None:
        raise HTTPException(404, "Notification not found")
    return item


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if not notification_service.delete(user["uid"], notification_id):
        raise HTTPException(404, "Notification not found")
    return {"ok": True}
