import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from firebase_admin import auth as admin_auth

from sutra.deps.auth import require_admin
from sutra.models.dto import RoleUpdate
from sutra.services.firebase_client import get_firebase_app
from sutra.services.users import ROLES, user_service

router = APIRouter()
log = logging.getLogger("sutra.admin.users")


@router.get("")
async def list_users(
    q: Optional[str] = Query(None, description="filter by email substring (case-insensitive)"),
    limit: int = Query(25, ge=1, le=100),
    cursor: Optional[str] = Query(None, description="email to start AFTER"),
    admin: Dict[str, Any] = Depends(require_admin),
):
    page, next_cursor = user_service.list_all(q=q, limit=limit, cursor=cursor)
    return {"items": page, "next_cursor": next_cursor}


@router.patch("/{user_id}/role")
async def set_role(user_id: str, body: RoleUpdate, admin: Dict[str, Any] = Depends(require_admin)):
    role = body.normalized()
    if role is None:
        raise HTTPException(400, f"role must be one of: {', '.join(ROLES)}")
    if user_id == admin["uid"] and role != "admin":
        raise HTTPException(400, "Admins cannot remove their own admin role")
    if user_service.get(user_id) is None:
        raise HTTPException(404, "User not found")

    user_service.set_role(user_id, role)
    log.info("role change uid=%s role=%s by=%s", user_id, role, admin["uid"])
    return user_service.get_profile(user_id)


@router.delete("/{user_id}")
async def delete_user(user_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    if user_id == admin["uid"]:
        raise HTTPException(400, "Admins cannot delete themselves")
    if user_service.get(user_id) is None:
        raise HTTPException(404, "User not found")

    try:
        admin_auth.delete_user(user_id, app=get_firebase_app())
    except admin_auth.UserNotFoundError:
        log.info("auth user already gone uid=%s", user_id)
    user_service.delete(user_id)
    log.info("deleted user uid=%s by=%s", user_id, admin["uid"])
    return {"ok": True, "id": user_id}
