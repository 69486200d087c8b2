import logging
from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response
from firebase_admin import auth as admin_auth
from firebase_admin import exceptions as firebase_exceptions

from sutra.core.config import settings
from sutra.deps.auth import get_current_profile, get_current_user
from sutra.models.dto import SessionIn
from sutra.services.firebase_client import get_firebase_app

router = APIRouter()
log = logging.getLogger("sutra.auth")


@router.post("/api/auth/session")
async def create_session(body: SessionIn, response: Response):
    expires_in = timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    try:
        cookie = admin_auth.create_session_cookie(body.idToken, expires_in=expires_in, app=get_firebase_app())
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        log.warning("create_session_cookie failed: %s", e)
        raise HTTPException(401, "Invalid token")

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=cookie,
        max_age=int(expires_in.total_seconds()),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return {"ok": True, "expiresIn": int(expires_in.total_seconds())}


@router.delete("/api/auth/session")
async def delete_session(response: Response, user: Dict[str, Any] = Depends(get_current_user)):
    try:
        admin_auth.revoke_refresh_tokens(user["uid"], app=get_firebase_app())
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        log.warning("revoke_refresh_tokens failed uid=%s: %s", user["uid"], e)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"ok": True}


@router.get("/api/admin/check")
async def admin_check(profile: Dict[str, Any] = Depends(get_current_profile)):
    role = profile.get("role", "user")
    return {"isAdmin": role == "admin", "role": role}
