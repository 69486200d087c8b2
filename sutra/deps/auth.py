import logging
import time
from typing import Any, Callable, Dict, List, Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request
from firebase_admin import auth as admin_auth
from firebase_admin import exceptions as firebase_exceptions

from sutra.core.config import settings
from sutra.services.firebase_client import get_firebase_app
from sutra.services.users import user_service

log = logging.getLogger("sutra.auth")


def _unsafe_decode_without_iat_check(id_token: str) -> Dict[str, Any]:
    """
    DEV-ONLY FALLBACK.
    Decode the token just to get uid/email when the only problem is tiny clock skew.
    """
    try:
        return jwt.decode(id_token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError as e:
        log.warning("unsafe fallback decode failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token")


def _verify_bearer(id_token: str) -> Dict[str, Any]:
    try:
        decoded = admin_auth.verify_id_token(id_token, app=get_firebase_app())
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        msg = str(e)
        log.warning("verify_id_token failed: %s", msg)
        if settings.ALLOW_CLOCK_SKEW_FALLBACK and "Token used too early" in msg:
            log.warning("applying DEV clock-skew bypass")
            decoded = _unsafe_decode_without_iat_check(id_token)
            uid = decoded.get("user_id") or decoded.get("uid") or decoded.get("sub")
            if not uid:
                raise HTTPException(status_code=401, detail="Invalid token (no uid)")
            return {
                "uid": uid,
                "email": decoded.get("email"),
                "name": decoded.get("name"),
                "picture": decoded.get("picture"),
                "iat": decoded.get("iat", time.time()),
            }
        raise HTTPException(status_code=401, detail="Invalid token")
    return decoded


def _verify_session_cookie(cookie: str) -> Dict[str, Any]:
    try:
        return admin_auth.verify_session_cookie(cookie, check_revoked=True, app=get_firebase_app())
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        log.warning("verify_session_cookie failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid session")


async def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Optional[Dict[str, Any]]:
    if authorization and authorization.startswith("Bearer "):
        decoded = _verify_bearer(authorization.split(" ", 1)[1].strip())
    else:
        cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
        if not cookie:
            return None
        decoded = _verify_session_cookie(cookie)

    request.state.uid = decoded.get("uid")
    log.debug("verified uid=%s email=%s", decoded.get("uid"), decoded.get("email"))
    return decoded


async def get_current_user(user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    if not user:
        raise HTTPException(status_code=401, detail="Missing token")
    return user


async def get_current_profile(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user_service.ensure_profile(user)


def require_roles(required: List[str]) -> Callable:
    required_lower = [r.lower() for r in required]

    async def _guard(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        uid = user["uid"]
        role = user_service.get_role(uid)
        if role not in required_lower:
            log.warning("require_roles: uid=%s has role=%s but needs=%s", uid, role, required_lower)
            raise HTTPException(status_code=403, detail="Insufficient role")
        return {**user, "role": role}

    return _guard


require_admin = require_roles(["admin"])
require_staff = require_roles(["admin", "instructor"])
