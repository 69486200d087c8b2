from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.deps.auth import get_current_profile, get_current_user, get_optional_user
from sutra.models.dto import ProfilePatch
from sutra.services.learning import learning_service
from sutra.services.notifications import notification_service
from sutra.services.posts import post_service
from sutra.services.users import profile_payload, user_service

router = APIRouter()


def _resolve_or_404(id_or_username: str):
    found = user_service.resolve(id_or_username)
    if not found:
        raise HTTPException(404, "User not found")
    return found


@router.get("/me")
async def get_me(profile: Dict[str, Any] = Depends(get_current_profile)):
    return profile


@router.patch("/me")
async def update_me(body: ProfilePatch, profile: Dict[str, Any] = Depends(get_current_profile)):
    try:
        return user_service.update_profile(profile["id"], body.model_dump(exclude_unset=True))
    except LookupError as e:
        raise HTTPException(409, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/sync")
async def sync_me(user: Dict[str, Any] = Depends(get_current_user)):
    return user_service.ensure_profile(user)


@router.get("/search")
async def search_users(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=50),
):
    return {"items": user_service.search(q, limit=limit)}


@router.get("/me/saved")
async def my_saved_posts(profile: Dict[str, Any] = Depends(get_current_profile)):
    posts = post_service.saved_by(profile["id"])
    return {"items": post_service.decorate(posts, viewer=profile["id"])}


@router.get("/me/courses")
async def my_courses(profile: Dict[str, Any] = Depends(get_current_profile)):
    return {"items": learning_service.list_user_enrollments(profile["id"])}


@router.get("/{user_id}/progress")
async def user_progress(user_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if user["uid"] != user_id and user_service.get_role(user["uid"]) != "admin":
        raise HTTPException(403, "Insufficient role")
    return {"items": learning_service.list_user_progress(user_id)}


@router.get("/{id_or_username}")
async def get_user(id_or_username: str, viewer: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    uid, data = _resolve_or_404(id_or_username)
    profile = profile_payload(uid, data)
    if profile["id"] != (viewer or {}).get("uid"):
        profile.pop("email", None)
        profile.pop("notificationPreferences", None)
    profile["isFollowing"] = bool(viewer) and viewer["uid"] in (data.get("followers") or [])
    return profile


@router.post("/{user_id}/follow")
async def toggle_follow(user_id: str, profile: Dict[str, Any] = Depends(get_current_profile)):
    me = profile["id"]
    if user_id == me:
        raise HTTPException(400, "You cannot follow yourself")
    if user_service.get(user_id) is None:
        raise HTTPException(404, "User not found")

    following, followers_count = user_service.toggle_follow(me, user_id)
    if following:
        notification_service.notify(
            user_id,
            "follow",
            f"@{profile.get('username')} started following you",
            from_user_id=me,
            action_url=f"/profile/{profile.get('username') or me}",
        )
    return {"following": following, "followersCount": followers_count}


@router.get("/{user_id}/follow-status")
async def follow_status(user_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    return {"following": user_service.is_following(user["uid"], user_id)}


@router.get("/{id_or_username}/followers")
async def followers(id_or_username: str):
    uid, _ = _resolve_or_404(id_or_username)
    return {"items": user_service.list_connections(uid, "followers")}


@router.get("/{id_or_username}/following")
async def following(id_or_username: str):
    uid, _ = _resolve_or_404(id_or_username)
    return {"items": user_service.list_connections(uid, "following")}


@router.get("/{id_or_username}/posts")
async def user_posts(
    id_or_username: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    viewer: Optional[Dict[str, Any]] = Depends(get_optional_user),
):
    uid, _ = _resolve_or_404(id_or_username)
    viewer_uid = (viewer or {}).get("uid")
    posts, has_more = post_service.by_author(uid, viewer=viewer_uid, page=page, limit=limit)
    return {
        "items": post_service.decorate(posts, viewer=viewer_uid),
        "pagination": {"page": page, "limit": limit, "hasMore": has_more},
    }
