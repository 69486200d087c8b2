import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.deps.auth import get_current_profile, get_current_user, get_optional_user, require_admin
from sutra.models.dto import AdminPostPatch, CommentIn, PostIn, PostPatch
from sutra.services.notifications import notification_service
from sutra.services.posts import CommentError, post_service, validate_media
from sutra.services.users import user_service

router = APIRouter()
hashtags_router = APIRouter()
admin_router = APIRouter()
log = logging.getLogger("sutra.posts")


def _post_or_404(post_id: str) -> Dict[str, Any]:
    post = post_service.get(post_id)
    if not post:
        raise HTTPException(404, "Post not found")
    return post


def _viewer(user: Optional[Dict[str, Any]]) -> Optional[str]:
    return (user or {}).get("uid")


def _visible_post_or_404(post_id: str, viewer: Optional[str]) -> Dict[str, Any]:
    post = _post_or_404(post_id)
    if not post["isPublic"] and post["author"] != viewer:
        raise HTTPException(404, "Post not found")
    return post


def _page(posts, has_more: bool, page: int, limit: int, viewer: Optional[str]):
    return {
        "items": post_service.decorate(posts, viewer=viewer),
        "pagination": {"page": page, "limit": limit, "hasMore": has_more},
    }


@router.post("", status_code=201)
async def create_post(body: PostIn, profile: Dict[str, Any] = Depends(get_current_profile)):
    data = body.model_dump(exclude_none=True)
    errors = validate_media(data.get("media") or [])
    if errors:
        raise HTTPException(400, "; ".join(errors))
    post = post_service.create(profile["id"], data)
    return post_service.decorate([post], viewer=profile["id"])[0]


@router.get("")
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    hashtag: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
):
    posts, has_more = post_service.list_public(page=page, limit=limit, hashtag=hashtag, author=author)
    return _page(posts, has_more, page, limit, _viewer(user))


@router.get("/feed")
async def feed(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    user: Dict[str, Any] = Depends(get_current_user),
):
    posts, has_more = post_service.feed(user["uid"], page=page, limit=limit)
    return _page(posts, has_more, page, limit, user["uid"])


@router.get("/explore")
async def explore(
    limit: int = Query(20, ge=1, le=50),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
):
    return {"items": post_service.decorate(post_service.explore(limit=limit), viewer=_viewer(user))}


@router.get("/featured")
async def featured(
    limit: int = Query(20, ge=1, le=50),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
):
    return {"items": post_service.decorate(post_service.featured(limit=limit), viewer=_viewer(user))}


@router.get("/{post_id}")
async def get_post(post_id: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    viewer = _viewer(user)
    _visible_post_or_404(post_id, viewer)
    post = post_service.record_view(post_id)
    return post_service.decorate([post], viewer=viewer, with_comments=True)[0]


@router.patch("/{post_id}")
async def update_post(post_id: str, body: PostPatch, user: Dict[str, Any] = Depends(get_current_user)):
    post = _post_or_404(post_id)
    if post["author"] != user["uid"]:
        raise HTTPException(403, "Only the author can edit this post")
    updated = post_service.update(post_id, body.model_dump(exclude_none=True))
    return post_service.decorate([updated], viewer=user["uid"])[0]


@router.delete("/{post_id}")
async def delete_post(post_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    post = _post_or_404(post_id)
    if post["author"] != user["uid"] and user_service.get_role(user["uid"]) != "admin":
        raise HTTPException(403, "Only the author or an admin can delete this post")
    post_service.delete(post)
    return {"ok": True, "id": post_id}


@router.post("/{post_id}/like")
async def toggle_like(post_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    post = _visible_post_or_404(post_id, user["uid"])
    liked, count = post_service.toggle_like(post_id, user["uid"])
    if liked:
        notification_service.notify(
            post["author"],
            "like",
            "Someone liked your post",
            from_user_id=user["uid"],
            post_id=post_id,
            action_url=f"/posts/{post_id}",
        )
    return {"liked": liked, "likesCount": count}


@router.get("/{post_id}/like-status")
async def like_status(post_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    post = _visible_post_or_404(post_id, user["uid"])
    return {"liked": user["uid"] in post["likes"], "likesCount": len(post["likes"])}


@router.post("/{post_id}/save")
async def toggle_save(post_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    _visible_post_or_404(post_id, user["uid"])
    saved, count = post_service.toggle_save(post_id, user["uid"])
    return {"saved": saved, "savesCount": count}


@router.get("/{post_id}/saved-status")
async def saved_status(post_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    post = _visible_post_or_404(post_id, user["uid"])
    return {"saved": user["uid"] in post["saves"], "savesCount": len(post["saves"])}


@router.post("/{post_id}/share")
async def share(post_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    _visible_post_or_404(post_id, user["uid"])
    return {"shares": post_service.share(post_id)}


# ---- comments ----


@router.get("/{post_id}/comments")
async def list_comments(post_id: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    viewer = _viewer(user)
    _visible_post_or_404(post_id, viewer)
    comments = post_service.comments(post_id, viewer=viewer)
    if comments is None:
        raise HTTPException(404, "Post not found")
    return {"items": comments}


@router.post("/{post_id}/comments", status_code=201)
async def add_comment(post_id: str, body: CommentIn, user: Dict[str, Any] = Depends(get_current_user)):
    post = _visible_post_or_404(post_id, user["uid"])
    try:
        comment = post_service.add_comment(post, user["uid"], body.text)
    except CommentError as e:
        raise HTTPException(e.status_code, e.message)
    notification_service.notify(
        post["author"],
        "comment",
        "Someone commented on your post",
        from_user_id=user["uid"],
        post_id=post_id,
        action_url=f"/posts/{post_id}",
    )
    return comment


@router.post("/{post_id}/comments/{comment_id}/reply", status_code=201)
async def reply(post_id: str, comment_id: str, body: CommentIn, user: Dict[str, Any] = Depends(get_current_user)):
    post = _visible_post_or_404(post_id, user["uid"])
    try:
        comment = post_service.add_comment(post, user["uid"], body.text, parent_id=comment_id)
        parent_author = post_service.comment_author(post, comment_id)
    except CommentError as e:
        raise HTTPException(e.status_code, e.message)
    notification_service.notify(
        parent_author,
        "reply",
        "Someone replied to your comment",
        from_user_id=user["uid"],
        post_id=post_id,
        action_url=f"/posts/{post_id}",
    )
    return comment


@router.post("/{post_id}/comments/{comment_id}/like")
async def like_comment(post_id: str, comment_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    post = _visible_post_or_404(post_id, user["uid"])
    try:
        liked, count = post_service.toggle_comment_like(post, comment_id, user["uid"])
    except CommentError as e:
        raise HTTPException(e.status_code, e.message)
    return {"liked": liked, "likesCount": count}


@router.patch("/{post_id}/comments/{comment_id}")
async def edit_comment(post_id: str, comment_id: str, body: CommentIn, user: Dict[str, Any] = Depends(get_current_user)):
    post = _post_or_404(post_id)
    try:
        if post_service.comment_author(post, comment_id) != user["uid"]:
            raise HTTPException(403, "Only the comment author can edit it")
        return post_service.edit_comment(post, comment_id, body.text)
    except CommentError as e:
        raise HTTPException(e.status_code, e.message)


@router.delete("/{post_id}/comments/{comment_id}")
async def delete_comment(post_id: str, comment_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    post = _post_or_404(post_id)
    uid = user["uid"]
    try:
        allowed = uid in (post_service.comment_author(post, comment_id), post["author"])
        if not allowed and user_service.get_role(uid) != "admin":
            raise HTTPException(403, "Not allowed to delete this comment")
        removed = post_service.delete_comment(post, comment_id)
    except CommentError as e:
        raise HTTPException(e.status_code, e.message)
    return {"ok": True, "removed": removed}


# ---- hashtags ----


@hashtags_router.get("/trending")
async def trending(days: int = Query(7, ge=1, le=365), limit: int = Query(20, ge=1, le=100)):
    return {"items": post_service.trending_hashtags(days=days, limit=limit)}


# ---- admin ----


@admin_router.get("", dependencies=[Depends(require_admin)])
async def admin_list(q: Optional[str] = Query(None), limit: int = Query(50, ge=1, le=200)):
    return {"items": post_service.decorate(post_service.admin_list(q=q, limit=limit)), "next_cursor": None}


@admin_router.patch("/{post_id}")
async def admin_update(post_id: str, body: AdminPostPatch, admin: Dict[str, Any] = Depends(require_admin)):
    _post_or_404(post_id)
    flags = body.model_dump(exclude_none=True)
    log.info("admin post update id=%s flags=%s by=%s", post_id, flags, admin["uid"])
    return post_service.set_flags(post_id, flags)


@admin_router.delete("/{post_id}")
async def admin_delete(post_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    post = _post_or_404(post_id)
    post_service.delete(post)
    log.info("admin post delete id=%s by=%s", post_id, admin["uid"])
    return {"ok": True, "id": post_id}
