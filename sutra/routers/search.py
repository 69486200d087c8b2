from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from sutra.deps.auth import get_optional_user
from sutra.services.courses import course_service
from sutra.services.posts import post_service
from sutra.services.users import user_service

router = APIRouter()


@router.get("")
async def search(
    q: str = Query(""),
    kind: Literal["all", "users", "posts", "courses"] = Query("all", alias="type"),
    limit: int = Query(10, ge=1, le=50),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
):
    """Search users, public posts and published courses in one call."""
    if not q.strip():
        return {"results": []}

    results: List[Dict[str, Any]] = []
    if kind in ("all", "users"):
        results += [{"type": "user", "data": u} for u in user_service.search(q, limit=limit)]
    if kind in ("all", "posts"):
        posts = post_service.decorate(post_service.search(q, limit=limit), viewer=(user or {}).get("uid"))
        results += [{"type": "post", "data": p} for p in posts]
    if kind in ("all", "courses"):
        results += [{"type": "course", "data": c} for c in course_service.search(q, limit=limit)]
    return {"results": results}
