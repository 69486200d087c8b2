from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.deps.auth import require_admin, require_staff
from sutra.models.dto import VideoLibraryIn, VideoLibraryPatch
from sutra.services.media_library import VideoInUse, video_library_service
from sutra.services.storage import UploadError

router = APIRouter()


@router.get("", dependencies=[Depends(require_staff)])
async def list_videos(q: Optional[str] = Query(None), limit: int = Query(50, ge=1, le=200)):
    return {"items": video_library_service.list(q=q, limit=limit), "next_cursor": None}


@router.post("", status_code=201)
async def register_video(body: VideoLibraryIn, user: Dict[str, Any] = Depends(require_staff)):
    try:
        return video_library_service.register_key(
            body.key, user["uid"], title=body.title, description=body.description or "", tags=body.tags
        )
    except UploadError as e:
        raise HTTPException(e.status_code, e.message)


@router.get("/{video_id}", dependencies=[Depends(require_staff)])
async def get_video(video_id: str):
    item = video_library_service.get(video_id)
    if not item:
        raise HTTPException(404, "Video not found")
    return item


@router.patch("/{video_id}", dependencies=[Depends(require_staff)])
async def update_video(video_id: str, body: VideoLibraryPatch):
    item = video_library_service.update(video_id, body.model_dump(exclude_unset=True))
    if not item:
        raise HTTPException(404, "Video not found")
    return item


@router.get("/{video_id}/usage", dependencies=[Depends(require_staff)])
async def video_usage(video_id: str):
    if not video_library_service.get(video_id):
        raise HTTPException(404, "Video not found")
    usage = video_library_service.usage(video_id)
    return {"items": usage, "usageCount": len(usage)}


@router.delete("/{video_id}", dependencies=[Depends(require_admin)])
async def delete_video(
    video_id: str,
    force: bool = Query(False),
    deleteFile: bool = Query(False),
):
    try:
        deleted = video_library_service.delete(video_id, force=force, delete_file=deleteFile)
    except VideoInUse as e:
        raise HTTPException(409, f"Video is used by {len(e.usage)} lesson(s); pass force=true to delete anyway")
    if not deleted:
        raise HTTPException(404, "Video not found")
    return {"ok": True, "id": video_id}
