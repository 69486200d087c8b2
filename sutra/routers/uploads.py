import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.core.config import settings
from sutra.core.errors import EnrollmentRequired
from sutra.deps.auth import get_current_user, require_staff
from sutra.models.dto import UploadComplete, UploadRequest, UploadSessionRef
from sutra.services.courses import course_service
from sutra.services.curriculum import iter_lessons
from sutra.services.learning import learning_service
from sutra.services.media_library import video_library_service
from sutra.services.storage import COURSE_FOLDERS, UploadError, storage_service
from sutra.services.users import user_service

router = APIRouter()
log = logging.getLogger("sutra.uploads")


def _folder(folder: Optional[str]) -> str:
    folder = folder or "lessonVideos"
    if folder not in COURSE_FOLDERS:
        raise HTTPException(400, f"folder must be one of: {', '.join(COURSE_FOLDERS)}")
    return folder


def _upload_call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except UploadError as e:
        raise HTTPException(e.status_code, e.message)


@router.post("/api/admin/upload", dependencies=[Depends(require_staff)])
async def admin_presign(body: UploadRequest):
    return _upload_call(
        storage_service.presign_upload,
        body.fileName,
        body.fileType,
        body.fileSize,
        _folder(body.folder),
    )


@router.post("/api/upload")
async def user_presign(body: UploadRequest, user: Dict[str, Any] = Depends(get_current_user)):
    return _upload_call(
        storage_service.presign_upload,
        body.fileName,
        body.fileType,
        body.fileSize,
        user["uid"],
        root="posts",
        limit=settings.POST_MEDIA_MAX_BYTES,
    )


@router.post("/api/admin/upload/initiate", dependencies=[Depends(require_staff)])
async def initiate_resumable(body: UploadRequest):
    return _upload_call(
        storage_service.initiate_resumable,
        body.fileName,
        body.fileType,
        body.fileSize,
        _folder(body.folder),
    )


@router.post("/api/admin/upload/parts", dependencies=[Depends(require_staff)])
async def resumable_status(body: UploadSessionRef):
    return _upload_call(storage_service.upload_status, body.uploadId)


@router.post("/api/admin/upload/complete")
async def complete_upload(body: UploadComplete, user: Dict[str, Any] = Depends(require_staff)):
    asset = _upload_call(storage_service.describe, body.fileKey, body.fileName)
    result: Dict[str, Any] = {"asset": asset}
    if asset["type"] == "video" and body.addToLibrary:
        result["libraryItem"] = video_library_service.register(
            body.title or body.fileName or asset["fileName"], asset, user["uid"]
        )
    log.info("upload complete key=%s size=%s by=%s", asset["key"], asset["size"], user["uid"])
    return result


@router.post("/api/admin/upload/abort", dependencies=[Depends(require_staff)])
async def abort_upload(body: UploadSessionRef):
    _upload_call(storage_service.abort_resumable, body.uploadId)
    return {"ok": True}


def _library_key(library_id: Optional[str]) -> Optional[str]:
    if not library_id:
        return None
    item = video_library_service.get(library_id)
    return ((item or {}).get("video") or {}).get("key")


def _find_video(course: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    """Return the lesson (or a preview marker) that serves ``key`` in this course."""
    if ((course.get("previewVideo") or {}).get("key")) == key:
        return {"isPreview": True}
    for _, node, _kind in iter_lessons(course):
        source = node.get("videoSource") or {}
        if (source.get("video") or {}).get("key") == key or _library_key(source.get("videoLibraryId")) == key:
            return node
    return None


@router.get("/api/video/signed-url")
async def video_signed_url(
    key: str = Query(..., min_length=1),
    courseId: str = Query(..., min_length=1),
    user: Dict[str, Any] = Depends(get_current_user),
):
    uid = user["uid"]
    if user_service.get_role(uid) != "admin":
        course = course_service.get(courseId)
        if not course:
            raise HTTPException(404, "Course not found")
        lesson = _find_video(course, key)
        if lesson is None:
            raise HTTPException(404, "Video not found in course")
        if not lesson.get("isPreview") and not learning_service.is_enrolled(uid, courseId):
            raise EnrollmentRequired("Enroll to watch this lesson")
    return _upload_call(storage_service.signed_download, key)
