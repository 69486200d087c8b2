"""YouTube-backed courses and their manual enrollment requests."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Query

from sutra.services import firebase_client
from sutra.services.firebase_client import ts_value
from sutra.services.courses import CourseService, course_payload
from sutra.services.curriculum import CurriculumError, iter_lessons

log = logging.getLogger("sutra.youtube")

VIDEO_ID = r"[A-Za-z0-9_-]{11}"
_HOST = r"(?:https?://)?(?:www\.|m\.)?"
_TAIL = r"(?:[?&#/].*)?"
_URL_PATTERNS = [
    re.compile(rf"{_HOST}youtu\.be/({VIDEO_ID}){_TAIL}"),
    re.compile(rf"{_HOST}youtube\.com/watch\?(?:.*&)?v=({VIDEO_ID})(?:[&#].*)?"),
    re.compile(rf"{_HOST}youtube\.com/embed/({VIDEO_ID}){_TAIL}"),
    re.compile(rf"{_HOST}youtube\.com/shorts/({VIDEO_ID}){_TAIL}"),
]
_BARE_ID = re.compile(VIDEO_ID)

REQUESTS_COL = "enrollmentRequests"
REQUEST_STATUSES = ("pending", "approved", "rejected")


def parse_youtube_url(url: Optional[str]) -> Optional[Dict[str, str]]:
    value = (url or "").strip()
    if not value:
        return None
    video_id = None
    if _BARE_ID.fullmatch(value):
        video_id = value
    else:
        for pattern in _URL_PATTERNS:
            match = pattern.fullmatch(value)
            if match:
                video_id = match.group(1)
                break
    if not video_id:
        return None
    return {
        "videoId": video_id,
        "embedUrl": f"https://www.youtube.com/embed/{video_id}",
        "thumbnailUrl": f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg",
    }


def youtube_thumbnails(video_id: str) -> Dict[str, str]:
    base = f"https://img.youtube.com/vi/{video_id}"
    return {
        "default": f"{base}/default.jpg",
        "medium": f"{base}/mqdefault.jpg",
        "high": f"{base}/hqdefault.jpg",
        "standard": f"{base}/sddefault.jpg",
        "maxres": f"{base}/maxresdefault.jpg",
    }


def to_youtube_source(source: Dict[str, Any], label: str) -> Dict[str, Any]:
    """Turn ``{url}`` or ``{videoId}`` into a full YouTube video source."""
    parsed = parse_youtube_url(source.get("url") or source.get("videoId"))
    if not parsed:
        raise CurriculumError(f"Invalid YouTube URL for {label}", 400)
    out = {k: v for k, v in source.items() if v is not None}
    out.update(
        {
            "type": "youtube",
            "videoId": parsed["videoId"],
            "url": f"https://www.youtube.com/watch?v={parsed['videoId']}",
            "embedUrl": parsed["embedUrl"],
            "thumbnailUrl": source.get("thumbnailUrl") or parsed["thumbnailUrl"],
        }
    )
    out.pop("video", None)
    out.pop("videoLibraryId", None)
    return out


class YouTubeCourseService(CourseService):
    collection_name = "youtubeCourses"
    course_type = "youtube"

    def payload(self, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        out = course_payload(doc_id, data)
        out["manualEnrollmentEnabled"] = data.get("manualEnrollmentEnabled", False)
        return out

    def _prepare(self, data: Dict[str, Any], course_id: Optional[str] = None) -> Dict[str, Any]:
        doc = super()._prepare(data, course_id=course_id)
        if doc.get("previewVideo"):
            doc["previewVideo"] = to_youtube_source(doc["previewVideo"], "the preview video")
        for _, node, kind in iter_lessons(doc):
            source = node.get("videoSource")
            if source:
                node["videoSource"] = to_youtube_source(source, f"{kind} '{node.get('title') or node.get('id')}'")
        return doc


youtube_course_service = YouTubeCourseService()


def request_payload(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc_id,
        "userId": data.get("userId"),
        "courseId": data.get("courseId"),
        "status": data.get("status", "pending"),
        "paymentMethod": data.get("paymentMethod"),
        "transactionId": data.get("transactionId"),
        "notes": data.get("notes"),
        "paymentProof": data.get("paymentProof"),
        "adminNotes": data.get("adminNotes"),
        "reviewedBy": data.get("reviewedBy"),
        "reviewedAt": data.get("reviewedAt"),
        "createdAt": data.get("createdAt"),
    }


class EnrollmentRequestService:
    @property
    def db(self):
        return firebase_client.get_firestore_client()

    def _col(self):
        return self.db.collection(REQUESTS_COL)

    def latest_for_user(self, uid: str, course_id: str) -> Optional[Dict[str, Any]]:
        snaps = self._col().where("courseId", "==", course_id).where("userId", "==", uid).stream()
        items = [request_payload(s.id, s.to_dict() or {}) for s in snaps]
        if not items:
            return None
        pending = [i for i in items if i["status"] == "pending"]
        if pending:
            return pending[0]
        items.sort(key=lambda i: ts_value(i.get("createdAt")), reverse=True)
        return items[0]

    def create_or_get_pending(self, uid: str, course_id: str, info: Dict[str, Any]) -> Dict[str, Any]:
        existing = self.latest_for_user(uid, course_id)
        if existing and existing["status"] == "pending":
            return existing
        ref = self._col().document()
        ref.set(
            {
                "userId": uid,
                "courseId": course_id,
                "status": "pending",
                **{k: v for k, v in info.items() if v is not None},
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            }
        )
        log.info("enrollment request id=%s course=%s uid=%s", ref.id, course_id, uid)
        return request_payload(ref.id, ref.get().to_dict() or {})

    def list_for_course(self, course_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self._col().where("courseId", "==", course_id)
        if status:
            query = query.where("status", "==", status)
        query = query.order_by("createdAt", direction=Query.DESCENDING)
        return [request_payload(s.id, s.to_dict() or {}) for s in query.stream()]

    def get(self, request_id: str) -> Optional[Dict[str, Any]]:
        snap = self._col().document(request_id).get()
        if not snap.exists:
            return None
        return request_payload(snap.id, snap.to_dict() or {})

    def decide(self, request_id: str, status: str, admin_uid: str, notes: Optional[str] = None) -> Dict[str, Any]:
        ref = self._col().document(request_id)
        ref.update(
            {
                "status": status,
                "adminNotes": notes,
                "reviewedBy": admin_uid,
                "reviewedAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            }
        )
        log.info("enrollment request id=%s -> %s by=%s", request_id, status, admin_uid)
        return request_payload(ref.id, ref.get().to_dict() or {})

    def delete_for_course(self, course_id: str) -> int:
        removed = 0
        for snap in self._col().where("courseId", "==", course_id).stream():
            snap.reference.delete()
            removed += 1
        return removed


enrollment_request_service = EnrollmentRequestService()
