"""Reusable uploaded videos indexed in Firestore (``videoLibrary``)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Query

from sutra.services import firebase_client
from sutra.services.courses import course_service
from sutra.services.curriculum import iter_lessons
from sutra.services.storage import storage_service

log = logging.getLogger("sutra.media")

COL = "videoLibrary"


class VideoInUse(Exception):
    def __init__(self, usage: List[Dict[str, Any]]) -> None:
        super().__init__(f"video is used by {len(usage)} lesson(s)")
        self.usage = usage


def library_payload(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc_id,
        "title": data.get("title"),
        "description": data.get("description", ""),
        "video": data.get("video"),
        "tags": data.get("tags", []),
        "uploadedBy": data.get("uploadedBy"),
        "usageCount": data.get("usageCount", 0),
        "createdAt": data.get("createdAt"),
        "updatedAt": data.get("updatedAt"),
    }


class VideoLibraryService:
    @property
    def db(self):
        return firebase_client.get_firestore_client()

    def _col(self):
        return self.db.collection(COL)

    def list(self, q: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        snaps = self._col().order_by("createdAt", direction=Query.DESCENDING).stream()
        needle = (q or "").strip().lower()
        for snap in snaps:
            item = library_payload(snap.id, snap.to_dict() or {})
            if needle:
                haystack = " ".join([item.get("title") or "", *item.get("tags", [])]).lower()
                if needle not in haystack:
                    continue
            results.append(item)
            if len(results) >= limit:
                break
        return results

    def get(self, video_id: str) -> Optional[Dict[str, Any]]:
        snap = self._col().document(video_id).get()
        if not snap.exists:
            return None
        return library_payload(snap.id, snap.to_dict() or {})

    def register(
        self,
        title: str,
        video: Dict[str, Any],
        uid: str,
        description: str = "",
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        ref = self._col().document()
        ref.set(
            {
                "title": title,
                "description": description or "",
                "video": video,
                "tags": [t.strip().lower() for t in tags or [] if t.strip()],
                "uploadedBy": uid,
                "usageCount": 0,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            }
        )
        log.info("library video id=%s key=%s by=%s", ref.id, video.get("key"), uid)
        return library_payload(ref.id, ref.get().to_dict() or {})

    def register_key(self, key: str, uid: str, title: Optional[str] = None, description: str = "", tags=None):
        """Register an already-uploaded object, reading its size and type from the bucket."""
        asset = storage_service.describe(key)
        return self.register(title or asset["fileName"], asset, uid, description=description, tags=tags)

    def update(self, video_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ref = self._col().document(video_id)
        if not ref.get().exists:
            return None
        if "tags" in patch and patch["tags"] is not None:
            patch["tags"] = [t.strip().lower() for t in patch["tags"] if t.strip()]
        if patch:
            ref.update({**patch, "updatedAt": SERVER_TIMESTAMP})
        return self.get(video_id)

    def usage(self, video_id: str) -> List[Dict[str, Any]]:
        found: List[Dict[str, Any]] = []
        for course in course_service.all_courses():
            for _, node, kind in iter_lessons(course):
                source = node.get("videoSource") or {}
                if source.get("videoLibraryId") == video_id:
                    found.append(
                        {
                            "courseId": course["id"],
                            "courseTitle": course.get("title"),
                            "lessonId": node.get("id"),
                            "lessonTitle": node.get("title"),
                            "kind": kind,
                        }
                    )
        ref = self._col().document(video_id)
        if ref.get().exists:
            ref.update({"usageCount": len(found)})
        return found

    def delete(self, video_id: str, force: bool = False, delete_file: bool = False) -> bool:
        item = self.get(video_id)
        if not item:
            return False
        usage = self.usage(video_id)
        if usage and not force:
            raise VideoInUse(usage)
        self._col().document(video_id).delete()
        key = (item.get("video") or {}).get("key")
        if delete_file and key:
            storage_service.delete_object(key)
        log.info("deleted library video id=%s forced=%s file=%s", video_id, force, delete_file)
        return True


video_library_service = VideoLibraryService()
