from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Query

from sutra.services import firebase_client
from sutra.services.users import DEFAULT_PREFERENCES, user_service

log = logging.getLogger("sutra.notifications")

COL = "notifications"
TYPES = ("follow", "like", "comment", "reply", "course", "achievement", "enrollment")
PREFERENCE_FOR_TYPE = {
    "follow": "follows",
    "like": "likes",
    "comment": "comments",
    "reply": "comments",
    "course": "courses",
    "enrollment": "courses",
    "achievement": "achievements",
}


def notification_payload(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc_id,
        "userId": data.get("userId"),
        "type": data.get("type"),
        "fromUserId": data.get("fromUserId"),
        "postId": data.get("postId"),
        "courseId": data.get("courseId"),
        "message": data.get("message", ""),
        "actionUrl": data.get("actionUrl"),
        "read": data.get("read", False),
        "createdAt": data.get("createdAt"),
    }


class NotificationService:
    @property
    def db(self):
        return firebase_client.get_firestore_client()

    def _col(self):
        return self.db.collection(COL)

    def notify(
        self,
        user_id: str,
        type_: str,
        message: str,
        from_user_id: Optional[str] = None,
        post_id: Optional[str] = None,
        course_id: Optional[str] = None,
        action_url: Optional[str] = None,
    ) -> Optional[str]:
        if not user_id or user_id == from_user_id:
            return None
        recipient = user_service.get(user_id)
        if recipient is None:
            return None
        prefs = {**DEFAULT_PREFERENCES, **(recipient.get("notificationPreferences") or {})}
        if not prefs.get(PREFERENCE_FOR_TYPE.get(type_, ""), True):
            log.debug("notification muted uid=%s type=%s", user_id, type_)
            return None

        ref = self._col().document()
        ref.set(
            {
                "userId": user_id,
                "type": type_,
                "fromUserId": from_user_id,
                "postId": post_id,
                "courseId": course_id,
                "message": message,
                "actionUrl": action_url,
                "read": False,
                "createdAt": SERVER_TIMESTAMP,
            }
        )
        return ref.id

    def list(self, uid: str, unread_only: bool = False, limit: int = 50) -> List[Dict[str, Any]]:
        query = self._col().where("userId", "==", uid)
        if unread_only:
            query = query.where("read", "==", False)
        query = query.order_by("createdAt", direction=Query.DESCENDING).limit(limit)
        return [notification_payload(s.id, s.to_dict() or {}) for s in query.stream()]

    def unread_count(self, uid: str) -> int:
        query = self._col().where("userId", "==", uid).where("read", "==", False)
        return firebase_client.count_documents(query)

    def _owned(self, uid: str, notification_id: str):
        ref = self._col().document(notification_id)
        snap = ref.get()
        if not snap.exists or (snap.to_dict() or {}).get("userId") != uid:
            return None
        return ref

    def mark(self, uid: str, notification_id: str, read: bool = True) -> Optional[Dict[str, Any]]:
        ref = self._owned(uid, notification_id)
        if ref is None:
            return None
        ref.update({"read": read})
        return notification_payload(ref.id, ref.get().to_dict() or {})

    def mark_all_read(self, uid: str) -> int:
        snaps = list(self._col().where("userId", "==", uid).where("read", "==", False).stream())
        batch = self.db.batch()
        for snap in snaps:
            batch.update(snap.reference, {"read": True})
        if snaps:
            batch.commit()
        return len(snaps)

    def delete(self, uid: str, notification_id: str) -> bool:
        ref = self._owned(uid, notification_id)
        if ref is None:
            return False
        ref.delete()
        return True

    def get_preferences(self, uid: str) -> Dict[str, bool]:
        data = user_service.get(uid) or {}
        return {**DEFAULT_PREFERENCES, **(data.get("notificationPreferences") or {})}

    def update_preferences(self, uid: str, prefs: Dict[str, Any]) -> Dict[str, bool]:
        user_service.update_profile(uid, {"notificationPreferences": prefs})
        return self.get_preferences(uid)


notification_service = NotificationService()
