"""
Enrollments, per-learner progress, ratings and lesson notes.

``enrollments/{courseId}_{uid}`` records access to a course and
``progress/{uid}_{courseId}`` tracks what the learner has completed. Both
collections serve regular and YouTube courses; ``courseType`` tells them apart.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from sutra.services import firebase_client
from sutra.services.firebase_client import ts_value
from sutra.services.courses import course_service, course_summary
from sutra.services.curriculum import (
    CurriculumError,
    count_content_items,
    find_lesson,
    first_content_item,
    iter_content_items,
    iter_lessons,
)
from sutra.services.notifications import notification_service
from sutra.services.youtube import youtube_course_service

log = logging.getLogger("sutra.learning")

ENROLLMENTS = "enrollments"
PROGRESS = "progress"
COURSE_SERVICES = {"course": course_service, "youtube": youtube_course_service}


def enrollment_id(course_id: str, uid: str) -> str:
    return f"{course_id}_{uid}"


def progress_id(uid: str, course_id: str) -> str:
    return f"{uid}_{course_id}"


def compute_progress(course: Dict[str, Any], completed: List[str]) -> float:
    """Fraction of content items completed, capped at 1."""
    total = count_content_items(course)
    if not total:
        total = sum(1 for _ in iter_lessons(course))
    if not total:
        return 0.0
    return min(len(set(completed)) / total, 1.0)


def progress_payload(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc_id,
        "userId": data.get("userId"),
        "courseId": data.get("courseId"),
        "courseType": data.get("courseType", "course"),
        "completedLessons": data.get("completedLessons", []),
        "currentLesson": data.get("currentLesson"),
        "contentType": data.get("contentType", "lesson"),
        "progress": data.get("progress", 0),
        "timeSpent": data.get("timeSpent", 0),
        "lastAccessed": data.get("lastAccessed"),
        "completed": data.get("completed", False),
        "completedAt": data.get("completedAt"),
        "notes": data.get("notes", []),
    }


def enrollment_payload(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc_id,
        "userId": data.get("userId"),
        "courseId": data.get("courseId"),
        "courseType": data.get("courseType", "course"),
        "enrolledThrough": data.get("enrolledThrough"),
        "grantedBy": data.get("grantedBy"),
        "paymentMethod": data.get("paymentMethod"),
        "paymentAmount": data.get("paymentAmount"),
        "progress": data.get("progress", 0),
        "completed": data.get("completed", False),
        "completedAt": data.get("completedAt"),
        "enrolledAt": data.get("enrolledAt"),
    }


class LearningService:
    @property
    def db(self):
        return firebase_client.get_firestore_client()

    def _enrollment_ref(self, course_id: str, uid: str):
        return self.db.collection(ENROLLMENTS).document(enrollment_id(course_id, uid))

    def _progress_ref(self, uid: str, course_id: str):
        return self.db.collection(PROGRESS).document(progress_id(uid, course_id))

    # enrollments

    def get_enrollment(self, uid: str, course_id: str) -> Optional[Dict[str, Any]]:
        snap = self._enrollment_ref(course_id, uid).get()
        if not snap.exists:
            return None
        return enrollment_payload(snap.id, snap.to_dict() or {})

    def is_enrolled(self, uid: Optional[str], course_id: str) -> bool:
        return bool(uid) and self.get_enrollment(uid, course_id) is not None

    def enroll(
        self,
        course: Dict[str, Any],
        uid: str,
        course_type: str = "course",
        through: str = "free",
        granted_by: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_amount: Optional[float] = None,
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        ref = self._enrollment_ref(course["id"], uid)
        ref.set(
            {
                "userId": uid,
                "courseId": course["id"],
                "courseType": course_type,
                "enrolledThrough": through,
                "grantedBy": granted_by,
                "paymentMethod": payment_method,
                "paymentAmount": payment_amount,
                "progress": 0,
                "completed": False,
                "enrolledAt": SERVER_TIMESTAMP,
            }
        )
        service = COURSE_SERVICES[course_type]
        service.bump(course["id"], "totalStudents", 1)
        if through == "manual_grant":
            service.bump(course["id"], "manualEnrollments", 1)
        progress = self.ensure_progress(uid, course, course_type)
        log.info("enrolled uid=%s %s=%s through=%s", uid, course_type, course["id"], through)
        return enrollment_payload(ref.id, ref.get().to_dict() or {}), progress

    def revoke(self, uid: str, course_id: str, course_type: str = "course") -> bool:
        enrollment = self.get_enrollment(uid, course_id)
        if enrollment is None:
            return False
        self._enrollment_ref(course_id, uid).delete()
        self._progress_ref(uid, course_id).delete()
        service = COURSE_SERVICES[course_type]
        if service.get(course_id):
            service.bump(course_id, "totalStudents", -1)
            if enrollment.get("enrolledThrough") == "manual_grant":
                service.bump(course_id, "manualEnrollments", -1)
        log.info("revoked uid=%s %s=%s", uid, course_type, course_id)
        return True

    def list_user_enrollments(self, uid: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for snap in self.db.collection(ENROLLMENTS).where("userId", "==", uid).stream():
            enrollment = enrollment_payload(snap.id, snap.to_dict() or {})
            service = COURSE_SERVICES.get(enrollment["courseType"], course_service)
            course = service.get(enrollment["courseId"])
            if not course:
                continue
            progress = self.get_progress(uid, enrollment["courseId"])
            items.append(
                {
                    **enrollment,
                    "course": course_summary(course),
                    "progress": progress["progress"] if progress else enrollment["progress"],
                    "currentLesson": progress["currentLesson"] if progress else None,
                }
            )
        items.sort(key=lambda i: ts_value(i.get("enrolledAt")), reverse=True)
        return items

    def list_enrollments(self, course_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.db.collection(ENROLLMENTS)
        if course_id:
            query = query.where("courseId", "==", course_id)
        return [enrollment_payload(s.id, s.to_dict() or {}) for s in query.stream()]

    def delete_for_course(self, course_id: str) -> int:
        removed = 0
        for name in (ENROLLMENTS, PROGRESS):
            for snap in self.db.collection(name).where("courseId", "==", course_id).stream():
                snap.reference.delete()
                removed += 1
        log.info("removed %s enrollment/progress docs for course=%s", removed, course_id)
        return removed

    # progress

    def get_progress(self, uid: str, course_id: str) -> Optional[Dict[str, Any]]:
        snap = self._progress_ref(uid, course_id).get()
        if not snap.exists:
            return None
        return progress_payload(snap.id, snap.to_dict() or {})

    def ensure_progress(self, uid: str, course: Dict[str, Any], course_type: str = "course") -> Dict[str, Any]:
        existing = self.get_progress(uid, course["id"])
        if existing:
            return existing
        first_id, kind = first_content_item(course)
        ref = self._progress_ref(uid, course["id"])
        ref.set(
            {
                "userId": uid,
                "courseId": course["id"],
                "courseType": course_type,
                "completedLessons": [],
                "currentLesson": first_id,
                "contentType": kind or "lesson",
                "progress": 0,
                "timeSpent": 0,
                "lastAccessed": SERVER_TIMESTAMP,
                "completed": False,
                "completedAt": None,
                "notes": [],
            }
        )
        return progress_payload(ref.id, ref.get().to_dict() or {})

    def list_user_progress(self, uid: str) -> List[Dict[str, Any]]:
        snaps = self.db.collection(PROGRESS).where("userId", "==", uid).stream()
        return [progress_payload(s.id, s.to_dict() or {}) for s in snaps]

    def _save_progress(
        self,
        uid: str,
        course: Dict[str, Any],
        course_type: str,
        state: Dict[str, Any],
        updates: Dict[str, Any],
    ) -> Dict[str, Any]:
        was_completed = bool(state.get("completed"))
        fraction = compute_progress(course, updates.get("completedLessons", state["completedLessons"]))
        updates["progress"] = fraction
        updates["lastAccessed"] = SERVER_TIMESTAMP

        enrollment_updates: Dict[str, Any] = {"progress": fraction}
        just_completed = fraction >= 1 and not was_completed
        if just_completed:
            updates["completed"] = True
            updates["completedAt"] = SERVER_TIMESTAMP
            enrollment_updates.update({"completed": True, "completedAt": SERVER_TIMESTAMP})

        ref = self._progress_ref(uid, course["id"])
        ref.set(updates, merge=True)
        enrollment = self._enrollment_ref(course["id"], uid)
        if enrollment.get().exists:
            enrollment.update(enrollment_updates)

        if just_completed:
            log.info("course completed uid=%s %s=%s", uid, course_type, course["id"])
            notification_service.notify(
                uid,
                "course",
                f"Congratulations! You completed \"{course.get('title')}\"",
                course_id=course["id"],
                action_url=f"/courses/{course.get('slug') or course['id']}",
            )
        return progress_payload(ref.id, ref.get().to_dict() or {})

    def update_progress(
        self,
        uid: str,
        course: Dict[str, Any],
        lesson_id: str,
        completed: bool = False,
        current: bool = False,
        time_spent: float = 0,
        course_type: str = "course",
    ) -> Dict[str, Any]:
        found = find_lesson(course, lesson_id)
        if not found:
            raise CurriculumError("Lesson not found")
        _, kind = found

        state = self.ensure_progress(uid, course, course_type)
        updates: Dict[str, Any] = {"timeSpent": float(state.get("timeSpent") or 0) + float(time_spent or 0)}
        if current:
            updates["currentLesson"] = lesson_id
            updates["contentType"] = kind
        if completed and lesson_id not in state["completedLessons"]:
            updates["completedLessons"] = state["completedLessons"] + [lesson_id]
        return self._save_progress(uid, course, course_type, state, updates)

    def complete_all(self, uid: str, course: Dict[str, Any], course_type: str = "course") -> Dict[str, Any]:
        state = self.ensure_progress(uid, course, course_type)
        every = [item_id for item_id, _ in iter_content_items(course)]
        if not every:
            every = [node["id"] for _, node, _kind in iter_lessons(course)]
        merged = list(dict.fromkeys(state["completedLessons"] + every))
        return self._save_progress(uid, course, course_type, state, {"completedLessons": merged})

    # ratings

    def rate(
        self,
        uid: str,
        course: Dict[str, Any],
        rating: int,
        review: Optional[str] = None,
        course_type: str = "course",
    ) -> Dict[str, Any]:
        ratings = [r for r in course.get("ratings") or [] if r.get("user") != uid]
        ratings.append(
            {
                "user": uid,
                "rating": rating,
                "review": review or "",
                "createdAt": datetime.now(timezone.utc),
            }
        )
        COURSE_SERVICES[course_type].save_ratings(course["id"], ratings)
        average = round(sum(r["rating"] for r in ratings) / len(ratings), 1)
        log.info("rated %s=%s uid=%s rating=%s", course_type, course["id"], uid, rating)
        return {"averageRating": average, "totalReviews": len(ratings)}

    # notes

    def list_notes(self, uid: str, course_id: str, lesson_id: Optional[str] = None) -> List[Dict[str, Any]]:
        progress = self.get_progress(uid, course_id) or {}
        notes = progress.get("notes") or []
        if lesson_id:
            notes = [n for n in notes if n.get("lessonId") == lesson_id]
        return notes

    def save_note(self, uid: str, course: Dict[str, Any], lesson_id: str, content: str, course_type: str = "course"):
        if not find_lesson(course, lesson_id):
            raise CurriculumError("Lesson not found")
        state = self.ensure_progress(uid, course, course_type)
        now = datetime.now(timezone.utc)
        notes = list(state.get("notes") or [])
        for note in notes:
            if note.get("lessonId") == lesson_id:
                note["content"] = content
                note["updatedAt"] = now
                saved = note
                break
        else:
            saved = {"lessonId": lesson_id, "content": content, "createdAt": now, "updatedAt": now}
            notes.append(saved)
        self._progress_ref(uid, course["id"]).update({"notes": notes})
        return saved

    def delete_note(self, uid: str, course_id: str, lesson_id: str) -> bool:
        progress = self.get_progress(uid, course_id)
        if not progress:
            return False
        notes = [n for n in progress["notes"] if n.get("lessonId") != lesson_id]
        if len(notes) == len(progress["notes"]):
            return False
        self._progress_ref(uid, course_id).update({"notes": notes})
        return True


learning_service = LearningService()
