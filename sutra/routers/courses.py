import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.core.errors import EnrollmentRequired
from sutra.deps.auth import get_current_user, get_optional_user, require_admin
from sutra.models.dto import ManualAccessIn, NoteIn, ProgressIn, RatingIn
from sutra.services.courses import course_service, is_paid
from sutra.services.curriculum import CurriculumError, strip_locked_content
from sutra.services.learning import COURSE_SERVICES, learning_service
from sutra.services.notifications import notification_service
from sutra.services.users import user_service

router = APIRouter()
admin_router = APIRouter()
log = logging.getLogger("sutra.learning")


def _is_admin(uid: Optional[str]) -> bool:
    return bool(uid) and user_service.get_role(uid) == "admin"


def _visible_course(id_or_slug: str, uid: Optional[str] = None) -> Dict[str, Any]:
    course = course_service.resolve(id_or_slug)
    if not course or (not course["isPublished"] and not _is_admin(uid)):
        raise HTTPException(404, "Course not found")
    return course


def _enrolled_course(id_or_slug: str, uid: str) -> Dict[str, Any]:
    course = _visible_course(id_or_slug, uid)
    if not learning_service.is_enrolled(uid, course["id"]):
        raise EnrollmentRequired("You must be enrolled in this course")
    return course


@router.get("")
async def list_courses(
    search: str = Query(""),
    category: str = Query(""),
    level: str = Query(""),
    price: str = Query("all", pattern="^(all|free|paid)$"),
    rating: float = Query(0, ge=0, le=5),
    sort: str = Query("popular"),
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
):
    courses, pagination, stats = course_service.catalogue(
        search=search,
        category=category,
        level=level,
        price=price,
        rating=rating,
        sort=sort,
        page=page,
        limit=limit,
    )
    return {"courses": courses, "pagination": pagination, "stats": stats}


@router.get("/categories")
async def list_categories():
    return {"items": course_service.categories()}


@router.get("/{id_or_slug}")
async def get_course(id_or_slug: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    uid = (user or {}).get("uid")
    course = _visible_course(id_or_slug, uid)
    enrolled = learning_service.is_enrolled(uid, course["id"])
    if not (enrolled or _is_admin(uid)):
        course = strip_locked_content(course)
    course["isEnrolled"] = enrolled
    return course


@router.post("/{id_or_slug}/enroll")
async def enroll(id_or_slug: str, user: Dict[str, Any] = Depends(get_current_user)):
    uid = user["uid"]
    course = course_service.resolve(id_or_slug)
    if not course:
        raise HTTPException(404, "Course not found")
    if not course["isPublished"]:
        raise HTTPException(403, "Course is not available for enrollment")

    if learning_service.is_enrolled(uid, course["id"]):
        return {"alreadyEnrolled": True, "progress": learning_service.ensure_progress(uid, course)}
    if is_paid(course):
        raise HTTPException(402, "Payment required")

    user_service.ensure_profile(user)
    enrollment, progress = learning_service.enroll(course, uid)
    notification_service.notify(
        uid,
        "enrollment",
        f"You enrolled in \"{course['title']}\"",
        course_id=course["id"],
        action_url=f"/courses/{course['slug']}/learn",
    )
    return {"alreadyEnrolled": False, "enrollment": enrollment, "progress": progress}


@router.get("/{id_or_slug}/enrollment-status")
async def enrollment_status(id_or_slug: str, user: Dict[str, Any] = Depends(get_current_user)):
    course = _visible_course(id_or_slug, user["uid"])
    enrollment = learning_service.get_enrollment(user["uid"], course["id"])
    progress = learning_service.get_progress(user["uid"], course["id"]) if enrollment else None
    return {
        "isEnrolled": enrollment is not None,
        "enrolledAt": enrollment["enrolledAt"] if enrollment else None,
        "progress": progress,
    }


@router.get("/{id_or_slug}/progress")
async def get_progress(id_or_slug: str, user: Dict[str, Any] = Depends(get_current_user)):
    course = _enrolled_course(id_or_slug, user["uid"])
    return learning_service.ensure_progress(user["uid"], course)


@router.post("/{id_or_slug}/progress")
async def update_progress(id_or_slug: str, body: ProgressIn, user: Dict[str, Any] = Depends(get_current_user)):
    course = _enrolled_course(id_or_slug, user["uid"])
    try:
        return learning_service.update_progress(
            user["uid"],
            course,
            body.lessonId,
            completed=body.completed,
            current=body.current,
            time_spent=body.timeSpent,
        )
    except CurriculumError as e:
        raise HTTPException(e.status_code, e.message)


@router.post("/{id_or_slug}/complete")
async def complete_course(id_or_slug: str, user: Dict[str, Any] = Depends(get_current_user)):
    course = _enrolled_course(id_or_slug, user["uid"])
    return learning_service.complete_all(user["uid"], course)


@router.post("/{id_or_slug}/rate")
async def rate_course(id_or_slug: str, body: RatingIn, user: Dict[str, Any] = Depends(get_current_user)):
    course = _enrolled_course(id_or_slug, user["uid"])
    return learning_service.rate(user["uid"], course, body.rating, body.review)


@router.get("/{id_or_slug}/notes")
async def list_notes(
    id_or_slug: str,
    lessonId: Optional[str] = Query(None),
    user: Dict[str, Any] = Depends(get_current_user),
):
    course = _enrolled_course(id_or_slug, user["uid"])
    return {"items": learning_service.list_notes(user["uid"], course["id"], lesson_id=lessonId)}


@router.post("/{id_or_slug}/notes")
async def save_note(id_or_slug: str, body: NoteIn, user: Dict[str, Any] = Depends(get_current_user)):
    course = _enrolled_course(id_or_slug, user["uid"])
    try:
        return learning_service.save_note(user["uid"], course, body.lessonId, body.content)
    except CurriculumError as e:
        raise HTTPException(e.status_code, e.message)


@router.delete("/{id_or_slug}/notes")
async def delete_note(
    id_or_slug: str,
    lessonId: str = Query(..., min_length=1),
    user: Dict[str, Any] = Depends(get_current_user),
):
    course = _enrolled_course(id_or_slug, user["uid"])
    if not learning_service.delete_note(user["uid"], course["id"], lessonId):
        raise HTTPException(404, "Note not found")
    return {"ok": True}


@admin_router.post("/manual-access")
async def grant_access(body: ManualAccessIn, admin: Dict[str, Any] = Depends(require_admin)):
    service = COURSE_SERVICES[body.courseType]
    course = service.get(body.courseId)
    if not course:
        raise HTTPException(404, "Course not found")
    if user_service.get(body.userId) is None:
        raise HTTPException(404, "User not found")

    existing = learning_service.get_enrollment(body.userId, course["id"])
    if existing:
        return {"alreadyEnrolled": True, "enrollment": existing}

    enrollment, _ = learning_service.enroll(
        course,
        body.userId,
        course_type=body.courseType,
        through="manual_grant",
        granted_by=admin["uid"],
        payment_method=body.paymentMethod,
        payment_amount=body.paymentAmount,
    )
    notification_service.notify(
        body.userId,
        "enrollment",
        f"You have been given access to \"{course['title']}\"",
        from_user_id=admin["uid"],
        course_id=course["id"],
    )
    log.info("manual access uid=%s course=%s by=%s", body.userId, course["id"], admin["uid"])
    return {"alreadyEnrolled": False, "enrollment": enrollment}


@admin_router.delete("/manual-access")
async def revoke_access(
    userId: str = Query(...),
    courseId: str = Query(...),
    courseType: str = Query("course", pattern="^(course|youtube)$"),
    admin: Dict[str, Any] = Depends(require_admin),
):
    if not learning_service.revoke(userId, courseId, course_type=courseType):
        raise HTTPException(404, "Enrollment not found")
    log.info("manual access revoked uid=%s course=%s by=%s", userId, courseId, admin["uid"])
    return {"ok": True}
