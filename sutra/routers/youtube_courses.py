import logging
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.core.errors import EnrollmentRequired
from sutra.deps.auth import get_current_user, get_optional_user, require_admin, require_staff
from sutra.models.course import YouTubeCourseIn
from sutra.models.dto import EnrollmentDecision, EnrollmentRequestIn, ProgressIn
from sutra.services.courses import SlugConflict, course_summary
from sutra.services.curriculum import CurriculumError, strip_locked_content
from sutra.services.learning import learning_service
from sutra.services.notifications import notification_service
from sutra.services.users import user_service
from sutra.services.youtube import REQUEST_STATUSES, enrollment_request_service, youtube_course_service

router = APIRouter()
admin_router = APIRouter()
log = logging.getLogger("sutra.youtube")

COURSE_TYPE = "youtube"


def _published_or_404(id_or_slug: str) -> Dict[str, Any]:
    course = youtube_course_service.resolve(id_or_slug)
    if not course or not course["isPublished"]:
        raise HTTPException(404, "Course not found")
    return course


def _save(action: Callable[[], Optional[Dict[str, Any]]]) -> Dict[str, Any]:
    try:
        course = action()
    except SlugConflict as e:
        raise HTTPException(409, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    except CurriculumError as e:
        raise HTTPException(e.status_code, e.message)
    if course is None:
        raise HTTPException(404, "Course not found")
    return course


# ---- public ----


@router.get("")
async def list_youtube_courses(
    search: str = Query(""),
    category: str = Query(""),
    level: str = Query(""),
):
    needle = search.strip().lower()
    items = []
    for course in youtube_course_service.list_published():
        if needle and needle not in " ".join([course.get("title") or "", course.get("description") or ""]).lower():
            continue
        if category and course.get("category") != category:
            continue
        if level and course.get("level") != level:
            continue
        items.append(course)
    items.sort(key=lambda c: c.get("totalStudents") or 0, reverse=True)
    return {"items": items}


@router.get("/{slug}")
async def get_youtube_course(slug: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    uid = (user or {}).get("uid")
    course = _published_or_404(slug)
    enrolled = learning_service.is_enrolled(uid, course["id"])
    if not enrolled and not (uid and user_service.get_role(uid) == "admin"):
        course = strip_locked_content(course)
    course["isEnrolled"] = enrolled
    return course


@router.post("/{slug}/enroll")
async def enroll(
    slug: str,
    body: Optional[EnrollmentRequestIn] = None,
    user: Dict[str, Any] = Depends(get_current_user),
):
    uid = user["uid"]
    course = _published_or_404(slug)
    if learning_service.is_enrolled(uid, course["id"]):
        return {"status": "enrolled", "alreadyEnrolled": True}

    user_service.ensure_profile(user)
    if course.get("isFree") and not course.get("manualEnrollmentEnabled"):
        enrollment, progress = learning_service.enroll(course, uid, course_type=COURSE_TYPE)
        return {"status": "enrolled", "enrollment": enrollment, "progress": progress}

    info = body.model_dump(exclude_none=True) if body else {}
    request = enrollment_request_service.create_or_get_pending(uid, course["id"], info)
    return {"status": request["status"], "request": request}


@router.get("/{slug}/enrollment-status")
async def enrollment_status(slug: str, user: Dict[str, Any] = Depends(get_current_user)):
    course = _published_or_404(slug)
    if learning_service.is_enrolled(user["uid"], course["id"]):
        return {"isEnrolled": True, "status": "enrolled"}
    request = enrollment_request_service.latest_for_user(user["uid"], course["id"])
    return {"isEnrolled": False, "status": request["status"] if request else None}


def _enrolled_course(slug: str, uid: str) -> Dict[str, Any]:
    course = _published_or_404(slug)
    if not learning_service.is_enrolled(uid, course["id"]):
        raise EnrollmentRequired("You must be enrolled in this course")
    return course


@router.get("/{slug}/progress")
async def get_progress(slug: str, user: Dict[str, Any] = Depends(get_current_user)):
    course = _enrolled_course(slug, user["uid"])
    return learning_service.ensure_progress(user["uid"], course, COURSE_TYPE)


@router.post("/{slug}/progress")
async def update_progress(slug: str, body: ProgressIn, user: Dict[str, Any] = Depends(get_current_user)):
    course = _enrolled_course(slug, user["uid"])
    try:
        return learning_service.update_progress(
            user["uid"],
            course,
            body.lessonId,
            completed=body.completed,
            current=body.current,
            time_spent=body.timeSpent,
            course_type=COURSE_TYPE,
        )
    except CurriculumError as e:
        raise HTTPException(e.status_code, e.message)


# ---- admin ----


@admin_router.get("", dependencies=[Depends(require_staff)])
async def admin_list(
    q: Optional[str] = Query(None),
    published: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    return {"items": youtube_course_service.list(q=q, published=published, limit=limit), "next_cursor": None}


@admin_router.post("", status_code=201)
async def admin_create(body: YouTubeCourseIn, user: Dict[str, Any] = Depends(require_staff)):
    return _save(lambda: youtube_course_service.create(body.model_dump(exclude_none=True), user["uid"]))


@admin_router.get("/{course_id}", dependencies=[Depends(require_staff)])
async def admin_get(course_id: str):
    course = youtube_course_service.get(course_id)
    if not course:
        raise HTTPException(404, "Course not found")
    return course


@admin_router.put("/{course_id}", dependencies=[Depends(require_staff)])
async def admin_replace(course_id: str, body: YouTubeCourseIn):
    return _save(lambda: youtube_course_service.replace(course_id, body.model_dump(exclude_none=True)))


@admin_router.delete("/{course_id}")
async def admin_delete(course_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    if not youtube_course_service.delete(course_id):
        raise HTTPException(404, "Course not found")
    learning_service.delete_for_course(course_id)
    enrollment_request_service.delete_for_course(course_id)
    log.info("youtube course %s deleted by=%s", course_id, admin["uid"])
    return {"ok": True, "id": course_id}


@admin_router.get("/{course_id}/enrollments", dependencies=[Depends(require_staff)])
async def admin_enrollments(course_id: str, status: Optional[str] = Query(None)):
    if status and status not in REQUEST_STATUSES:
        raise HTTPException(400, f"status must be one of: {', '.join(REQUEST_STATUSES)}")
    requests = enrollment_request_service.list_for_course(course_id, status=status)
    people = user_service.summaries(r["userId"] for r in requests)
    for r in requests:
        r["user"] = people.get(r["userId"])
    return {"items": requests}


@admin_router.patch("/{course_id}/enrollments/{request_id}")
async def admin_decide(
    course_id: str,
    request_id: str,
    body: EnrollmentDecision,
    admin: Dict[str, Any] = Depends(require_staff),
):
    course = youtube_course_service.get(course_id)
    request = enrollment_request_service.get(request_id)
    if not course or not request or request["courseId"] != course_id:
        raise HTTPException(404, "Enrollment request not found")
    if request["status"] != "pending":
        raise HTTPException(409, f"Request already {request['status']}")

    decided = enrollment_request_service.decide(request_id, body.status, admin["uid"], notes=body.notes)
    if body.status == "approved":
        if not learning_service.is_enrolled(request["userId"], course_id):
            learning_service.enroll(
                course,
                request["userId"],
                course_type=COURSE_TYPE,
                through="request_approval",
                granted_by=admin["uid"],
                payment_method=request.get("paymentMethod"),
            )
        message = f"Your enrollment in \"{course['title']}\" was approved"
    else:
        message = f"Your enrollment request for \"{course['title']}\" was rejected"
    notification_service.notify(
        request["userId"],
        "enrollment",
        message,
        from_user_id=admin["uid"],
        course_id=course_id,
        action_url=f"/youtube-courses/{course['slug']}",
    )
    return {"request": decided, "course": course_summary(course)}
