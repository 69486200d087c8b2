import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from sutra.deps.auth import require_admin, require_staff
from sutra.models.course import (
    ChapterIn,
    CourseIn,
    CoursePatch,
    LessonIn,
    LessonPatch,
    ModuleIn,
    PublishIn,
    ReorderIn,
    ResourceIn,
    ResourcePatch,
    SectionPatch,
    SubLessonIn,
)
from sutra.services import curriculum
from sutra.services.courses import SlugConflict, course_service
from sutra.services.curriculum import CurriculumError
from sutra.services.learning import learning_service

router = APIRouter()
log = logging.getLogger("sutra.admin.courses")


def _course_or_404(course_id: str) -> Dict[str, Any]:
    course = course_service.get(course_id)
    if not course:
        raise HTTPException(404, "Course not found")
    return course


def _mutate_tree(course_id: str, change: Callable[[Dict[str, Any]], Any]) -> Dict[str, Any]:
    course = _course_or_404(course_id)
    try:
        change(course)
    except CurriculumError as e:
        raise HTTPException(e.status_code, e.message)
    return course_service.save_tree(course)


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


def _lesson_patch(body: LessonPatch) -> Dict[str, Any]:
    patch = body.model_dump(exclude_unset=True)
    if body.videoSource is not None:
        patch["videoSource"] = body.videoSource.model_dump(exclude_none=True)
    return patch


@router.get("", dependencies=[Depends(require_staff)])
async def list_courses(
    q: Optional[str] = Query(None),
    published: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    return {"items": course_service.list(q=q, published=published, limit=limit), "next_cursor": None}


@router.post("", status_code=201)
async def create_course(body: CourseIn, user: Dict[str, Any] = Depends(require_staff)):
    return _save(lambda: course_service.create(body.model_dump(exclude_none=True), user["uid"]))


@router.get("/{course_id}", dependencies=[Depends(require_staff)])
async def get_course(course_id: str):
    return _course_or_404(course_id)


@router.put("/{course_id}", dependencies=[Depends(require_staff)])
async def replace_course(course_id: str, body: CourseIn):
    return _save(lambda: course_service.replace(course_id, body.model_dump(exclude_none=True)))


@router.patch("/{course_id}", dependencies=[Depends(require_staff)])
async def patch_course(course_id: str, body: CoursePatch):
    return _save(lambda: course_service.patch(course_id, body.model_dump(exclude_unset=True)))


@router.delete("/{course_id}")
async def delete_course(course_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    if not course_service.delete(course_id):
        raise HTTPException(404, "Course not found")
    removed = learning_service.delete_for_course(course_id)
    log.info("course %s deleted by=%s (cascade=%s)", course_id, admin["uid"], removed)
    return {"ok": True, "id": course_id}


@router.patch("/{course_id}/publish", dependencies=[Depends(require_admin)])
async def publish_course(course_id: str, body: PublishIn):
    course = course_service.set_flags(course_id, body.model_dump(exclude_none=True))
    if course is None:
        raise HTTPException(404, "Course not found")
    return course


# ---- curriculum tree: modules ----


@router.post("/{course_id}/modules", dependencies=[Depends(require_staff)])
async def add_module(course_id: str, body: ModuleIn):
    data = body.model_dump(exclude_none=True)
    return _mutate_tree(course_id, lambda c: curriculum.add_node(c, [], data))


@router.post("/{course_id}/modules/reorder", dependencies=[Depends(require_staff)])
async def reorder_modules(course_id: str, body: ReorderIn):
    return _mutate_tree(course_id, lambda c: curriculum.reorder_children(c, [], body.ids))


@router.patch("/{course_id}/modules/{module_id}", dependencies=[Depends(require_staff)])
async def update_module(course_id: str, module_id: str, body: SectionPatch):
    patch = body.model_dump(exclude_unset=True)
    return _mutate_tree(course_id, lambda c: curriculum.update_node(c, [module_id], patch))


@router.delete("/{course_id}/modules/{module_id}", dependencies=[Depends(require_staff)])
async def delete_module(course_id: str, module_id: str):
    return _mutate_tree(course_id, lambda c: curriculum.remove_node(c, [module_id]))


# ---- chapters ----


@router.post("/{course_id}/modules/{module_id}/chapters", dependencies=[Depends(require_staff)])
async def add_chapter(course_id: str, module_id: str, body: ChapterIn):
    data = body.model_dump(exclude_none=True)
    return _mutate_tree(course_id, lambda c: curriculum.add_node(c, [module_id], data))


@router.post("/{course_id}/modules/{module_id}/chapters/reorder", dependencies=[Depends(require_staff)])
async def reorder_chapters(course_id: str, module_id: str, body: ReorderIn):
    return _mutate_tree(course_id, lambda c: curriculum.reorder_children(c, [module_id], body.ids))


@router.patch("/{course_id}/modules/{module_id}/chapters/{chapter_id}", dependencies=[Depends(require_staff)])
async def update_chapter(course_id: str, module_id: str, chapter_id: str, body: SectionPatch):
    patch = body.model_dump(exclude_unset=True)
    return _mutate_tree(course_id, lambda c: curriculum.update_node(c, [module_id, chapter_id], patch))


@router.delete("/{course_id}/modules/{module_id}/chapters/{chapter_id}", dependencies=[Depends(require_staff)])
async def delete_chapter(course_id: str, module_id: str, chapter_id: str):
    return _mutate_tree(course_id, lambda c: curriculum.remove_node(c, [module_id, chapter_id]))


# ---- lessons ----

LESSONS = "/{course_id}/modules/{module_id}/chapters/{chapter_id}/lessons"


@router.post(LESSONS, dependencies=[Depends(require_staff)])
async def add_lesson(course_id: str, module_id: str, chapter_id: str, body: LessonIn):
    data = body.model_dump(exclude_none=True)
    return _mutate_tree(course_id, lambda c: curriculum.add_node(c, [module_id, chapter_id], data))


@router.post(LESSONS + "/reorder", dependencies=[Depends(require_staff)])
async def reorder_lessons(course_id: str, module_id: str, chapter_id: str, body: ReorderIn):
    return _mutate_tree(course_id, lambda c: curriculum.reorder_children(c, [module_id, chapter_id], body.ids))


@router.patch(LESSONS + "/{lesson_id}", dependencies=[Depends(require_staff)])
async def update_lesson(course_id: str, module_id: str, chapter_id: str, lesson_id: str, body: LessonPatch):
    patch = _lesson_patch(body)
    path = [module_id, chapter_id, lesson_id]
    return _mutate_tree(course_id, lambda c: curriculum.update_node(c, path, patch))


@router.delete(LESSONS + "/{lesson_id}", dependencies=[Depends(require_staff)])
async def delete_lesson(course_id: str, module_id: str, chapter_id: str, lesson_id: str):
    path = [module_id, chapter_id, lesson_id]
    return _mutate_tree(course_id, lambda c: curriculum.remove_node(c, path))


# ---- sub-lessons ----

SUBLESSONS = LESSONS + "/{lesson_id}/sublessons"


@router.post(SUBLESSONS, dependencies=[Depends(require_staff)])
async def add_sublesson(course_id: str, module_id: str, chapter_id: str, lesson_id: str, body: SubLessonIn):
    data = body.model_dump(exclude_none=True)
    path = [module_id, chapter_id, lesson_id]
    return _mutate_tree(course_id, lambda c: curriculum.add_node(c, path, data))


@router.post(SUBLESSONS + "/reorder", dependencies=[Depends(require_staff)])
async def reorder_sublessons(course_id: str, module_id: str, chapter_id: str, lesson_id: str, body: ReorderIn):
    path = [module_id, chapter_id, lesson_id]
    return _mutate_tree(course_id, lambda c: curriculum.reorder_children(c, path, body.ids))


@router.patch(SUBLESSONS + "/{sub_id}", dependencies=[Depends(require_staff)])
async def update_sublesson(
    course_id: str, module_id: str, chapter_id: str, lesson_id: str, sub_id: str, body: LessonPatch
):
    patch = _lesson_patch(body)
    path = [module_id, chapter_id, lesson_id, sub_id]
    return _mutate_tree(course_id, lambda c: curriculum.update_node(c, path, patch))


@router.delete(SUBLESSONS + "/{sub_id}", dependencies=[Depends(require_staff)])
async def delete_sublesson(course_id: str, module_id: str, chapter_id: str, lesson_id: str, sub_id: str):
    path = [module_id, chapter_id, lesson_id, sub_id]
    return _mutate_tree(course_id, lambda c: curriculum.remove_node(c, path))


# ---- resources ----

RESOURCES = LESSONS + "/{lesson_id}/resources"


@router.post(RESOURCES, dependencies=[Depends(require_staff)])
async def add_resource(course_id: str, module_id: str, chapter_id: str, lesson_id: str, body: ResourceIn):
    data = body.model_dump(exclude_none=True)
    path: List[str] = [module_id, chapter_id, lesson_id]
    return _mutate_tree(course_id, lambda c: curriculum.add_resource(c, path, data))


@router.patch(RESOURCES + "/{resource_id}", dependencies=[Depends(require_staff)])
async def update_resource(
    course_id: str, module_id: str, chapter_id: str, lesson_id: str, resource_id: str, body: ResourcePatch
):
    patch = body.model_dump(exclude_unset=True)
    path = [module_id, chapter_id, lesson_id]
    return _mutate_tree(course_id, lambda c: curriculum.update_resource(c, path, resource_id, patch))


@router.delete(RESOURCES + "/{resource_id}", dependencies=[Depends(require_staff)])
async def delete_resource(course_id: str, module_id: str, chapter_id: str, lesson_id: str, resource_id: str):
    path = [module_id, chapter_id, lesson_id]
    return _mutate_tree(course_id, lambda c: curriculum.remove_resource(c, path, resource_id))
