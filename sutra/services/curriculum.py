"""
Module -> chapter -> lesson -> sub-lesson tree helpers.

A course keeps its whole curriculum inline as nested lists of dicts. Nodes are
addressed by an id path: ``[moduleId]``, ``[moduleId, chapterId]``,
``[moduleId, chapterId, lessonId]`` or ``[..., lessonId, subLessonId]``.
Resources hang off lessons and sub-lessons. Every function here works on plain
dicts and mutates them in place; persistence is the caller's job.
"""
from __future__ import annotations

import copy
import re
import uuid
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

LEVELS = ("modules", "chapters", "lessons", "subLessons")
NODE_NAMES = ("Module", "Chapter", "Lesson", "Sub-lesson")
LESSON_DEPTH = 2  # index into LEVELS where resources start to apply

Node = Dict[str, Any]


class CurriculumError(Exception):
    def __init__(self, message: str, status_code: int = 404) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def new_node_id() -> str:
    return uuid.uuid4().hex[:24]


def slugify(title: str) -> str:
    slug = (title or "").lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug).strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:100]


def _sorted(nodes: Optional[List[Node]]) -> List[Node]:
    return sorted(nodes or [], key=lambda n: n.get("order", 0))


def _normalize_resources(resources: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    out = []
    for res in resources or []:
        res = dict(res)
        if not res.get("id"):
            res["id"] = new_node_id()
        out.append(res)
    return out


def _normalize_level(nodes: Optional[List[Node]], depth: int) -> List[Node]:
    out: List[Node] = []
    for idx, node in enumerate(nodes or []):
        node = dict(node)
        if not node.get("id"):
            node["id"] = new_node_id()
        node["order"] = idx
        if depth + 1 < len(LEVELS):
            key = LEVELS[depth + 1]
            node[key] = _normalize_level(node.get(key), depth + 1)
        if depth >= LESSON_DEPTH:
            node["resources"] = _normalize_resources(node.get("resources"))
            node.setdefault("duration", 0)
            node.setdefault("isPreview", False)
        out.append(node)
    return out


def normalize_tree(modules: Optional[List[Node]]) -> List[Node]:
    """Give every node an id and make ``order`` match list position at every level."""
    return _normalize_level(modules, 0)


def recompute_totals(course: Dict[str, Any]) -> Dict[str, Any]:
    chapters = lessons = sub_lessons = 0
    duration = 0.0
    for module in course.get("modules") or []:
        for chapter in module.get("chapters") or []:
            chapters += 1
            for lesson in chapter.get("lessons") or []:
                lessons += 1
                duration += float(lesson.get("duration") or 0)
                for sub in lesson.get("subLessons") or []:
                    sub_lessons += 1
                    duration += float(sub.get("duration") or 0)

    totals = {
        "totalChapters": chapters,
        "totalLessons": lessons,
        "totalSubLessons": sub_lessons,
        "totalDuration": duration,
    }
    course.update(totals)
    return totals


def _is_content(node: Node) -> bool:
    return bool(node.get("videoSource") or node.get("content"))


def iter_lessons(course: Dict[str, Any]) -> Iterator[Tuple[List[str], Node, str]]:
    """Yield ``(path, node, kind)`` for every lesson and sub-lesson in curriculum order."""
    for module in _sorted(course.get("modules")):
        for chapter in _sorted(module.get("chapters")):
            for lesson in _sorted(chapter.get("lessons")):
                lesson_path = [module.get("id"), chapter.get("id"), lesson.get("id")]
                yield lesson_path, lesson, "lesson"
                for sub in _sorted(lesson.get("subLessons")):
                    yield lesson_path + [sub.get("id")], sub, "sublesson"


def iter_content_items(course: Dict[str, Any]) -> Iterator[Tuple[str, str]]:
    """Lessons and sub-lessons that progress counts: they carry a video or content."""
    for _, node, kind in iter_lessons(course):
        if _is_content(node):
            yield node["id"], kind


def count_content_items(course: Dict[str, Any]) -> int:
    return sum(1 for _ in iter_content_items(course))


def first_content_item(course: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    for item_id, kind in iter_content_items(course):
        return item_id, kind
    return None, None


def find_lesson(course: Dict[str, Any], lesson_id: str) -> Optional[Tuple[Node, str]]:
    for _, node, kind in iter_lessons(course):
        if node.get("id") == lesson_id:
            return node, kind
    return None


def _find(nodes: List[Node], node_id: str, depth: int) -> Node:
    for node in nodes:
        if node.get("id") == node_id:
            return node
    raise CurriculumError(f"{NODE_NAMES[depth]} not found")


def children(course: Dict[str, Any], parent_path: Sequence[str]) -> List[Node]:
    if len(parent_path) >= len(LEVELS):
        raise CurriculumError("Sub-lessons cannot have children", 400)
    nodes = course.setdefault("modules", [])
    for depth, node_id in enumerate(parent_path):
        node = _find(nodes, node_id, depth)
        nodes = node.setdefault(LEVELS[depth + 1], [])
    return nodes


def find_node(course: Dict[str, Any], path: Sequence[str]) -> Node:
    if not path:
        raise CurriculumError("Empty node path", 400)
    return _find(children(course, path[:-1]), path[-1], len(path) - 1)


def _renumber(nodes: List[Node]) -> None:
    for idx, node in enumerate(nodes):
        node["order"] = idx


def add_node(course: Dict[str, Any], parent_path: Sequence[str], data: Dict[str, Any]) -> Node:
    siblings = children(course, parent_path)
    depth = len(parent_path)
    node = _normalize_level([data], depth)[0]
    node["id"] = new_node_id()
    node["order"] = len(siblings)
    siblings.append(node)
    recompute_totals(course)
    return node


def update_node(course: Dict[str, Any], path: Sequence[str], patch: Dict[str, Any]) -> Node:
    node = find_node(course, path)
    protected = {"id", "order", "resources", *LEVELS}
    node.update({k: v for k, v in patch.items() if k not in protected})
    recompute_totals(course)
    return node


def remove_node(course: Dict[str, Any], path: Sequence[str]) -> Node:
    siblings = children(course, path[:-1])
    node = _find(siblings, path[-1], len(path) - 1)
    siblings.remove(node)
    _renumber(siblings)
    recompute_totals(course)
    return node


def reorder_children(course: Dict[str, Any], parent_path: Sequence[str], ids: Sequence[str]) -> List[Node]:
    siblings = children(course, parent_path)
    existing = [n.get("id") for n in siblings]
    if len(set(ids)) != len(ids) or set(ids) != set(existing):
        raise CurriculumError("ids must list every existing item exactly once", 400)
    by_id = {n.get("id"): n for n in siblings}
    siblings[:] = [by_id[i] for i in ids]
    _renumber(siblings)
    return siblings


def _lesson_for_resources(course: Dict[str, Any], lesson_path: Sequence[str]) -> Node:
    if len(lesson_path) <= LESSON_DEPTH:
        raise CurriculumError("Resources belong to lessons or sub-lessons", 400)
    return find_node(course, lesson_path)


def add_resource(course: Dict[str, Any], lesson_path: Sequence[str], data: Dict[str, Any]) -> Dict[str, Any]:
    lesson = _lesson_for_resources(course, lesson_path)
    resource = {**data, "id": new_node_id()}
    lesson.setdefault("resources", []).append(resource)
    return resource


def update_resource(
    course: Dict[str, Any], lesson_path: Sequence[str], resource_id: str, patch: Dict[str, Any]
) -> Dict[str, Any]:
    lesson = _lesson_for_resources(course, lesson_path)
    for resource in lesson.get("resources") or []:
        if resource.get("id") == resource_id:
            resource.update({k: v for k, v in patch.items() if k != "id"})
            return resource
    raise CurriculumError("Resource not found")


def remove_resource(course: Dict[str, Any], lesson_path: Sequence[str], resource_id: str) -> Dict[str, Any]:
    lesson = _lesson_for_resources(course, lesson_path)
    resources = lesson.get("resources") or []
    for resource in resources:
        if resource.get("id") == resource_id:
            resources.remove(resource)
            return resource
    raise CurriculumError("Resource not found")


def strip_locked_content(course: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of the course with video, content and resources removed from non-preview lessons."""
    out = copy.deepcopy(course)
    for _, node, _kind in iter_lessons(out):
        if node.get("isPreview"):
            continue
        node.pop("videoSource", None)
        node.pop("content", None)
        node["resources"] = []
        node["locked"] = True
    return out
