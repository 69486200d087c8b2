from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Increment

from sutra.services import firebase_client
from sutra.services.firebase_client import ts_value
from sutra.services.curriculum import normalize_tree, recompute_totals, slugify

log = logging.getLogger("sutra.courses")

SORTS = {
    "popular": ("totalStudents", True),
    "newest": ("createdAt", True),
    "rating": ("averageRating", True),
    "duration": ("totalDuration", True),
    "price-low": ("price", False),
    "price-high": ("price", True),
}


class SlugConflict(Exception):
    pass


def course_payload(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    ratings = data.get("ratings", [])
    return {
        "id": doc_id,
        "title": data.get("title"),
        "slug": data.get("slug"),
        "description": data.get("description", ""),
        "shortDescription": data.get("shortDescription", ""),
        "instructor": data.get("instructor"),
        "price": data.get("price", 0),
        "isFree": data.get("isFree", False),
        "level": data.get("level"),
        "category": data.get("category"),
        "tags": data.get("tags", []),
        "thumbnail": data.get("thumbnail"),
        "previewVideo": data.get("previewVideo"),
        "modules": data.get("modules", []),
        "requirements": data.get("requirements", []),
        "learningOutcomes": data.get("learningOutcomes", []),
        "ratings": ratings,
        "totalReviews": len(ratings),
        "totalStudents": data.get("totalStudents", 0),
        "averageRating": data.get("averageRating", 0),
        "totalDuration": data.get("totalDuration", 0),
        "totalLessons": data.get("totalLessons", 0),
        "totalSubLessons": data.get("totalSubLessons", 0),
        "totalChapters": data.get("totalChapters", 0),
        "isPublished": data.get("isPublished", False),
        "isFeatured": data.get("isFeatured", False),
        "manualEnrollments": data.get("manualEnrollments", 0),
        "createdAt": data.get("createdAt"),
        "updatedAt": data.get("updatedAt"),
    }


def course_summary(course: Dict[str, Any]) -> Dict[str, Any]:
    """Catalogue card: everything but the curriculum tree and ratings list."""
    return {k: v for k, v in course.items() if k not in ("modules", "ratings")}


def is_paid(course: Dict[str, Any]) -> bool:
    return not course.get("isFree") and float(course.get("price") or 0) > 0


class CourseService:
    """Firestore persistence for courses whose curriculum is stored inline."""

    collection_name = "courses"
    course_type = "course"

    @property
    def db(self):
        return firebase_client.get_firestore_client()

    def _col(self):
        return self.db.collection(self.collection_name)

    def payload(self, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return course_payload(doc_id, data)

    def get(self, course_id: str) -> Optional[Dict[str, Any]]:
        snap = self._col().document(course_id).get()
        if not snap.exists:
            return None
        return self.payload(snap.id, snap.to_dict() or {})

    def resolve(self, id_or_slug: str) -> Optional[Dict[str, Any]]:
        course = self.get(id_or_slug)
        if course:
            return course
        snaps = list(self._col().where("slug", "==", id_or_slug.lower()).limit(1).stream())
        if not snaps:
            return None
        return self.payload(snaps[0].id, snaps[0].to_dict() or {})

    def _slug_taken(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        for snap in self._col().where("slug", "==", slug).stream():
            if snap.id != exclude_id:
                return True
        return False

    def _prepare(self, data: Dict[str, Any], course_id: Optional[str] = None) -> Dict[str, Any]:
        """Normalize the tree, recompute totals and settle the slug of an editable payload."""
        doc = dict(data)
        if "modules" in doc:
            doc["modules"] = normalize_tree(doc.get("modules"))
            recompute_totals(doc)
        if "title" in doc or "slug" in doc:
            slug = slugify(doc.get("slug") or doc.get("title") or "")
            if not slug:
                raise ValueError("title must contain letters or digits")
            if self._slug_taken(slug, exclude_id=course_id):
                raise SlugConflict(f"slug '{slug}' is already used by another course")
            doc["slug"] = slug
        if "tags" in doc:
            doc["tags"] = [t.strip().lower() for t in doc.get("tags") or [] if t and t.strip()]
        return doc

    def list(
        self, q: Optional[str] = None, published: Optional[bool] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        ref = self._col()
        if published is not None:
            ref = ref.where("isPublished", "==", published)
        items: List[Dict[str, Any]] = []
        for snap in ref.limit(limit).stream():
            item = course_summary(self.payload(snap.id, snap.to_dict() or {}))
            if q and q.lower() not in (item.get("title") or "").lower():
                continue
            items.append(item)
        items.sort(key=lambda i: ts_value(i.get("updatedAt") or i.get("createdAt")), reverse=True)
        return items

    def list_published(self) -> List[Dict[str, Any]]:
        return [
            course_summary(self.payload(s.id, s.to_dict() or {}))
            for s in self._col().where("isPublished", "==", True).stream()
        ]

    def search(self, q: str, limit: int = 10) -> List[Dict[str, Any]]:
        needle = q.strip().lower()
        out = []
        for course in self.list_published():
            haystack = " ".join(str(course.get(f) or "") for f in ("title", "description", "category")).lower()
            if needle in haystack:
                out.append(course)
                if len(out) >= limit:
                    break
        return out

    def catalogue(
        self,
        search: str = "",
        category: str = "",
        level: str = "",
        price: str = "all",
        rating: float = 0,
        sort: str = "popular",
        page: int = 1,
        limit: int = 12,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any], Dict[str, Any]]:
        published = self.list_published()

        needle = search.strip().lower()
        items = []
        for course in published:
            if needle:
                haystack = " ".join(
                    str(course.get(f) or "") for f in ("title", "description", "shortDescription", "category")
                ).lower()
                if needle not in haystack:
                    continue
            if category and course.get("category") != category:
                continue
            if level and course.get("level") != level:
                continue
            if price == "free" and not course.get("isFree"):
                continue
            if price == "paid" and course.get("isFree"):
                continue
            if rating and float(course.get("averageRating") or 0) < rating:
                continue
            items.append(course)

        field, reverse = SORTS.get(sort, SORTS["popular"])
        if field == "createdAt":
            items.sort(key=lambda c: ts_value(c.get(field)), reverse=reverse)
        else:
            items.sort(key=lambda c: c.get(field) or 0, reverse=reverse)

        total = len(items)
        total_pages = (total + limit - 1) // limit if limit else 0
        start = (page - 1) * limit
        pagination = {
            "currentPage": page,
            "totalPages": total_pages,
            "total": total,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        }
        stats = {
            "totalCourses": len(published),
            "featuredCourses": sum(1 for c in published if c.get("isFeatured")),
            "freeCourses": sum(1 for c in published if c.get("isFree")),
            "totalEnrollments": sum(int(c.get("totalStudents") or 0) for c in published),
        }
        return items[start : start + limit], pagination, stats

    def categories(self) -> List[Dict[str, Any]]:
        counts: Dict[str, int] = {}
        for course in self.list_published():
            category = course.get("category")
            if category:
                counts[category] = counts.get(category, 0) + 1
        return [{"name": k, "count": v} for k, v in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]

    def create(self, data: Dict[str, Any], uid: str) -> Dict[str, Any]:
        doc = self._prepare(data)
        doc.setdefault("modules", [])
        recompute_totals(doc)
        doc.update(
            {
                "instructor": uid,
                "ratings": [],
                "totalStudents": 0,
                "averageRating": 0,
                "manualEnrollments": 0,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            }
        )
        ref = self._col().document()
        ref.set(doc)
        log.info("created %s id=%s slug=%s by=%s", self.course_type, ref.id, doc.get("slug"), uid)
        return self.get(ref.id) or {}

    def replace(self, course_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ref = self._col().document(course_id)
        if not ref.get().exists:
            return None
        doc = self._prepare(data, course_id=course_id)
        doc["updatedAt"] = SERVER_TIMESTAMP
        ref.update(doc)
        return self.get(course_id)

    def patch(self, course_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.replace(course_id, data)

    def save_tree(self, course: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a mutated curriculum (last write wins) and return the stored course."""
        totals = recompute_totals(course)
        self._col().document(course["id"]).update(
            {"modules": course.get("modules", []), **totals, "updatedAt": SERVER_TIMESTAMP}
        )
        return self.get(course["id"]) or course

    def set_flags(self, course_id: str, flags: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ref = self._col().document(course_id)
        if not ref.get().exists:
            return None
        if flags:
            ref.update({**flags, "updatedAt": SERVER_TIMESTAMP})
        return self.get(course_id)

    def bump(self, course_id: str, field: str, amount: int = 1) -> None:
        self._col().document(course_id).update({field: Increment(amount)})

    def save_ratings(self, course_id: str, ratings: List[Dict[str, Any]]) -> None:
        average = round(sum(r["rating"] for r in ratings) / len(ratings), 1) if ratings else 0
        self._col().document(course_id).update(
            {"ratings": ratings, "averageRating": average, "updatedAt": SERVER_TIMESTAMP}
        )

    def delete(self, course_id: str) -> bool:
        ref = self._col().document(course_id)
        if not ref.get().exists:
            return False
        ref.delete()
        log.info("deleted %s id=%s", self.course_type, course_id)
        return True

    def all_courses(self) -> List[Dict[str, Any]]:
        return [self.payload(s.id, s.to_dict() or {}) for s in self._col().stream()]


course_service = CourseService()
