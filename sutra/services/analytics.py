from __future__ import annotations

from typing import Any, Dict

from google.cloud.firestore_v1 import Query

from sutra.services import firebase_client
from sutra.services.courses import course_service
from sutra.services.firebase_client import count_documents
from sutra.services.users import author_summary
from sutra.services.youtube import youtube_course_service


def summarize_kpis(top: int = 5) -> Dict[str, Any]:
    db = firebase_client.get_firestore_client()

    courses = course_service.all_courses()
    published = sum(1 for c in courses if c.get("isPublished"))

    comments = likes = posts = 0
    for snap in db.collection("posts").stream():
        data = snap.to_dict() or {}
        posts += 1
        comments += len(data.get("comments") or [])
        likes += len(data.get("likes") or [])

    ranked = sorted(courses, key=lambda c: int(c.get("totalStudents") or 0), reverse=True)[:top]

    return {
        "totalUsers": count_documents(db.collection("users")),
        "totalCourses": len(courses),
        "publishedCourses": published,
        "draftCourses": len(courses) - published,
        "totalYoutubeCourses": count_documents(db.collection(youtube_course_service.collection_name)),
        "totalEnrollments": count_documents(db.collection("enrollments")),
        "completedEnrollments": count_documents(db.collection("enrollments").where("completed", "==", True)),
        "totalPosts": posts,
        "totalComments": comments,
        "totalLikes": likes,
        "topCourses": [
            {
                "id": c["id"],
                "title": c.get("title"),
                "totalStudents": c.get("totalStudents", 0),
                "averageRating": c.get("averageRating", 0),
            }
            for c in ranked
        ],
    }


def platform_stats(recent: int = 5) -> Dict[str, Any]:
    """Public landing-page numbers."""
    db = firebase_client.get_firestore_client()
    users = db.collection("users")
    newest = users.order_by("createdAt", direction=Query.DESCENDING).limit(recent).stream()
    return {
        "totalUsers": count_documents(users),
        "totalCourses": count_documents(db.collection(course_service.collection_name)),
        "totalPosts": count_documents(db.collection("posts").where("isPublic", "==", True)),
        "recentUsers": [author_summary(s.id, s.to_dict()) for s in newest],
    }
