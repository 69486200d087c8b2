"""
Pytest configuration and shared fixtures for the Sutra API tests.

Firestore is replaced by an in-memory fake installed as the process client,
the storage bucket by a Mock, and identity by overriding ``get_optional_user``.
"""
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from firestore_fake import FakeFirestore
from sutra.deps.auth import get_optional_user
from sutra.main import app
from sutra.services import firebase_client


class AuthState:
    """Which user the next request is made as; ``None`` means anonymous."""

    def __init__(self):
        self.user: Optional[Dict[str, Any]] = None

    def login(self, uid: str, email: Optional[str] = None, name: Optional[str] = None):
        self.user = {"uid": uid, "email": email or f"{uid}@example.com", "name": name or uid.title()}
        return self.user

    def logout(self):
        self.user = None


@pytest.fixture(autouse=True)
def fake_db(monkeypatch):
    db = FakeFirestore()
    monkeypatch.setattr(firebase_client, "_firestore_client", db)
    return db


@pytest.fixture
def bucket(monkeypatch):
    mock_bucket = MagicMock()
    mock_bucket.name = "test-bucket"
    mock_bucket.blob.return_value.generate_signed_url.return_value = "https://signed.example/url"
    monkeypatch.setattr(firebase_client, "_bucket", mock_bucket)
    return mock_bucket


@pytest.fixture
def auth():
    state = AuthState()

    async def _override():
        return state.user

    app.dependency_overrides[get_optional_user] = _override
    yield state
    app.dependency_overrides.pop(get_optional_user, None)


@pytest.fixture
def seed_user(fake_db):
    """Create a user profile document directly in the fake store."""

    def _seed(uid: str, role: str = "user", **extra):
        doc = {
            "email": f"{uid}@example.com",
            "username": uid.lower(),
            "firstName": uid.title(),
            "lastName": "",
            "role": role,
            "followers": [],
            "following": [],
            "followersCount": 0,
            "followingCount": 0,
            "postsCount": 0,
            "notificationPreferences": {},
        }
        doc.update(extra)
        fake_db.seed("users", uid, doc)
        return doc

    return _seed


def lesson(lesson_id: str, title: str, video_key: Optional[str] = None, preview: bool = False, **extra):
    node = {
        "id": lesson_id,
        "title": title,
        "duration": 10,
        "isPreview": preview,
        "resources": [],
        "subLessons": [],
    }
    if video_key:
        node["videoSource"] = {
            "type": "uploaded",
            "video": {"key": video_key, "url": f"https://cdn.example/{video_key}", "size": 1, "type": "video"},
        }
    node.update(extra)
    return node


def course_doc(title: str = "Python Basics", slug: str = "python-basics", published: bool = True, **extra):
    """A small course: one module, one chapter, a preview lesson and a locked lesson."""
    doc = {
        "title": title,
        "slug": slug,
        "description": "Learn Python from scratch",
        "shortDescription": "Python intro",
        "price": 0,
        "isFree": True,
        "level": "beginner",
        "category": "programming",
        "tags": ["python"],
        "isPublished": published,
        "isFeatured": False,
        "ratings": [],
        "totalStudents": 0,
        "averageRating": 0,
        "modules": [
            {
                "id": "m1",
                "title": "Getting started",
                "order": 0,
                "chapters": [
                    {
                        "id": "c1",
                        "title": "Setup",
                        "order": 0,
                        "lessons": [
                            {**lesson("l1", "Install", video_key="courses/lessonVideos/a.mp4", preview=True), "order": 0},
                            {**lesson("l2", "Hello world", video_key="courses/lessonVideos/b.mp4"), "order": 1},
                        ],
                    }
                ],
            }
        ],
    }
    doc.update(extra)
    return doc


@pytest.fixture
def seed_course(fake_db):
    def _seed(course_id: str = "course1", collection: str = "courses", **kwargs):
        doc = course_doc(**kwargs)
        fake_db.seed(collection, course_id, doc)
        return doc

    return _seed


@pytest_asyncio.fixture
async def client(auth):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
