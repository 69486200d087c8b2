from datetime import datetime, timedelta, timezone

import pytest

from sutra.services.posts import (
    build_comment_tree,
    engagement,
    extract_hashtags,
    extract_mentions,
    normalize_hashtags,
    validate_media,
)

pytestmark = pytest.mark.unit

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def test_hashtags_are_lowercased_and_deduplicated():
    assert normalize_hashtags(["#Python", "python", " ML ", "", "x" * 31]) == ["python", "ml"]
    assert extract_hashtags("Loving #FastAPI and #python, #fastapi again") == ["fastapi", "python"]


def test_mentions_ignore_trailing_dots():
    assert extract_mentions("thanks @Ana. and @bob_99 and @ana") == ["ana", "bob_99"]
    assert extract_mentions("") == []


def test_validate_media():
    assert validate_media([]) == ["At least one media item is required"]
    assert validate_media([{"url": "https://x/a.png", "type": "image"}]) == []

    errors = validate_media(
        [
            {"url": "https://x/a.mp4", "type": "video"},
            {"url": "https://x/b.mp4", "type": "video"},
            {"type": "audio"},
        ]
    )
    assert "media[2]: url is required" in errors
    assert any(e.startswith("media[2]: type must be one of") for e in errors)
    assert "Only one video per post is allowed" in errors

    too_many = [{"url": f"https://x/{i}.png", "type": "image"} for i in range(11)]
    assert validate_media(too_many) == ["At most 10 media items are allowed"]


def test_engagement_score():
    post = {"likes": ["a", "b"], "comments": [{}], "views": 15, "shares": 1}
    assert engagement(post) == 2 + 2 + 1.5 + 3
    assert engagement({}) == 0


def test_comment_tree_nests_replies_and_promotes_orphans():
    comments = [
        {"id": "r1", "text": "reply", "parentComment": "c1", "createdAt": T0 + timedelta(minutes=2)},
        {"id": "c1", "text": "root", "parentComment": None, "createdAt": T0},
        {"id": "c2", "text": "second", "createdAt": T0 + timedelta(minutes=1)},
        {"id": "o1", "text": "orphan", "parentComment": "gone", "createdAt": T0 + timedelta(minutes=3)},
    ]
    tree = build_comment_tree(comments)
    assert [c["id"] for c in tree] == ["c1", "c2", "o1"]
    assert [r["id"] for r in tree[0]["replies"]] == ["r1"]
    assert tree[1]["replies"] == []
