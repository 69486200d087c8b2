"""Community posts with embedded comments, likes, saves and hashtags."""
from __future__ import annotations

import logging
import re
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, Increment, Query

from sutra.services import firebase_client
from sutra.services.firebase_client import ts_value
from sutra.services.users import COL as USERS_COL
from sutra.services.users import user_service

log = logging.getLogger("sutra.posts")

COL = "posts"
MAX_MEDIA = 10
MAX_HASHTAG_LEN = 30
MAX_COMMENT_LEN = 1000
MAX_REPLY_LEN = 500
MEDIA_TYPES = ("image", "video", "gif")
IN_QUERY_LIMIT = 30

_HASHTAG = re.compile(r"#(\w+)")
_MENTION = re.compile(r"@([A-Za-z0-9_.]+)")


def normalize_hashtags(tags: Iterable[str]) -> List[str]:
    out: List[str] = []
    for tag in tags or []:
        clean = (tag or "").strip().lstrip("#").lower()
        if not clean or len(clean) > MAX_HASHTAG_LEN or clean in out:
            continue
        out.append(clean)
    return out


def extract_hashtags(text: str) -> List[str]:
    return normalize_hashtags(_HASHTAG.findall(text or ""))


def extract_mentions(text: str) -> List[str]:
    out: List[str] = []
    for name in _MENTION.findall(text or ""):
        name = name.rstrip(".").lower()
        if name and name not in out:
            out.append(name)
    return out


def validate_media(items: List[Dict[str, Any]]) -> List[str]:
    errors: List[str] = []
    if not items:
        errors.append("At least one media item is required")
        return errors
    if len(items) > MAX_MEDIA:
        errors.append(f"At most {MAX_MEDIA} media items are allowed")
    for idx, item in enumerate(items):
        if not item.get("url"):
            errors.append(f"media[{idx}]: url is required")
        if item.get("type") not in MEDIA_TYPES:
            errors.append(f"media[{idx}]: type must be one of {', '.join(MEDIA_TYPES)}")
    if sum(1 for item in items if item.get("type") == "video") > 1:
        errors.append("Only one video per post is allowed")
    return errors


def engagement(post: Dict[str, Any]) -> float:
    return round(
        len(post.get("likes") or []) * 1
        + len(post.get("comments") or []) * 2
        + float(post.get("views") or 0) * 0.1
        + float(post.get("shares") or 0) * 3,
        2,
    )


def build_comment_tree(comments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Nest replies under their parent; replies whose parent is gone become roots."""
    ordered = sorted(comments or [], key=lambda c: ts_value(c.get("createdAt")))
    nodes = {c["id"]: {**c, "replies": []} for c in ordered}
    roots: List[Dict[str, Any]] = []
    for comment in ordered:
        node = nodes[comment["id"]]
        parent = comment.get("parentComment")
        if parent and parent in nodes and parent != comment["id"]:
            nodes[parent]["replies"].append(node)
        else:
            roots.append(node)
    return roots


def post_payload(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc_id,
        "author": data.get("author"),
        "media": data.get("media", []),
        "caption": data.get("caption", ""),
        "hashtags": data.get("hashtags", []),
        "mentions": data.get("mentions", []),
        "likes": data.get("likes", []),
        "saves": data.get("saves", []),
        "comments": data.get("comments", []),
        "shares": data.get("shares", 0),
        "views": data.get("views", 0),
        "engagement": data.get("engagement", 0),
        "category": data.get("category"),
        "location": data.get("location"),
        "isPublic": data.get("isPublic", True),
        "isFeatured": data.get("isFeatured", False),
        "isEdited": data.get("isEdited", False),
        "createdAt": data.get("createdAt"),
        "updatedAt": data.get("updatedAt"),
    }


class CommentError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PostService:
    @property
    def db(self):
        return firebase_client.get_firestore_client()

    def _col(self):
        return self.db.collection(COL)

    def _ref(self, post_id: str):
        return self._col().document(post_id)

    def get(self, post_id: str) -> Optional[Dict[str, Any]]:
        snap = self._ref(post_id).get()
        if not snap.exists:
            return None
        return post_payload(snap.id, snap.to_dict() or {})

    def _refresh_engagement(self, post_id: str) -> Dict[str, Any]:
        ref = self._ref(post_id)
        post = post_payload(ref.id, ref.get().to_dict() or {})
        post["engagement"] = engagement(post)
        ref.update({"engagement": post["engagement"]})
        return post

    # presentation

    def decorate(
        self, posts: List[Dict[str, Any]], viewer: Optional[str] = None, with_comments: bool = False
    ) -> List[Dict[str, Any]]:
        uids = {p["author"] for p in posts}
        if with_comments:
            uids.update(c.get("user") for p in posts for c in p["comments"])
        people = user_service.summaries(uids)

        out = []
        for post in posts:
            item = {k: v for k, v in post.items() if k not in ("likes", "saves", "comments")}
            item.update(
                {
                    "author": people.get(post["author"]) or {"id": post["author"]},
                    "likesCount": len(post["likes"]),
                    "savesCount": len(post["saves"]),
                    "commentCount": len(post["comments"]),
                    "isLiked": bool(viewer) and viewer in post["likes"],
                    "isSaved": bool(viewer) and viewer in post["saves"],
                }
            )
            if with_comments:
                item["comments"] = self._comment_tree(post["comments"], people, viewer)
            out.append(item)
        return out

    def _comment_tree(self, comments, people, viewer):
        shaped = []
        for c in comments:
            shaped.append(
                {
                    "id": c["id"],
                    "user": people.get(c.get("user")) or {"id": c.get("user")},
                    "text": c.get("text", ""),
                    "likesCount": len(c.get("likes") or []),
                    "isLiked": bool(viewer) and viewer in (c.get("likes") or []),
                    "parentComment": c.get("parentComment"),
                    "isEdited": c.get("isEdited", False),
                    "createdAt": c.get("createdAt"),
                    "updatedAt": c.get("updatedAt"),
                }
            )
        return build_comment_tree(shaped)

    def comments(self, post_id: str, viewer: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
        post = self.get(post_id)
        if not post:
            return None
        people = user_service.summaries(c.get("user") for c in post["comments"])
        return self._comment_tree(post["comments"], people, viewer)

    # queries

    def _page(self, query, page: int, limit: int) -> Tuple[List[Dict[str, Any]], bool]:
        snaps = list(query.offset((page - 1) * limit).limit(limit + 1).stream())
        posts = [post_payload(s.id, s.to_dict() or {}) for s in snaps]
        return posts[:limit], len(posts) > limit

    def list_public(
        self, page: int = 1, limit: int = 20, hashtag: Optional[str] = None, author: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], bool]:
        query = self._col().where("isPublic", "==", True)
        if hashtag:
            query = query.where("hashtags", "array_contains", hashtag.lstrip("#").lower())
        if author:
            query = query.where("author", "==", author)
        query = query.order_by("createdAt", direction=Query.DESCENDING)
        return self._page(query, page, limit)

    def by_author(self, author: str, viewer: Optional[str] = None, page: int = 1, limit: int = 20):
        query = self._col().where("author", "==", author)
        if viewer != author:
            query = query.where("isPublic", "==", True)
        query = query.order_by("createdAt", direction=Query.DESCENDING)
        return self._page(query, page, limit)

    def feed(self, uid: str, page: int = 1, limit: int = 20) -> Tuple[List[Dict[str, Any]], bool]:
        me = user_service.get(uid) or {}
        following = list(me.get("following") or [])
        if not following:
            return self.list_public(page=page, limit=limit)

        authors = [uid] + [f for f in following if f != uid]
        wanted = page * limit + 1
        collected: List[Dict[str, Any]] = []
        for start in range(0, len(authors), IN_QUERY_LIMIT):
            chunk = authors[start : start + IN_QUERY_LIMIT]
            query = (
                self._col()
                .where("author", "in", chunk)
                .where("isPublic", "==", True)
                .order_by("createdAt", direction=Query.DESCENDING)
                .limit(wanted)
            )
            collected.extend(post_payload(s.id, s.to_dict() or {}) for s in query.stream())
        collected.sort(key=lambda p: ts_value(p.get("createdAt")), reverse=True)
        start = (page - 1) * limit
        return collected[start : start + limit], len(collected) > start + limit

    def explore(self, limit: int = 20, pool: int = 200) -> List[Dict[str, Any]]:
        query = (
            self._col()
            .where("isPublic", "==", True)
            .order_by("createdAt", direction=Query.DESCENDING)
            .limit(pool)
        )
        posts = [post_payload(s.id, s.to_dict() or {}) for s in query.stream()]
        posts.sort(key=engagement, reverse=True)
        return posts[:limit]

    def featured(self, limit: int = 20) -> List[Dict[str, Any]]:
        query = self._col().where("isPublic", "==", True).where("isFeatured", "==", True)
        posts = [post_payload(s.id, s.to_dict() or {}) for s in query.stream()]
        posts.sort(key=lambda p: ts_value(p.get("createdAt")), reverse=True)
        return posts[:limit]

    def saved_by(self, uid: str) -> List[Dict[str, Any]]:
        snaps = self._col().where("saves", "array_contains", uid).stream()
        posts = [post_payload(s.id, s.to_dict() or {}) for s in snaps]
        posts = [p for p in posts if p["isPublic"] or p["author"] == uid]
        posts.sort(key=lambda p: ts_value(p.get("createdAt")), reverse=True)
        return posts

    def search(self, q: str, limit: int = 10) -> List[Dict[str, Any]]:
        needle = q.strip().lower().lstrip("#")
        query = self._col().where("isPublic", "==", True).order_by("createdAt", direction=Query.DESCENDING)
        out: List[Dict[str, Any]] = []
        for snap in query.stream():
            post = post_payload(snap.id, snap.to_dict() or {})
            if needle in (post["caption"] or "").lower() or any(needle in tag for tag in post["hashtags"]):
                out.append(post)
                if len(out) >= limit:
                    break
        return out

    def trending_hashtags(self, days: int = 7, limit: int = 20) -> List[Dict[str, Any]]:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        query = self._col().where("isPublic", "==", True).where("createdAt", ">=", since)
        counts: Counter = Counter()
        for snap in query.stream():
            counts.update((snap.to_dict() or {}).get("hashtags") or [])
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [{"tag": tag, "count": count} for tag, count in ranked[:limit]]

    def admin_list(self, q: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        query = self._col().order_by("createdAt", direction=Query.DESCENDING)
        needle = (q or "").strip().lower()
        out: List[Dict[str, Any]] = []
        for snap in query.stream():
            post = post_payload(snap.id, snap.to_dict() or {})
            if needle and needle not in (post["caption"] or "").lower() and needle not in post["hashtags"]:
                continue
            out.append(post)
            if len(out) >= limit:
                break
        return out

    # mutations

    def create(self, uid: str, data: Dict[str, Any]) -> Dict[str, Any]:
        caption = data.get("caption") or ""
        doc = {
            "author": uid,
            "media": data.get("media") or [],
            "caption": caption,
            "hashtags": normalize_hashtags(list(data.get("hashtags") or []) + extract_hashtags(caption)),
            "mentions": extract_mentions(caption),
            "likes": [],
            "saves": [],
            "comments": [],
            "shares": 0,
            "views": 0,
            "engagement": 0,
            "category": data.get("category"),
            "location": data.get("location"),
            "isPublic": data.get("isPublic", True),
            "isFeatured": False,
            "isEdited": False,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        ref = self._col().document()
        ref.set(doc)
        self.db.collection(USERS_COL).document(uid).update({"postsCount": Increment(1)})
        log.info("post created id=%s by=%s media=%s", ref.id, uid, len(doc["media"]))
        return post_payload(ref.id, ref.get().to_dict() or {})

    def update(self, post_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        updates = dict(patch)
        if "caption" in updates:
            caption = updates["caption"] or ""
            updates["mentions"] = extract_mentions(caption)
            explicit = updates.get("hashtags")
            if explicit is None:
                explicit = (self.get(post_id) or {}).get("hashtags", [])
            updates["hashtags"] = normalize_hashtags(list(explicit) + extract_hashtags(caption))
        elif "hashtags" in updates:
            updates["hashtags"] = normalize_hashtags(updates["hashtags"] or [])
        updates.update({"isEdited": True, "updatedAt": SERVER_TIMESTAMP})
        self._ref(post_id).update(updates)
        return self.get(post_id) or {}

    def set_flags(self, post_id: str, flags: Dict[str, Any]) -> Dict[str, Any]:
        if flags:
            self._ref(post_id).update({**flags, "updatedAt": SERVER_TIMESTAMP})
        return self.get(post_id) or {}

    def delete(self, post: Dict[str, Any]) -> None:
        self._ref(post["id"]).delete()
        if user_service.get(post["author"]) is not None:
            self.db.collection(USERS_COL).document(post["author"]).update({"postsCount": Increment(-1)})
        log.info("post deleted id=%s author=%s", post["id"], post["author"])

    def record_view(self, post_id: str) -> Dict[str, Any]:
        self._ref(post_id).update({"views": Increment(1)})
        return self._refresh_engagement(post_id)

    def share(self, post_id: str) -> int:
        self._ref(post_id).update({"shares": Increment(1)})
        return int(self._refresh_engagement(post_id)["shares"])

    def _toggle_member(self, post_id: str, field: str, uid: str) -> Tuple[bool, int]:
        post = self.get(post_id) or {}
        present = uid in post.get(field, [])
        op = ArrayRemove([uid]) if present else ArrayUnion([uid])
        self._ref(post_id).update({field: op})
        refreshed = self._refresh_engagement(post_id)
        return not present, len(refreshed[field])

    def toggle_like(self, post_id: str, uid: str) -> Tuple[bool, int]:
        return self._toggle_member(post_id, "likes", uid)

    def toggle_save(self, post_id: str, uid: str) -> Tuple[bool, int]:
        return self._toggle_member(post_id, "saves", uid)

    # comments

    def _write_comments(self, post_id: str, comments: List[Dict[str, Any]]) -> None:
        self._ref(post_id).update({"comments": comments})
        self._refresh_engagement(post_id)

    def add_comment(
        self, post: Dict[str, Any], uid: str, text: str, parent_id: Optional[str] = None
    ) -> Dict[str, Any]:
        text = (text or "").strip()
        max_len = MAX_REPLY_LEN if parent_id else MAX_COMMENT_LEN
        if not text:
            raise CommentError("Comment text is required")
        if len(text) > max_len:
            raise CommentError(f"Comment must be at most {max_len} characters")
        comments = list(post["comments"])
        if parent_id and not any(c["id"] == parent_id for c in comments):
            raise CommentError("Comment not found", 404)

        now = datetime.now(timezone.utc)
        comment = {
            "id": uuid.uuid4().hex[:24],
            "user": uid,
            "text": text,
            "likes": [],
            "parentComment": parent_id,
            "isEdited": False,
            "createdAt": now,
            "updatedAt": now,
        }
        comments.append(comment)
        self._write_comments(post["id"], comments)
        return comment

    def _find_comment(self, post: Dict[str, Any], comment_id: str) -> Dict[str, Any]:
        for comment in post["comments"]:
            if comment.get("id") == comment_id:
                return comment
        raise CommentError("Comment not found", 404)

    def edit_comment(self, post: Dict[str, Any], comment_id: str, text: str) -> Dict[str, Any]:
        comment = self._find_comment(post, comment_id)
        text = (text or "").strip()
        max_len = MAX_REPLY_LEN if comment.get("parentComment") else MAX_COMMENT_LEN
        if not text or len(text) > max_len:
            raise CommentError(f"Comment must be 1-{max_len} characters")
        comment.update({"text": text, "isEdited": True, "updatedAt": datetime.now(timezone.utc)})
        self._write_comments(post["id"], post["comments"])
        return comment

    def toggle_comment_like(self, post: Dict[str, Any], comment_id: str, uid: str) -> Tuple[bool, int]:
        comment = self._find_comment(post, comment_id)
        likes = list(comment.get("likes") or [])
        liked = uid not in likes
        if liked:
            likes.append(uid)
        else:
            likes.remove(uid)
        comment["likes"] = likes
        self._write_comments(post["id"], post["comments"])
        return liked, len(likes)

    def delete_comment(self, post: Dict[str, Any], comment_id: str) -> int:
        self._find_comment(post, comment_id)
        doomed = {comment_id}
        changed = True
        while changed:
            changed = False
            for c in post["comments"]:
                if c.get("parentComment") in doomed and c["id"] not in doomed:
                    doomed.add(c["id"])
                    changed = True
        remaining = [c for c in post["comments"] if c["id"] not in doomed]
        self._write_comments(post["id"], remaining)
        return len(doomed)

    def comment_author(self, post: Dict[str, Any], comment_id: str) -> str:
        return self._find_comment(post, comment_id).get("user")


post_service = PostService()
