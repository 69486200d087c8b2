"""Profiles, roles and the follow graph stored in the ``users`` collection."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, Increment

from sutra.services import firebase_client

log = logging.getLogger("sutra.users")

COL = "users"
ROLES = ("user", "instructor", "admin")
DEFAULT_PREFERENCES = {
    "follows": True,
    "likes": True,
    "comments": True,
    "courses": True,
    "achievements": True,
}
EDITABLE_FIELDS = (
    "username",
    "firstName",
    "lastName",
    "avatar",
    "banner",
    "bio",
    "location",
    "website",
    "interests",
    "skills",
    "notificationPreferences",
)

_USERNAME_STRIP = re.compile(r"[^a-z0-9_.]")


def profile_payload(uid: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": uid,
        "email": data.get("email"),
        "username": data.get("username"),
        "firstName": data.get("firstName", ""),
        "lastName": data.get("lastName", ""),
        "avatar": data.get("avatar", ""),
        "banner": data.get("banner", ""),
        "bio": data.get("bio", ""),
        "location": data.get("location", ""),
        "website": data.get("website", ""),
        "role": data.get("role", "user"),
        "interests": data.get("interests", []),
        "skills": data.get("skills", []),
        "isVerified": data.get("isVerified", False),
        "followersCount": data.get("followersCount", len(data.get("followers") or [])),
        "followingCount": data.get("followingCount", len(data.get("following") or [])),
        "postsCount": data.get("postsCount", 0),
        "notificationPreferences": {**DEFAULT_PREFERENCES, **(data.get("notificationPreferences") or {})},
        "createdAt": data.get("createdAt"),
        "lastActiveAt": data.get("lastActiveAt"),
    }


def author_summary(uid: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    data = data or {}
    return {
        "id": uid,
        "username": data.get("username"),
        "firstName": data.get("firstName", ""),
        "lastName": data.get("lastName", ""),
        "avatar": data.get("avatar", ""),
        "isVerified": data.get("isVerified", False),
    }


def username_base(email: Optional[str], fallback: str) -> str:
    local = (email or "").split("@", 1)[0].lower()
    cleaned = _USERNAME_STRIP.sub("", local)
    return cleaned[:24] or f"user{fallback[:6].lower()}"


class UserService:
    @property
    def db(self):
        return firebase_client.get_firestore_client()

    def _doc(self, uid: str):
        return self.db.collection(COL).document(uid)

    def get(self, uid: str) -> Optional[Dict[str, Any]]:
        snap = self._doc(uid).get()
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def get_profile(self, uid: str) -> Optional[Dict[str, Any]]:
        data = self.get(uid)
        return profile_payload(uid, data) if data is not None else None

    def find_by_username(self, username: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        snaps = list(self.db.collection(COL).where("username", "==", username.lower()).limit(1).stream())
        if not snaps:
            return None
        return snaps[0].id, snaps[0].to_dict() or {}

    def resolve(self, id_or_username: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        data = self.get(id_or_username)
        if data is not None:
            return id_or_username, data
        return self.find_by_username(id_or_username)

    def _unique_username(self, base: str, uid: str) -> str:
        candidate = base
        suffix = 1
        while True:
            found = self.find_by_username(candidate)
            if not found or found[0] == uid:
                return candidate
            suffix += 1
            candidate = f"{base}{suffix}"

    def ensure_profile(self, claims: Dict[str, Any]) -> Dict[str, Any]:
        """Return the profile for a verified token, creating it on first sight."""
        uid = claims["uid"]
        ref = self._doc(uid)
        snap = ref.get()
        if snap.exists:
            ref.update({"lastActiveAt": SERVER_TIMESTAMP})
            return profile_payload(uid, ref.get().to_dict() or {})

        name = (claims.get("name") or "").strip()
        first, _, last = name.partition(" ")
        username = self._unique_username(username_base(claims.get("email"), uid), uid)
        doc = {
            "email": claims.get("email"),
            "username": username,
            "firstName": first,
            "lastName": last,
            "avatar": claims.get("picture") or "",
            "banner": "",
            "bio": "",
            "location": "",
            "website": "",
            "role": "user",
            "interests": [],
            "skills": [],
            "isVerified": bool(claims.get("email_verified", False)),
            "followers": [],
            "following": [],
            "followersCount": 0,
            "followingCount": 0,
            "postsCount": 0,
            "notificationPreferences": dict(DEFAULT_PREFERENCES),
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
            "lastActiveAt": SERVER_TIMESTAMP,
        }
        ref.set(doc)
        log.info("created profile uid=%s username=%s", uid, username)
        return profile_payload(uid, ref.get().to_dict() or {})

    def update_profile(self, uid: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {k: v for k, v in patch.items() if k in EDITABLE_FIELDS}
        if "username" in allowed:
            username = (allowed["username"] or "").strip().lower()
            if not username or _USERNAME_STRIP.search(username):
                raise ValueError("username may only contain a-z, 0-9, '_' and '.'")
            owner = self.find_by_username(username)
            if owner and owner[0] != uid:
                raise LookupError("username is already taken")
            allowed["username"] = username
        if "notificationPreferences" in allowed:
            prefs = allowed.pop("notificationPreferences") or {}
            for key, value in prefs.items():
                if key in DEFAULT_PREFERENCES:
                    allowed[f"notificationPreferences.{key}"] = bool(value)
        if allowed:
            allowed["updatedAt"] = SERVER_TIMESTAMP
            self._doc(uid).update(allowed)
        return self.get_profile(uid) or {}

    def get_role(self, uid: str) -> str:
        data = self.get(uid) or {}
        return (data.get("role") or "user").strip().lower()

    def set_role(self, uid: str, role: str) -> None:
        self._doc(uid).update({"role": role, "updatedAt": SERVER_TIMESTAMP})

    def search(self, q: str, limit: int = 20) -> List[Dict[str, Any]]:
        needle = q.strip().lower()
        out: List[Dict[str, Any]] = []
        for snap in self.db.collection(COL).stream():
            data = snap.to_dict() or {}
            haystack = " ".join(
                [data.get(f) or "" for f in ("username", "firstName", "lastName", "bio")]
            ).lower()
            if needle in haystack:
                out.append(author_summary(snap.id, data))
            if len(out) >= limit:
                break
        return out

    def summaries(self, uids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for uid in {u for u in uids if u}:
            out[uid] = author_summary(uid, self.get(uid))
        return out

    def is_following(self, uid: str, target_uid: str) -> bool:
        data = self.get(uid) or {}
        return target_uid in (data.get("following") or [])

    def toggle_follow(self, uid: str, target_uid: str) -> Tuple[bool, int]:
        following = self.is_following(uid, target_uid)
        me = self._doc(uid)
        them = self._doc(target_uid)
        batch = self.db.batch()
        if following:
            batch.update(me, {"following": ArrayRemove([target_uid]), "followingCount": Increment(-1)})
            batch.update(them, {"followers": ArrayRemove([uid]), "followersCount": Increment(-1)})
        else:
            batch.update(me, {"following": ArrayUnion([target_uid]), "followingCount": Increment(1)})
            batch.update(them, {"followers": ArrayUnion([uid]), "followersCount": Increment(1)})
        batch.commit()
        target = self.get(target_uid) or {}
        log.info("follow toggle uid=%s target=%s following=%s", uid, target_uid, not following)
        return not following, int(target.get("followersCount") or 0)

    def list_connections(self, uid: str, field: str) -> List[Dict[str, Any]]:
        data = self.get(uid) or {}
        ids = list(data.get(field) or [])
        summaries = self.summaries(ids)
        return [summaries[i] for i in ids if i in summaries]

    def list_all(
        self, q: Optional[str] = None, limit: int = 25, cursor: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        rows: List[Dict[str, Any]] = []
        for snap in self.db.collection(COL).stream():
            payload = profile_payload(snap.id, snap.to_dict() or {})
            if q and q.lower() not in (payload.get("email") or "").lower():
                continue
            rows.append(payload)

        rows.sort(key=lambda row: (row.get("email") or "").lower())

        if cursor:
            cursor_lower = cursor.lower()
            rows = [u for u in rows if (u.get("email") or "").lower() > cursor_lower]

        page = rows[: limit + 1]
        if len(page) > limit:
            page = page[:limit]
            return page, page[-1].get("email")
        return page, None

    def delete(self, uid: str) -> None:
        self._doc(uid).delete()


user_service = UserService()
