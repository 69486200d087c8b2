from unittest.mock import patch

import pytest

pytestmark = [pytest.mark.asyncio, pytest.mark.api]


async def test_me_creates_profile_on_first_sight(client, auth, fake_db):
    assert (await client.get("/api/users/me")).status_code == 401

    auth.login("u1", email="Jane.Doe@Example.com", name="Jane Doe")
    r = await client.get("/api/users/me")
    assert r.status_code == 200
    me = r.json()
    assert me["id"] == "u1"
    assert me["username"] == "jane.doe"
    assert (me["firstName"], me["lastName"]) == ("Jane", "Doe")
    assert me["role"] == "user"
    assert me["notificationPreferences"]["likes"] is True
    assert fake_db.doc("users", "u1")["followers"] == []


async def test_generated_usernames_are_unique(client, auth, seed_user):
    seed_user("other", username="jane")
    auth.login("u2", email="jane@example.com")
    me = (await client.post("/api/users/sync")).json()
    assert me["username"] == "jane2"


async def test_update_profile(client, auth, seed_user):
    seed_user("taken", username="popular")
    auth.login("u1")

    r = await client.patch("/api/users/me", json={"bio": "hi", "username": "New_Name", "role": "admin"})
    assert r.status_code == 200
    assert r.json()["bio"] == "hi"
    assert r.json()["username"] == "new_name"
    assert r.json()["role"] == "user"

    assert (await client.patch("/api/users/me", json={"username": "popular"})).status_code == 409
    assert (await client.patch("/api/users/me", json={"username": "bad name!"})).status_code == 400

    r = await client.patch("/api/users/me", json={"notificationPreferences": {"likes": False, "bogus": True}})
    prefs = r.json()["notificationPreferences"]
    assert prefs["likes"] is False
    assert "bogus" not in prefs


async def test_public_profile_hides_private_fields(client, auth, seed_user):
    seed_user("ana", bio="hello")
    r = await client.get("/api/users/ana")
    assert r.status_code == 200
    assert "email" not in r.json()
    assert r.json()["isFollowing"] is False

    auth.login("ana")
    assert (await client.get("/api/users/ana")).json()["email"] == "ana@example.com"
    assert (await client.get("/api/users/nobody")).status_code == 404


async def test_follow_toggle(client, auth, seed_user, fake_db):
    seed_user("ana")
    seed_user("bob")
    auth.login("ana")

    assert (await client.post("/api/users/ana/follow")).status_code == 400
    assert (await client.post("/api/users/ghost/follow")).status_code == 404

    r = await client.post("/api/users/bob/follow")
    assert r.json() == {"following": True, "followersCount": 1}
    assert (await client.get("/api/users/bob/follow-status")).json() == {"following": True}
    assert (await client.get("/api/users/bob")).json()["isFollowing"] is True
    assert [u["id"] for u in (await client.get("/api/users/bob/followers")).json()["items"]] == ["ana"]
    assert [u["id"] for u in (await client.get("/api/users/ana/following")).json()["items"]] == ["bob"]

    notes = list(fake_db.data["notifications"].values())
    assert [(n["userId"], n["type"], n["fromUserId"]) for n in notes] == [("bob", "follow", "ana")]

    r = await client.post("/api/users/bob/follow")
    assert r.json() == {"following": False, "followersCount": 0}
    assert fake_db.doc("users", "ana")["followingCount"] == 0
    assert fake_db.doc("users", "bob")["followers"] == []


async def test_follow_notification_respects_preferences(client, auth, seed_user, fake_db):
    seed_user("ana")
    seed_user("bob", notificationPreferences={"follows": False})
    auth.login("ana")
    await client.post("/api/users/bob/follow")
    assert not fake_db.data.get("notifications")


async def test_search_users(client, seed_user):
    seed_user("ana", firstName="Ana", lastName="Lima")
    seed_user("bob", firstName="Bob", lastName="Stone")
    items = (await client.get("/api/users/search", params={"q": "lim"})).json()["items"]
    assert [u["id"] for u in items] == ["ana"]
    assert "email" not in items[0]


async def test_user_progress_is_private(client, auth, seed_user, fake_db):
    seed_user("ana")
    seed_user("bob")
    seed_user("boss", role="admin")
    fake_db.seed("progress", "ana_c1", {"userId": "ana", "courseId": "c1", "progress": 0.5})

    auth.login("bob")
    assert (await client.get("/api/users/ana/progress")).status_code == 403
    auth.login("ana")
    assert [p["courseId"] for p in (await client.get("/api/users/ana/progress")).json()["items"]] == ["c1"]
    auth.login("boss")
    assert (await client.get("/api/users/ana/progress")).status_code == 200


async def test_my_courses_lists_enrollments(client, auth, seed_user, seed_course):
    seed_course()
    seed_user("ana")
    auth.login("ana")
    await client.post("/api/courses/course1/enroll")
    await client.post("/api/courses/course1/progress", json={"lessonId": "l1", "completed": True})

    items = (await client.get("/api/users/me/courses")).json()["items"]
    assert len(items) == 1
    assert items[0]["course"]["slug"] == "python-basics"
    assert "modules" not in items[0]["course"]
    assert items[0]["progress"] == 0.5


async def test_admin_check(client, auth, seed_user):
    seed_user("boss", role="admin")
    auth.login("boss")
    assert (await client.get("/api/admin/check")).json() == {"isAdmin": True, "role": "admin"}
    auth.login("newbie")
    assert (await client.get("/api/admin/check")).json() == {"isAdmin": False, "role": "user"}


async def test_admin_role_management(client, auth, seed_user, fake_db):
    seed_user("boss", role="admin")
    seed_user("ana")
    auth.login("ana")
    assert (await client.patch("/api/admin/users/ana/role", json={"role": "admin"})).status_code == 403

    auth.login("boss")
    r = await client.patch("/api/admin/users/ana/role", json={"role": " Instructor "})
    assert r.json()["role"] == "instructor"
    assert fake_db.doc("users", "ana")["role"] == "instructor"

    assert (await client.patch("/api/admin/users/ana/role", json={"role": "wizard"})).status_code == 400
    assert (await client.patch("/api/admin/users/boss/role", json={"role": "user"})).status_code == 400
    assert (await client.patch("/api/admin/users/ghost/role", json={"role": "user"})).status_code == 404

    body = (await client.get("/api/admin/users", params={"limit": 1})).json()
    assert [u["id"] for u in body["items"]] == ["ana"]
    assert body["next_cursor"] == "ana@example.com"


async def test_admin_delete_user(client, auth, seed_user, fake_db):
    seed_user("boss", role="admin")
    seed_user("ana")
    auth.login("boss")
    assert (await client.delete("/api/admin/users/boss")).status_code == 400

    with patch("sutra.routers.admin_users.admin_auth.delete_user") as delete_user, patch(
        "sutra.routers.admin_users.get_firebase_app"
    ):
        r = await client.delete("/api/admin/users/ana")
    assert r.json() == {"ok": True, "id": "ana"}
    delete_user.assert_called_once()
    assert fake_db.doc("users", "ana") is None


async def test_health(client):
    assert (await client.get("/health")).json() == {"ok": True}
    assert (await client.get("/health/firestore")).json() == {"ok": True, "collections": []}
