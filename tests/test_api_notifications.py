import pytest

from sutra.services.notifications import notification_service

pytestmark = [pytest.mark.asyncio, pytest.mark.api]


def _notify(n, to="ana", type_="like", sender="bob"):
    return [notification_service.notify(to, type_, f"event {i}", from_user_id=sender) for i in range(n)]


async def test_list_and_unread_count(client, auth, seed_user):
    seed_user("ana")
    seed_user("bob")
    ids = _notify(3)
    _notify(1, to="bob", type_="follow", sender="ana")

    assert (await client.get("/api/notifications")).status_code == 401
    auth.login("ana")
    items = (await client.get("/api/notifications")).json()["items"]
    assert [i["id"] for i in items] == list(reversed(ids))
    assert (await client.get("/api/notifications/count")).json() == {"unread": 3}

    r = await client.patch(f"/api/notifications/{ids[0]}", json={"read": True})
    assert r.json()["read"] is True
    assert (await client.get("/api/notifications/count")).json() == {"unread": 2}
    unread = (await client.get("/api/notifications", params={"unreadOnly": True})).json()["items"]
    assert len(unread) == 2

    assert (await client.post("/api/notifications/read-all")).json() == {"updated": 2}
    assert (await client.get("/api/notifications/count")).json() == {"unread": 0}


async def test_cannot_touch_other_users_notifications(client, auth, seed_user):
    seed_user("ana")
    seed_user("bob")
    (theirs,) = _notify(1, to="bob", type_="follow", sender="ana")
    assert theirs is not None

    auth.login("ana")
    assert (await client.patch(f"/api/notifications/{theirs}", json={"read": True})).status_code == 404
    assert (await client.delete(f"/api/notifications/{theirs}")).status_code == 404

    auth.login("bob")
    assert (await client.delete(f"/api/notifications/{theirs}")).json() == {"ok": True}
    assert (await client.get("/api/notifications")).json()["items"] == []


async def test_preferences_mute_notification_types(client, auth, seed_user, fake_db):
    seed_user("ana")
    seed_user("bob")
    auth.login("ana")

    prefs = (await client.get("/api/notifications/preferences")).json()
    assert prefs == {"follows": True, "likes": True, "comments": True, "courses": True, "achievements": True}

    prefs = (await client.patch("/api/notifications/preferences", json={"likes": False})).json()
    assert prefs["likes"] is False and prefs["comments"] is True

    assert _notify(1) == [None]
    assert _notify(1, type_="comment")[0] is not None
    assert notification_service.notify("ana", "like", "self", from_user_id="ana") is None
    assert notification_service.notify("ghost", "like", "nobody home") is None
    assert len(fake_db.data["notifications"]) == 1


async def test_analytics_summary(client, auth, seed_user, seed_course, fake_db):
    seed_user("boss", role="admin")
    seed_user("ana")
    seed_course("c1", slug="c1", totalStudents=3)
    seed_course("c2", slug="c2", published=False)
    fake_db.seed("enrollments", "c1_ana", {"userId": "ana", "courseId": "c1", "completed": True})
    fake_db.seed("posts", "p1", {"author": "ana", "likes": ["boss"], "comments": [{"id": "x"}], "isPublic": True})

    auth.login("ana")
    assert (await client.get("/api/admin/analytics")).status_code == 403

    auth.login("boss")
    kpis = (await client.get("/api/admin/analytics")).json()
    assert kpis["totalUsers"] == 2
    assert (kpis["totalCourses"], kpis["publishedCourses"], kpis["draftCourses"]) == (2, 1, 1)
    assert (kpis["totalEnrollments"], kpis["completedEnrollments"]) == (1, 1)
    assert (kpis["totalPosts"], kpis["totalComments"], kpis["totalLikes"]) == (1, 1, 1)
    assert kpis["topCourses"][0]["id"] == "c1"
