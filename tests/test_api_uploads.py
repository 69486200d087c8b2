from unittest.mock import MagicMock

import pytest

pytestmark = [pytest.mark.asyncio, pytest.mark.api]

MB = 1024 * 1024


async def test_admin_presign_checks_role_folder_and_type(client, auth, seed_user, bucket):
    seed_user("learner")
    seed_user("teach", role="instructor")
    body = {"fileName": "intro.mp4", "fileType": "video/mp4", "fileSize": 5 * MB}

    auth.login("learner")
    assert (await client.post("/api/admin/upload", json=body)).status_code == 403

    auth.login("teach")
    r = await client.post("/api/admin/upload", json=body)
    assert r.status_code == 200
    out = r.json()
    assert out["fileKey"].startswith("courses/lessonVideos/") and out["fileKey"].endswith(".mp4")
    assert out["uploadUrl"] == "https://signed.example/url"

    r = await client.post("/api/admin/upload", json={**body, "folder": "thumbnails", "fileName": "t.png", "fileType": "image/png"})
    assert r.json()["fileKey"].startswith("courses/thumbnails/")

    assert (await client.post("/api/admin/upload", json={**body, "folder": "../etc"})).status_code == 400
    assert (await client.post("/api/admin/upload", json={**body, "fileType": "application/zip"})).status_code == 400
    assert (await client.post("/api/admin/upload", json={**body, "fileSize": 0})).status_code == 422


async def test_user_presign_scoped_to_uid_and_size_limited(client, auth, bucket):
    body = {"fileName": "pic.jpg", "fileType": "image/jpeg", "fileSize": MB}
    assert (await client.post("/api/upload", json=body)).status_code == 401

    auth.login("ana")
    r = await client.post("/api/upload", json=body)
    assert r.json()["fileKey"].startswith("posts/ana/")

    r = await client.post("/api/upload", json={**body, "fileSize": 101 * MB})
    assert r.status_code == 400
    assert "too large" in r.json()["detail"]


async def test_resumable_initiate_and_complete(client, auth, seed_user, bucket, fake_db):
    seed_user("teach", role="instructor")
    auth.login("teach")
    bucket.blob.return_value.create_resumable_upload_session.return_value = "https://upload/session/1"

    r = await client.post(
        "/api/admin/upload/initiate", json={"fileName": "long.mov", "fileType": "video/quicktime", "fileSize": 900 * MB}
    )
    session = r.json()
    assert session["uploadId"] == "https://upload/session/1"
    assert session["fileKey"].endswith(".mov")

    blob = MagicMock()
    blob.size = 900 * MB
    blob.content_type = "video/quicktime"
    bucket.get_blob.return_value = blob
    r = await client.post(
        "/api/admin/upload/complete",
        json={"fileKey": session["fileKey"], "fileName": "long.mov", "title": "Lecture 1"},
    )
    body = r.json()
    assert body["asset"]["type"] == "video"
    assert body["asset"]["size"] == 900 * MB
    assert body["asset"]["originalFileName"] == "long.mov"
    assert body["libraryItem"]["title"] == "Lecture 1"
    assert len(fake_db.data["videoLibrary"]) == 1

    bucket.get_blob.return_value = None
    r = await client.post("/api/admin/upload/complete", json={"fileKey": "courses/lessonVideos/missing.mp4"})
    assert r.status_code == 404


async def test_signed_url_access_rules(client, auth, seed_user, seed_course, bucket):
    seed_course()
    seed_user("learner")
    seed_user("boss", role="admin")
    preview_key = "courses/lessonVideos/a.mp4"
    locked_key = "courses/lessonVideos/b.mp4"

    auth.login("learner")
    r = await client.get("/api/video/signed-url", params={"key": preview_key, "courseId": "course1"})
    assert r.status_code == 200
    assert r.json()["url"] == "https://signed.example/url"

    r = await client.get("/api/video/signed-url", params={"key": locked_key, "courseId": "course1"})
    assert r.status_code == 403
    assert r.json()["requiresEnrollment"] is True

    r = await client.get("/api/video/signed-url", params={"key": "courses/other.mp4", "courseId": "course1"})
    assert r.status_code == 404
    r = await client.get("/api/video/signed-url", params={"key": locked_key, "courseId": "nope"})
    assert r.status_code == 404

    await client.post("/api/courses/course1/enroll")
    r = await client.get("/api/video/signed-url", params={"key": locked_key, "courseId": "course1"})
    assert r.status_code == 200

    auth.login("boss")
    r = await client.get("/api/video/signed-url", params={"key": "anything.mp4", "courseId": "nope"})
    assert r.status_code == 200


async def test_signed_url_resolves_library_videos(client, auth, seed_user, seed_course, fake_db, bucket):
    fake_db.seed("videoLibrary", "vid1", {"title": "Shared", "video": {"key": "courses/lessonVideos/shared.mp4"}})
    course = seed_course()
    course["modules"][0]["chapters"][0]["lessons"][0]["videoSource"] = {"type": "library", "videoLibraryId": "vid1"}
    fake_db.seed("courses", "course1", course)
    seed_user("learner")
    auth.login("learner")

    r = await client.get("/api/video/signed-url", params={"key": "courses/lessonVideos/shared.mp4", "courseId": "course1"})
    assert r.status_code == 200


async def test_video_library_lifecycle(client, auth, seed_user, seed_course, fake_db, bucket):
    seed_user("teach", role="instructor")
    seed_user("boss", role="admin")
    auth.login("teach")

    blob = MagicMock()
    blob.size = 10
    blob.content_type = "video/mp4"
    bucket.get_blob.return_value = blob
    r = await client.post(
        "/api/admin/video-library",
        json={"title": "Intro clip", "key": "courses/lessonVideos/intro.mp4", "tags": [" Python "]},
    )
    assert r.status_code == 201
    video = r.json()
    assert video["tags"] == ["python"]

    items = (await client.get("/api/admin/video-library", params={"q": "python"})).json()["items"]
    assert [i["id"] for i in items] == [video["id"]]

    r = await client.patch(f"/api/admin/video-library/{video['id']}", json={"title": "Renamed"})
    assert r.json()["title"] == "Renamed"

    course = seed_course()
    course["modules"][0]["chapters"][0]["lessons"][1]["videoSource"] = {"type": "library", "videoLibraryId": video["id"]}
    fake_db.seed("courses", "course1", course)

    usage = (await client.get(f"/api/admin/video-library/{video['id']}/usage")).json()
    assert usage["usageCount"] == 1
    assert usage["items"][0]["lessonId"] == "l2"

    assert (await client.delete(f"/api/admin/video-library/{video['id']}")).status_code == 403
    auth.login("boss")
    assert (await client.delete(f"/api/admin/video-library/{video['id']}")).status_code == 409

    r = await client.delete(f"/api/admin/video-library/{video['id']}", params={"force": True, "deleteFile": True})
    assert r.json() == {"ok": True, "id": video["id"]}
    bucket.blob.return_value.delete.assert_called_once()
    assert (await client.delete(f"/api/admin/video-library/{video['id']}")).status_code == 404


async def test_session_endpoints_only_talk_to_cloud_storage(client, auth, seed_user, monkeypatch):
    from sutra.services import storage

    calls = []
    monkeypatch.setattr(storage.requests, "put", lambda *a, **kw: calls.append(a))
    monkeypatch.setattr(storage.requests, "delete", lambda *a, **kw: calls.append(a))
    seed_user("teach", role="instructor")
    auth.login("teach")

    body = {"uploadId": "http://169.254.169.254/computeMetadata/v1/"}
    r = await client.post("/api/admin/upload/parts", json=body)
    assert r.status_code == 400
    assert (await client.post("/api/admin/upload/abort", json=body)).status_code == 400
    assert calls == []
