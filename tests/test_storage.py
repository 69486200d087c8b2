import re
from unittest.mock import MagicMock

import pytest
import requests

from sutra.core.config import settings
from sutra.services import storage
from sutra.services.storage import UploadError, build_object_key, signed_url_ttl, storage_service, validate_upload

pytestmark = pytest.mark.unit

MB = 1024 * 1024
SESSION = "https://storage.googleapis.com/upload/storage/v1/b/test-bucket/o?uploadType=resumable&upload_id=ABC123"


def test_object_key_layout():
    key = build_object_key("lessonVideos", "Intro Lecture.MP4", now_ms=1700000000000)
    assert re.fullmatch(r"courses/lessonVideos/1700000000000-[0-9a-f]{8}\.mp4", key)

    post_key = build_object_key("user1", "photo", root="posts", now_ms=1)
    assert re.fullmatch(r"posts/user1/1-[0-9a-f]{8}\.bin", post_key)


def test_object_keys_are_unique():
    keys = {build_object_key("thumbnails", "a.png", now_ms=5) for _ in range(20)}
    assert len(keys) == 20


def test_signed_url_ttl_grows_with_size_and_is_capped():
    base = settings.UPLOAD_URL_BASE_SECONDS
    assert signed_url_ttl(0) == base
    assert signed_url_ttl(1) == base + settings.UPLOAD_URL_SECONDS_PER_MB
    assert signed_url_ttl(10 * MB) == base + 10 * settings.UPLOAD_URL_SECONDS_PER_MB
    assert signed_url_ttl(10 ** 15) == settings.UPLOAD_URL_MAX_SECONDS


def test_validate_upload():
    assert validate_upload("video/mp4", 10, 100) == "video"
    assert validate_upload("image/png", 100, 100) == "image"
    for content_type, size in (("application/pdf", 10), ("image/png", 0), ("video/mp4", 101)):
        with pytest.raises(UploadError) as exc:
            validate_upload(content_type, size, 100)
        assert exc.value.status_code == 400


def _response(status, headers=None, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = body or {}
    resp.text = ""
    return resp


def test_upload_status_reads_range_header(monkeypatch):
    monkeypatch.setattr(storage.requests, "put", lambda *a, **kw: _response(308, {"Range": "bytes=0-1048575"}))
    assert storage_service.upload_status(SESSION) == {"bytesReceived": MB, "complete": False}

    monkeypatch.setattr(storage.requests, "put", lambda *a, **kw: _response(308))
    assert storage_service.upload_status(SESSION) == {"bytesReceived": 0, "complete": False}

    monkeypatch.setattr(storage.requests, "put", lambda *a, **kw: _response(200, body={"size": "42"}))
    assert storage_service.upload_status(SESSION) == {"bytesReceived": 42, "complete": True}


def test_upload_status_maps_failures(monkeypatch):
    monkeypatch.setattr(storage.requests, "put", lambda *a, **kw: _response(410))
    with pytest.raises(UploadError) as exc:
        storage_service.upload_status(SESSION)
    assert exc.value.status_code == 410

    def boom(*a, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(storage.requests, "put", boom)
    with pytest.raises(UploadError) as exc:
        storage_service.upload_status(SESSION)
    assert exc.value.status_code == 502


def test_abort_accepts_cancel_codes(monkeypatch):
    for code in (204, 404, 499):
        monkeypatch.setattr(storage.requests, "delete", lambda *a, _c=code, **kw: _response(_c))
        storage_service.abort_resumable(SESSION)

    monkeypatch.setattr(storage.requests, "delete", lambda *a, **kw: _response(500))
    with pytest.raises(UploadError):
        storage_service.abort_resumable(SESSION)


def test_presign_upload(bucket):
    out = storage_service.presign_upload("clip.mp4", "video/mp4", 3 * MB, "lessonVideos")
    assert out["uploadUrl"] == "https://signed.example/url"
    assert out["method"] == "PUT"
    assert out["headers"] == {"Content-Type": "video/mp4"}
    assert out["fileKey"].startswith("courses/lessonVideos/")
    assert out["fileUrl"] == f"https://storage.googleapis.com/test-bucket/{out['fileKey']}"
    assert out["expiresIn"] == signed_url_ttl(3 * MB)
    kwargs = bucket.blob.return_value.generate_signed_url.call_args.kwargs
    assert kwargs["method"] == "PUT" and kwargs["content_type"] == "video/mp4"


def test_describe_missing_object(bucket):
    bucket.get_blob.return_value = None
    with pytest.raises(UploadError) as exc:
        storage_service.describe("courses/lessonVideos/x.mp4")
    assert exc.value.status_code == 404


@pytest.mark.parametrize(
    "url",
    [
        "http://169.254.169.254/computeMetadata/v1/",
        "http://storage.googleapis.com/upload/storage/v1/b/x/o?upload_id=1",
        "https://evil.example/upload?upload_id=1",
        "https://storage.googleapis.com.evil.example/o?upload_id=1",
        "https://storage.googleapis.com/upload/storage/v1/b/x/o?uploadType=resumable",
        "",
    ],
)
def test_foreign_session_urls_are_rejected_before_any_request(monkeypatch, url):
    calls = []
    monkeypatch.setattr(storage.requests, "put", lambda *a, **kw: calls.append(a))
    monkeypatch.setattr(storage.requests, "delete", lambda *a, **kw: calls.append(a))

    for call in (storage_service.upload_status, storage_service.abort_resumable):
        with pytest.raises(UploadError) as exc:
            call(url)
        assert exc.value.status_code == 400
    assert calls == []
