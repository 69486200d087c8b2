"""
Presigned and resumable uploads to the Firebase Storage bucket.

Clients never stream file bytes through the API: they ask for a v4 signed PUT
URL (small files) or a resumable session URL (large videos) and talk to Cloud
Storage directly. The API only mints URLs and reads the object metadata back.
"""
from __future__ import annotations

import logging
import math
import re
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlsplit

import requests
from google.api_core.exceptions import NotFound

from sutra.core.config import settings
from sutra.services import firebase_client

log = logging.getLogger("sutra.storage")

COURSE_FOLDERS = ("thumbnails", "previewVideos", "lessonVideos", "moduleThumbnails")
RESUMABLE_SESSION_DAYS = 7
MB = 1024 * 1024
SESSION_HOSTS = ("storage.googleapis.com", "www.googleapis.com")

_EXT = re.compile(r"^[a-z0-9]{1,10}$")


class UploadError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def check_session_url(upload_id: str) -> str:
    parts = urlsplit(upload_id or "")
    if parts.scheme != "https" or parts.hostname not in SESSION_HOSTS or not parse_qs(parts.query).get("upload_id"):
        raise UploadError("Invalid upload session", 400)
    return upload_id


def build_object_key(folder: str, file_name: str, root: str = "courses", now_ms: Optional[int] = None) -> str:
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    if not _EXT.match(ext):
        ext = "bin"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{root}/{folder}/{stamp}-{secrets.token_hex(4)}.{ext}"


def signed_url_ttl(size_bytes: int) -> int:
    megabytes = math.ceil(max(size_bytes, 0) / MB)
    ttl = settings.UPLOAD_URL_BASE_SECONDS + settings.UPLOAD_URL_SECONDS_PER_MB * megabytes
    return int(min(ttl, settings.UPLOAD_URL_MAX_SECONDS))


def validate_upload(content_type: str, size: int, limit: int) -> str:
    """Return the media kind (``image`` or ``video``) or raise UploadError."""
    kind = (content_type or "").split("/", 1)[0].lower()
    if kind not in ("image", "video"):
        raise UploadError("Only image and video files are allowed")
    if size <= 0:
        raise UploadError("File is empty")
    if size > limit:
        raise UploadError(f"File too large (max {limit // MB} MB)")
    return kind


def media_kind(content_type: Optional[str]) -> str:
    return "video" if (content_type or "").lower().startswith("video/") else "image"


class StorageService:
    @property
    def bucket(self):
        return firebase_client.get_storage_bucket()

    def public_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket.name}/{key}"

    def presign_upload(
        self,
        file_name: str,
        file_type: str,
        file_size: int,
        folder: str,
        root: str = "courses",
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        validate_upload(file_type, file_size, limit or settings.UPLOAD_MAX_BYTES)
        key = build_object_key(folder, file_name, root=root)
        ttl = signed_url_ttl(file_size)
        url = self.bucket.blob(key).generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=ttl),
            method="PUT",
            content_type=file_type,
        )
        log.info("presigned PUT key=%s size=%s ttl=%ss", key, file_size, ttl)
        return {
            "uploadUrl": url,
            "method": "PUT",
            "headers": {"Content-Type": file_type},
            "fileKey": key,
            "fileUrl": self.public_url(key),
            "expiresIn": ttl,
        }

    def signed_download(self, key: str) -> Dict[str, Any]:
        ttl = settings.DOWNLOAD_URL_SECONDS
        url = self.bucket.blob(key).generate_signed_url(
            version="v4", expiration=timedelta(seconds=ttl), method="GET"
        )
        return {"url": url, "expiresIn": ttl}

    def initiate_resumable(self, file_name: str, file_type: str, file_size: int, folder: str) -> Dict[str, Any]:
        validate_upload(file_type, file_size, settings.UPLOAD_MAX_BYTES)
        key = build_object_key(folder, file_name)
        session_url = self.bucket.blob(key).create_resumable_upload_session(content_type=file_type, size=file_size)
        expires_at = datetime.now(timezone.utc) + timedelta(days=RESUMABLE_SESSION_DAYS)
        log.info("resumable session key=%s size=%s", key, file_size)
        return {
            "uploadId": session_url,
            "fileKey": key,
            "fileUrl": self.public_url(key),
            "expiresAt": expires_at.isoformat(),
        }

    def upload_status(self, upload_id: str) -> Dict[str, Any]:
        check_session_url(upload_id)
        try:
            resp = requests.put(upload_id, headers={"Content-Range": "bytes */*"}, timeout=30)
        except requests.RequestException as e:
            log.warning("resumable status failed: %s", e)
            raise UploadError("Storage service unavailable", 502)

        if resp.status_code == 308:
            # Range: bytes=0-<last byte received>; absent when nothing arrived yet
            received = 0
            match = re.match(r"bytes=0-(\d+)", resp.headers.get("Range", ""))
            if match:
                received = int(match.group(1)) + 1
            return {"bytesReceived": received, "complete": False}
        if resp.status_code in (200, 201):
            size = 0
            try:
                size = int(resp.json().get("size", 0))
            except ValueError:
                size = 0
            return {"bytesReceived": size, "complete": True}
        if resp.status_code in (404, 410):
            raise UploadError("Upload session expired or cancelled", 410)
        log.warning("resumable status unexpected code=%s body=%s", resp.status_code, resp.text[:200])
        raise UploadError("Storage service rejected the request", 502)

    def abort_resumable(self, upload_id: str) -> None:
        check_session_url(upload_id)
        try:
            resp = requests.delete(upload_id, timeout=30)
        except requests.RequestException as e:
            log.warning("resumable cancel failed: %s", e)
            raise UploadError("Storage service unavailable", 502)
        # Cloud Storage answers 499 for a successful cancel
        if resp.status_code not in (204, 404, 410, 499):
            log.warning("resumable cancel unexpected code=%s", resp.status_code)
            raise UploadError("Storage service rejected the request", 502)

    def describe(self, key: str, original_name: Optional[str] = None) -> Dict[str, Any]:
        blob = self.bucket.get_blob(key)
        if blob is None:
            raise UploadError("Uploaded object not found", 404)
        return {
            "key": key,
            "url": self.public_url(key),
            "size": int(blob.size or 0),
            "type": media_kind(blob.content_type),
            "fileName": key.rsplit("/", 1)[-1],
            "originalFileName": original_name,
        }

    def delete_object(self, key: str) -> bool:
        try:
            self.bucket.blob(key).delete()
        except NotFound:
            log.info("object already gone key=%s", key)
            return False
        log.info("deleted object key=%s", key)
        return True


storage_service = StorageService()
