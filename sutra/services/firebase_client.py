"""Centralized Firebase initialization for auth, Firestore and Cloud Storage."""
from __future__ import annotations

import json
from functools import lru_cache
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage
from google.api_core.exceptions import GoogleAPICallError

from sutra.core.config import settings

_firestore_client = None
_bucket = None


@lru_cache(maxsize=1)
def _load_service_account_payload() -> Optional[Dict[str, Any]]:
    if settings.FIREBASE_CREDENTIALS_FILE:
        path = Path(settings.FIREBASE_CREDENTIALS_FILE)
        if path.exists():
            return json.loads(path.read_text())

    project_id = settings.FIREBASE_PROJECT_ID
    client_email = settings.FIREBASE_CLIENT_EMAIL
    private_key = (settings.FIREBASE_PRIVATE_KEY or "").replace("\\n", "\n")

    if not (project_id and client_email and private_key):
        # Application default credentials (Cloud Run, emulator, gcloud login)
        return None

    return {
        "type": "service_account",
        "project_id": project_id,
        "client_email": client_email,
        "private_key": private_key,
        "token_uri": "https://oauth2.googleapis.com/token",
    }


def get_firebase_app() -> firebase_admin.App:
    if firebase_admin._apps:
        return firebase_admin.get_app()

    options: Dict[str, Any] = {}
    if settings.FIREBASE_STORAGE_BUCKET:
        options["storageBucket"] = settings.FIREBASE_STORAGE_BUCKET
    if settings.FIREBASE_PROJECT_ID:
        options["projectId"] = settings.FIREBASE_PROJECT_ID

    payload = _load_service_account_payload()
    cred = credentials.Certificate(payload) if payload else credentials.ApplicationDefault()
    return firebase_admin.initialize_app(cred, options or None)


def get_firestore_client():
    global _firestore_client
    if _firestore_client is None:
        _firestore_client = firestore.client(get_firebase_app())
    return _firestore_client


def get_storage_bucket():
    global _bucket
    if _bucket is None:
        if not settings.FIREBASE_STORAGE_BUCKET:
            raise RuntimeError("FIREBASE_STORAGE_BUCKET is not configured")
        _bucket = storage.bucket(app=get_firebase_app())
    return _bucket


def count_documents(query) -> int:
    try:
        agg = query.count().get()
        # AggregationResult stores fields by index then field name
        return int(agg[0][0].value)
    except (GoogleAPICallError, AttributeError, IndexError, TypeError):
        # Fallback for the emulator or SDKs without aggregation queries
        return sum(1 for _ in query.stream())


def ts_value(value: Any) -> float:
    """Sort key for Firestore timestamps; missing or pending values sort first."""
    if isinstance(value, datetime):
        return value.timestamp()
    return 0.0
