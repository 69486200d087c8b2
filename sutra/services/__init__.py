from .firebase_client import get_firebase_app, get_firestore_client, get_storage_bucket  # noqa: F401
