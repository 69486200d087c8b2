import logging

from fastapi import APIRouter
from google.api_core.exceptions import GoogleAPICallError

from sutra.services import firebase_client

router = APIRouter()
log = logging.getLogger("sutra.health")


@router.get("")
async def health():
    return {"ok": True}


@router.get("/firestore")
async def firestore_health():
    try:
        db = firebase_client.get_firestore_client()
        names = []
        for col in db.collections():
            names.append(col.id)
            if len(names) >= 10:
                break
        return {"ok": True, "collections": names}
    except GoogleAPICallError as e:
        log.warning("firestore health check failed: %s", e)
        return {"ok": False, "error": str(e)}
