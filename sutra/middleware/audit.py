import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import Request, Response
from google.api_core.exceptions import GoogleAPICallError

from sutra.core.config import settings
from sutra.services import firebase_client

log = logging.getLogger("sutra.audit")


async def audit_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    started = time.perf_counter()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "method": request.method,
            "path": request.url.path,
            "query": str(request.query_params) if request.query_params else "",
            "status": status,
            "duration_ms": int((time.perf_counter() - started) * 1000),
            # set by the auth dependency once the token is verified
            "uid": getattr(request.state, "uid", None),
            "ip": request.client.host if request.client else None,
            "ua": request.headers.get("user-agent"),
        }

        if settings.AUDIT_TO_FIRESTORE:
            try:
                firebase_client.get_firestore_client().collection("audit_logs").add(record)
            except GoogleAPICallError as e:
                log.error("audit write failed: %s | record=%s", e, record)
        else:
            log.info("%s %s -> %s (%sms) uid=%s", record["method"], record["path"], status, record["duration_ms"], record["uid"])
