import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from google.api_core.exceptions import FailedPrecondition, GoogleAPICallError

log = logging.getLogger("sutra.errors")


class EnrollmentRequired(HTTPException):
    def __init__(self, detail: str = "Enrollment required") -> None:
        super().__init__(status_code=403, detail=detail)


async def enrollment_required_handler(request: Request, exc: EnrollmentRequired):
    return JSONResponse({"detail": exc.detail, "requiresEnrollment": True}, status_code=exc.status_code)


async def failed_precondition_handler(request: Request, exc: FailedPrecondition):
    # Firestore answers FailedPrecondition when a composite index is missing
    log.error("firestore precondition failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {"detail": "Firestore index required for this query; create it from the link in the server log"},
        status_code=500,
    )


async def upstream_error_handler(request: Request, exc: GoogleAPICallError):
    log.exception("upstream call failed on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"detail": "Upstream service unavailable"}, status_code=503)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EnrollmentRequired, enrollment_required_handler)
    app.add_exception_handler(FailedPrecondition, failed_precondition_handler)
    app.add_exception_handler(GoogleAPICallError, upstream_error_handler)
