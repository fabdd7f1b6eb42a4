import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)


class ProctoringError(Exception):
    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(ProctoringError):
    status_code = 400


class NotFoundError(ProctoringError):
    status_code = 404


class ConflictError(ProctoringError):
    status_code = 409


class RangeNotSatisfiable(ProctoringError):
    status_code = 416

    def __init__(self, size: int) -> None:
        super().__init__(f"Range not satisfiable for resource of {size} bytes")
        self.size = size

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Range": f"bytes */{self.size}", "Accept-Ranges": "bytes"}


class StoreUnavailable(ProctoringError):
    status_code = 503


async def proctoring_error_handler(request: Request, exc: ProctoringError) -> Response:
    if isinstance(exc, StoreUnavailable):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail)

    if isinstance(exc, RangeNotSatisfiable):
        # No body; the client must retry with a corrected range
        return Response(status_code=exc.status_code, headers=exc.headers)
    headers: Optional[Dict[str, str]] = None
    if isinstance(exc, StoreUnavailable):
        headers = {"Retry-After": "1"}
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProctoringError, proctoring_error_handler)
