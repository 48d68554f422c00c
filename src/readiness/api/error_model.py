"""Error envelope returned by every failing readiness API response.

{"code": "ANSWERS_INVALID", "message": "...", "details": {...}, "request_id": "..."}

`details` carries structured context (field errors, missing settings,
the version that was not found) and never internals such as SQL or
stack traces.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from readiness.api.middleware.request_id import REQUEST_ID_HEADER

# Fallback codes for HTTP errors raised by the framework itself (404 on an
# unknown path, 405 on a wrong method). Domain errors carry their own code.
FRAMEWORK_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str


def resolve_request_id(request: Request) -> str:
    """Request id assigned by RequestIdMiddleware, else the inbound header, else a new one."""
    assigned = getattr(request.state, "request_id", None)
    if assigned is not None:
        return str(assigned)
    return request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())


def framework_error_code(status_code: int) -> str:
    return FRAMEWORK_ERROR_CODES.get(status_code, "ERROR")


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render an ErrorEnvelope, echoing the request id in the X-Request-Id header."""
    envelope = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        request_id=resolve_request_id(request),
    )
    return JSONResponse(
        status_code=http_status,
        content=envelope.model_dump(mode="json"),
        headers={REQUEST_ID_HEADER: envelope.request_id},
    )
