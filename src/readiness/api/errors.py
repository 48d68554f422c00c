"""Readiness API error handling.

Provides ReadinessHttpError and FastAPI exception handlers that render every
failure as the JSON error envelope with request_id tracing.

Global exception handlers:
- ReadinessHttpError: route-level errors with an explicit code and status
- ScoringError: engine, rule-set and persistence errors mapped by type
- HTTPException: FastAPI/Starlette HTTP exceptions
- RequestValidationError: Pydantic validation errors on request models
- Exception: catch-all (fail closed, no stack traces)
"""

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from readiness.api.error_model import framework_error_code, make_error_response
from readiness.errors import (
    ActiveVersionConflictError,
    ConfigurationError,
    InvalidRuleSetVersionError,
    PersistenceError,
    RuleSetNotFoundError,
    RuleSetVersionExistsError,
    ScoreIntegrityError,
    ScoringError,
    StaleScoreError,
    ValidationError,
)
from readiness.persistence.repositories.assessments import AssessmentExistsError

logger = logging.getLogger(__name__)


class ReadinessHttpError(Exception):
    """Application-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 404, 500).
        code: Machine-readable error code (e.g., "ASSESSMENT_NOT_FOUND").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def scoring_error_envelope(exc: ScoringError) -> tuple[int, str, str, dict[str, Any] | None]:
    """Map a ScoringError to (status, code, message, details).

    Order matters: subclasses are checked before their bases.
    """
    if isinstance(exc, ValidationError):
        return 422, "ANSWERS_INVALID", "Assessment answers are invalid", {"errors": exc.errors}
    if isinstance(exc, RuleSetNotFoundError):
        return 404, "RULESET_NOT_FOUND", str(exc), {"version": exc.version}
    if isinstance(exc, InvalidRuleSetVersionError):
        return 400, "RULESET_VERSION_INVALID", str(exc), {"version": exc.version}
    if isinstance(exc, ConfigurationError):
        if exc.missing:
            return (
                500,
                "CONFIGURATION_MISSING",
                "Required configuration is missing",
                {"missing": exc.missing},
            )
        return 500, "RULESET_MISCONFIGURED", str(exc), None
    if isinstance(exc, RuleSetVersionExistsError):
        return 409, "RULESET_VERSION_EXISTS", str(exc), {"version": exc.version}
    if isinstance(exc, ActiveVersionConflictError):
        return (
            409,
            "ACTIVE_VERSION_CONFLICT",
            str(exc),
            {"expected": exc.expected, "actual": exc.actual},
        )
    if isinstance(exc, StaleScoreError):
        return 409, "SCORE_CONFLICT", str(exc), {"assessmentId": exc.assessment_id}
    if isinstance(exc, AssessmentExistsError):
        return 409, "ASSESSMENT_EXISTS", str(exc), {"assessmentId": exc.assessment_id}
    if isinstance(exc, PersistenceError):
        # Storage internals stay in the logs.
        return 503, "PERSISTENCE_UNAVAILABLE", "Storage is unavailable", {
            "operation": exc.operation
        }
    if isinstance(exc, ScoreIntegrityError):
        return 500, "SCORE_INTEGRITY_FAILED", "Stored score failed verification", {
            "scoreResultId": exc.score_result_id
        }
    return 500, "INTERNAL_ERROR", "An internal error occurred", None


async def readiness_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for ReadinessHttpError."""
    assert isinstance(exc, ReadinessHttpError)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def scoring_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for the ScoringError hierarchy."""
    assert isinstance(exc, ScoringError)

    status, code, message, details = scoring_error_envelope(exc)
    log = logger.error if status >= 500 else logger.info
    log(
        "Request failed with %s: %s",
        code,
        exc,
        extra={"request_id": getattr(request.state, "request_id", None)},
    )

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=status,
        details=details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Maps standard HTTP exceptions to the error envelope."""
    assert isinstance(exc, HTTPException)

    code = framework_error_code(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
        details=None,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Maps Pydantic request-model errors to the error envelope.

    Only field paths and messages are exposed, never raw input values.
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler for unhandled exceptions.

    Fails closed: returns 500 with a generic message and logs the traceback.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
        details=None,
    )
