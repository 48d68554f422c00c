"""Readiness FastAPI application factory.

This module provides the create_app() factory for bootstrapping the API.
"""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from readiness.api.errors import (
    ReadinessHttpError,
    generic_exception_handler,
    http_exception_handler,
    readiness_http_error_handler,
    request_validation_error_handler,
    scoring_error_handler,
)
from readiness.api.middleware.request_id import RequestIdMiddleware
from readiness.api.routes.health import READINESS_VERSION
from readiness.api.routes.health import router as health_router
from readiness.api.routes.rescore import router as rescore_router
from readiness.api.routes.rulesets import router as rulesets_router
from readiness.api.routes.scoring import router as scoring_router
from readiness.errors import ScoringError
from readiness.observability.tracing import configure_tracing, instrument_fastapi
from readiness.rulesets.store import RuleSetStore
from readiness.services.rescore.manager import RescoreManager
from readiness.services.scoring import ScoringService


def create_app(
    scoring_service: ScoringService | None = None,
    rescore_manager: RescoreManager | None = None,
    rule_set_store: RuleSetStore | None = None,
) -> FastAPI:
    """Create and configure the readiness FastAPI application.

    This factory:
    - Creates a FastAPI app with readiness metadata
    - Registers RequestIdMiddleware so every response carries X-Request-Id
    - Registers exception handlers producing the error envelope
    - Mounts the health router (no configuration required)
    - Mounts the /v1 routers (refuse to serve while configuration is missing)

    Args:
        scoring_service: Optional ScoringService for testing. If None, uses default.
        rescore_manager: Optional RescoreManager for testing. If None, uses default.
        rule_set_store: Optional RuleSetStore for testing. If None, uses default.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Investment Readiness API",
        description="Deterministic investment-readiness scoring with versioned rule sets",
        version=READINESS_VERSION,
    )

    app.state.scoring_service = scoring_service
    app.state.rescore_manager = rescore_manager
    app.state.rule_set_store = rule_set_store

    configure_tracing()

    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    app.add_exception_handler(ReadinessHttpError, readiness_http_error_handler)
    app.add_exception_handler(ScoringError, scoring_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(scoring_router)
    app.include_router(rescore_router)
    app.include_router(rulesets_router)

    return app
