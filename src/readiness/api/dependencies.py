"""Request-scoped access to services and the configuration gate.

Services injected into create_app() live on app.state; otherwise the
environment-driven defaults are used.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from readiness.api.errors import ReadinessHttpError
from readiness.config import required_configuration_missing
from readiness.rulesets.store import RuleSetStore, get_rule_set_store
from readiness.services import factory
from readiness.services.rescore.manager import RescoreManager
from readiness.services.scoring import ScoringService


def require_configuration() -> None:
    """Refuse to serve /v1 routes while required settings are absent.

    Raises:
        ReadinessHttpError: 500 CONFIGURATION_MISSING listing the missing names.
    """
    missing = required_configuration_missing()
    if missing:
        raise ReadinessHttpError(
            status_code=500,
            code="CONFIGURATION_MISSING",
            message="Required configuration is missing",
            details={"missing": missing},
        )


def _scoring_service(request: Request) -> ScoringService:
    service = getattr(request.app.state, "scoring_service", None)
    return service if service is not None else factory.get_scoring_service()


def _rescore_manager(request: Request) -> RescoreManager:
    manager = getattr(request.app.state, "rescore_manager", None)
    return manager if manager is not None else factory.get_rescore_manager()


def _rule_set_store(request: Request) -> RuleSetStore:
    store = getattr(request.app.state, "rule_set_store", None)
    return store if store is not None else get_rule_set_store()


ScoringServiceDep = Annotated[ScoringService, Depends(_scoring_service)]
RescoreManagerDep = Annotated[RescoreManager, Depends(_rescore_manager)]
RuleSetStoreDep = Annotated[RuleSetStore, Depends(_rule_set_store)]
