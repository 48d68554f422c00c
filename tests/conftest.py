"""Pytest configuration and fixtures for readiness tests.

Every test runs against in-memory stores with a clean environment.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from readiness.audit.trail import AUDIT_LOG_PATH_ENV, InMemoryAuditTrail, reset_default_trail
from readiness.config import ENV_APP_ENV, RescoreConfig
from readiness.persistence.db import (
    READINESS_DATABASE_ADMIN_URL_ENV,
    READINESS_DATABASE_URL_ENV,
    reset_engines,
)
from readiness.persistence.repositories.assessments import (
    InMemoryAssessmentsRepository,
    clear_in_memory_assessments,
)
from readiness.persistence.repositories.scores import (
    InMemoryScoresRepository,
    clear_in_memory_scores,
)
from readiness.rulesets.store import InMemoryRuleSetStore, reset_default_store
from readiness.scoring.engine import ScoringEngine
from readiness.services.rescore.manager import RescoreManager
from readiness.services.scoring import ScoringService
from tests.fixtures.builders import EXAMPLE_ANSWERS, make_rule_set


def _reset_defaults() -> None:
    reset_default_store()
    reset_default_trail()
    clear_in_memory_assessments()
    clear_in_memory_scores()
    reset_engines()


@pytest.fixture(autouse=True)
def readiness_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Run every test with in-memory storage and the required API settings.

    Tests that exercise missing configuration delete the variables themselves.
    """
    monkeypatch.setenv(ENV_APP_ENV, "test")
    monkeypatch.delenv(READINESS_DATABASE_URL_ENV, raising=False)
    monkeypatch.delenv(READINESS_DATABASE_ADMIN_URL_ENV, raising=False)
    monkeypatch.delenv(AUDIT_LOG_PATH_ENV, raising=False)
    monkeypatch.delenv("READINESS_OTEL_ENABLED", raising=False)
    _reset_defaults()
    yield
    _reset_defaults()


@pytest.fixture
def example_payload() -> dict[str, Any]:
    return dict(EXAMPLE_ANSWERS)


@pytest.fixture
def rule_set_store() -> InMemoryRuleSetStore:
    """Store with the default weights published and active as 0.1.0."""
    store = InMemoryRuleSetStore()
    store.publish(make_rule_set("0.1.0", change_reason="Initial scoring methodology"))
    return store


@pytest.fixture
def engine(rule_set_store: InMemoryRuleSetStore) -> ScoringEngine:
    return ScoringEngine(rule_set_store)


@pytest.fixture
def assessments() -> InMemoryAssessmentsRepository:
    return InMemoryAssessmentsRepository()


@pytest.fixture
def scores() -> InMemoryScoresRepository:
    return InMemoryScoresRepository()


@pytest.fixture
def audit() -> InMemoryAuditTrail:
    return InMemoryAuditTrail()


@pytest.fixture
def scoring_service(
    engine: ScoringEngine,
    assessments: InMemoryAssessmentsRepository,
    scores: InMemoryScoresRepository,
    audit: InMemoryAuditTrail,
) -> ScoringService:
    return ScoringService(engine, assessments, scores, audit)


@pytest.fixture
def rescore_config() -> RescoreConfig:
    return RescoreConfig(max_workers=4, item_timeout_seconds=5.0, retry_backoff_seconds=0.0)


@pytest.fixture
def rescore_manager(
    engine: ScoringEngine,
    assessments: InMemoryAssessmentsRepository,
    scores: InMemoryScoresRepository,
    audit: InMemoryAuditTrail,
    rescore_config: RescoreConfig,
) -> RescoreManager:
    return RescoreManager(
        engine, assessments, scores, audit, rescore_config, sleep=lambda _seconds: None
    )
