"""Default wiring of engine, repositories and services from the environment."""

from __future__ import annotations

from readiness.audit.trail import get_audit_trail
from readiness.config import load_rescore_config
from readiness.persistence.repositories.assessments import get_assessments_repository
from readiness.persistence.repositories.scores import get_scores_repository
from readiness.rulesets.store import get_rule_set_store
from readiness.scoring.engine import ScoringEngine
from readiness.services.rescore.manager import RescoreManager
from readiness.services.scoring import ScoringService


def get_scoring_engine() -> ScoringEngine:
    return ScoringEngine(get_rule_set_store())


def get_scoring_service() -> ScoringService:
    return ScoringService(
        get_scoring_engine(),
        get_assessments_repository(),
        get_scores_repository(),
        get_audit_trail(),
    )


def get_rescore_manager() -> RescoreManager:
    return RescoreManager(
        get_scoring_engine(),
        get_assessments_repository(),
        get_scores_repository(),
        get_audit_trail(),
        load_rescore_config(),
    )
