"""Scoring service: score, persist and audit new assessment submissions."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from readiness.audit.trail import AuditTrail
from readiness.models.assessment import AssessmentAnswers, StoredAssessment
from readiness.models.score_result import AuditEntry, ScoreResult
from readiness.persistence.repositories.assessments import AssessmentsRepository
from readiness.persistence.repositories.scores import ScoresRepository
from readiness.scoring.engine import ScoringEngine

logger = logging.getLogger(__name__)

INITIAL_SCORE_REASON = "initial score"
SYSTEM_ACTOR = "system"


class ScoringService:
    """Glue between intake, the engine and the stores.

    Nothing is written unless scoring succeeds. The assessment row, the
    current score and the initial audit entry are written in that order;
    if a later write fails, the earlier ones are withdrawn again so a
    failed submission leaves nothing behind.
    """

    def __init__(
        self,
        engine: ScoringEngine,
        assessments: AssessmentsRepository,
        scores: ScoresRepository,
        audit: AuditTrail,
    ) -> None:
        self._engine = engine
        self._assessments = assessments
        self._scores = scores
        self._audit = audit

    @property
    def engine(self) -> ScoringEngine:
        return self._engine

    def score_answers(
        self, payload: Any, rule_set_version: str | None = None
    ) -> ScoreResult:
        """Validate and score answers without storing anything.

        Raises:
            ValidationError: If the answers are incomplete or invalid.
            RuleSetNotFoundError: If an explicit version does not exist.
            ConfigurationError: If no RuleSet is active or it is unusable.
        """
        answers = AssessmentAnswers.from_payload(payload)
        return self._engine.score(answers, rule_set_version)

    def submit_assessment(
        self,
        payload: Any,
        user_id: str | None = None,
        assessment_id: str | None = None,
    ) -> ScoreResult:
        """Store a new assessment and its first score under the active RuleSet.

        Answers are stored exactly as submitted and never modified; a
        retake is a new assessment.

        Returns:
            The current ScoreResult for the new assessment.
        """
        answers = AssessmentAnswers.from_payload(payload)
        assessment_id = assessment_id or str(uuid.uuid4())
        result = self._engine.score(answers, assessment_id=assessment_id)

        self._assessments.create(
            StoredAssessment(assessment_id=assessment_id, user_id=user_id, answers=dict(payload))
        )
        try:
            current = self._scores.replace_current(result, expected_current_id=None)
        except Exception:
            logger.error(
                "Initial score for assessment %s not stored; withdrawing assessment",
                assessment_id,
            )
            self._withdraw(assessment_id, None)
            raise

        entry = AuditEntry(
            assessment_id=assessment_id,
            new_score_result_id=current.score_result_id,
            rule_set_version_after=current.rule_set_version,
            total_after=current.total_score,
            triggered_by=user_id or SYSTEM_ACTOR,
            reason=INITIAL_SCORE_REASON,
        )
        try:
            self._audit.record(entry)
        except Exception:
            logger.error(
                "Initial audit entry for assessment %s failed; withdrawing score %s",
                assessment_id,
                current.score_result_id,
            )
            self._withdraw(assessment_id, current.score_result_id)
            raise

        logger.info(
            "Assessment %s scored %d under rule set %s",
            assessment_id,
            current.total_score,
            current.rule_set_version,
            extra={"assessment_id": assessment_id},
        )
        return current

    def _withdraw(self, assessment_id: str, score_result_id: str | None) -> None:
        try:
            if score_result_id is not None:
                self._scores.restore_current(assessment_id, None, score_result_id)
            self._assessments.withdraw(assessment_id)
        except Exception:
            logger.exception("Could not withdraw failed submission %s", assessment_id)

    def current_score(self, assessment_id: str) -> ScoreResult | None:
        return self._scores.get_current(assessment_id)

    def score_results(self, assessment_id: str) -> list[ScoreResult]:
        """Every score ever computed for the assessment, oldest first."""
        return self._scores.history(assessment_id)

    def score_history(self, assessment_id: str) -> list[AuditEntry]:
        """Audit entries for the assessment, oldest first."""
        return self._audit.history(assessment_id)
