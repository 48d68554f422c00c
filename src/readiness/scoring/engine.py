"""Deterministic Scoring Engine.

ScoringEngine resolves a RuleSet, classifies the answers, runs the four
dimension scorers and aggregates them into a ScoreResult tagged with the
concrete RuleSet version used. Scoring has no side effects; persisting and
auditing the result is the caller's job.

Every result carries a reproducibility hash over all deterministic inputs
and outputs, so any stored score can be recomputed and checked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from readiness.errors import (
    ConfigurationError,
    PersistenceError,
    ScoreIntegrityError,
    ScoringError,
)
from readiness.models.assessment import AssessmentAnswers, Bucket
from readiness.models.canonical import canonical_json_for_hash, compute_sha256
from readiness.models.rule_set import RuleSet, parse_semver
from readiness.models.score_result import ComputedBy, DimensionScores, ScoreResult
from readiness.observability.tracing import traced_span
from readiness.scoring.aggregator import aggregate, resolve_weights
from readiness.scoring.classifier import classify
from readiness.scoring.scorers import score_dimensions

if TYPE_CHECKING:
    from readiness.rulesets.store import RuleSetStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringOutcome:
    """Explicit result of try_score: either a ScoreResult or the error that prevented one."""

    result: ScoreResult | None = None
    error: ScoringError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


def compute_reproducibility_hash(
    answers_fingerprint: str,
    rule_set: RuleSet,
    bucket: Bucket,
    dimension_scores: DimensionScores,
    total_score: int,
) -> str:
    """Hash of every deterministic input and output of one scoring run."""
    hash_input = {
        "answers_fingerprint": answers_fingerprint,
        "bucket": bucket.value,
        "dimension_scores": dimension_scores.model_dump(mode="json"),
        "rule_set_content_hash": rule_set.content_hash,
        "rule_set_version": rule_set.version,
        "total_score": total_score,
    }
    return compute_sha256(canonical_json_for_hash(hash_input))


class ScoringEngine:
    """Scoring façade over a RuleSet store.

    The engine holds no mutable state of its own; the active RuleSet is
    looked up in the store on every call that does not pin a version.
    """

    def __init__(self, store: RuleSetStore) -> None:
        self._store = store

    @property
    def store(self) -> RuleSetStore:
        return self._store

    def resolve_rule_set(self, rule_set_version: str | None = None) -> RuleSet:
        """Resolve an explicit version, or the active one when omitted.

        Raises:
            InvalidRuleSetVersionError: If an explicit version is not MAJOR.MINOR.PATCH.
            RuleSetNotFoundError: If an explicit version does not exist.
            ConfigurationError: If no version is given and none is active, or
                the rule set store cannot be read.
        """
        if rule_set_version is not None:
            parse_semver(rule_set_version)
        try:
            if rule_set_version is not None:
                return self._store.get_or_raise(rule_set_version)
            active = self._store.get_active()
        except PersistenceError as e:
            raise ConfigurationError(
                f"Rule set store unavailable: {e.reason}", missing=["rule_set_store"]
            ) from e
        if active is None:
            raise ConfigurationError("No active rule set configured", missing=["active_rule_set"])
        return active

    def score(
        self,
        answers: AssessmentAnswers,
        rule_set_version: str | None = None,
        *,
        assessment_id: str | None = None,
        computed_by: ComputedBy = ComputedBy.SYSTEM,
    ) -> ScoreResult:
        """Score answers under a RuleSet.

        Args:
            answers: Validated assessment answers.
            rule_set_version: Explicit version, or None for the active RuleSet.
            assessment_id: Assessment the result belongs to (None when stateless).
            computed_by: Who triggered the computation.

        Returns:
            ScoreResult tagged with the resolved RuleSet version.

        Raises:
            RuleSetNotFoundError: If the explicit version does not exist.
            ConfigurationError: If no RuleSet is active or its weights are unusable.
        """
        rule_set = self.resolve_rule_set(rule_set_version)
        return self.score_with_rule_set(
            answers, rule_set, assessment_id=assessment_id, computed_by=computed_by
        )

    def score_with_rule_set(
        self,
        answers: AssessmentAnswers,
        rule_set: RuleSet,
        *,
        assessment_id: str | None = None,
        computed_by: ComputedBy = ComputedBy.SYSTEM,
    ) -> ScoreResult:
        """Score answers under an already-resolved RuleSet."""
        with traced_span(
            "readiness.scoring.score",
            {
                "readiness.assessment_id": assessment_id,
                "readiness.rule_set_version": rule_set.version,
                "readiness.computed_by": computed_by.value,
            },
        ) as span:
            bucket = classify(answers)
            dimension_scores = score_dimensions(answers)
            weights = resolve_weights(bucket, rule_set)
            total_score = aggregate(dimension_scores, bucket, rule_set)
            fingerprint = answers.fingerprint()

            span.set_attribute("readiness.bucket", bucket.value)
            span.set_attribute("readiness.total_score", total_score)

            result = ScoreResult(
                assessment_id=assessment_id,
                rule_set_version=rule_set.version,
                bucket=bucket,
                dimension_scores=dimension_scores,
                total_score=total_score,
                weights_applied=weights,
                answers_fingerprint=fingerprint,
                reproducibility_hash=compute_reproducibility_hash(
                    fingerprint, rule_set, bucket, dimension_scores, total_score
                ),
                computed_by=computed_by,
            )

        logger.debug(
            "Scored assessment=%s rule_set=%s bucket=%s total=%s",
            assessment_id,
            rule_set.version,
            bucket.value,
            total_score,
        )
        return result

    def try_score(
        self,
        answers: AssessmentAnswers,
        rule_set_version: str | None = None,
        *,
        assessment_id: str | None = None,
        computed_by: ComputedBy = ComputedBy.SYSTEM,
    ) -> ScoringOutcome:
        """Like score(), but returns scoring errors instead of raising them."""
        try:
            result = self.score(
                answers,
                rule_set_version,
                assessment_id=assessment_id,
                computed_by=computed_by,
            )
        except ScoringError as e:
            return ScoringOutcome(error=e)
        return ScoringOutcome(result=result)

    def verify_reproducibility(self, result: ScoreResult, answers: AssessmentAnswers) -> None:
        """Recompute a stored result under its tagged version and compare hashes.

        Args:
            result: Previously computed ScoreResult.
            answers: The answers snapshot it was computed from.

        Raises:
            ScoreIntegrityError: If the recomputed hash differs.
            RuleSetNotFoundError: If the tagged version is no longer in the store.
        """
        rule_set = self._store.get_or_raise(result.rule_set_version)
        recomputed = self.score_with_rule_set(
            answers,
            rule_set,
            assessment_id=result.assessment_id,
            computed_by=result.computed_by,
        )
        if recomputed.reproducibility_hash != result.reproducibility_hash:
            raise ScoreIntegrityError(
                score_result_id=result.score_result_id,
                expected_hash=result.reproducibility_hash,
                computed_hash=recomputed.reproducibility_hash,
            )
