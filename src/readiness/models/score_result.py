"""ScoreResult and AuditEntry models.

A ScoreResult is always traceable to exactly one RuleSet version and one
AssessmentAnswers snapshot (via answers_fingerprint). Replaced results are
marked superseded and kept; every replacement is linked by an AuditEntry.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from readiness.models.assessment import Bucket
from readiness.models.rule_set import DimensionWeights


class ComputedBy(StrEnum):
    """Who produced a score."""

    SYSTEM = "system"
    RESCORE_JOB = "rescore_job"


class ScoreStatus(StrEnum):
    """Lifecycle of a stored score."""

    CURRENT = "current"
    SUPERSEDED = "superseded"


class DimensionScore(BaseModel):
    """Score for one dimension with its explanation text."""

    score: int = Field(..., ge=0, le=100)
    rationale: str

    model_config = {"frozen": True, "extra": "forbid"}


class DimensionScores(BaseModel):
    """Scores for all four dimensions."""

    idea: DimensionScore
    financials: DimensionScore
    team: DimensionScore
    traction: DimensionScore

    model_config = {"frozen": True, "extra": "forbid"}


class ScoreResult(BaseModel):
    """Output of one scoring run, tagged with the concrete RuleSet version used."""

    score_result_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    assessment_id: str | None = Field(default=None, description="None for stateless scoring")
    rule_set_version: str = Field(..., description="Resolved version; never 'latest'")
    bucket: Bucket
    dimension_scores: DimensionScores
    total_score: int = Field(..., ge=0, le=100)
    weights_applied: DimensionWeights = Field(..., description="Normalized weights used")
    answers_fingerprint: str = Field(..., description="SHA256 of the answers snapshot")
    reproducibility_hash: str = Field(..., description="SHA256 of all deterministic outputs")
    computed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    computed_by: ComputedBy = ComputedBy.SYSTEM
    status: ScoreStatus = ScoreStatus.CURRENT
    superseded_by: str | None = None

    model_config = {"frozen": True, "extra": "forbid"}

    def to_public_payload(self) -> dict[str, Any]:
        """Edge-function response shape (camelCase)."""
        scores = self.dimension_scores
        return {
            "businessIdea": scores.idea.score,
            "businessIdeaExplanation": scores.idea.rationale,
            "financials": scores.financials.score,
            "financialsExplanation": scores.financials.rationale,
            "team": scores.team.score,
            "teamExplanation": scores.team.rationale,
            "traction": scores.traction.score,
            "tractionExplanation": scores.traction.rationale,
            "totalScore": self.total_score,
            "bucket": self.bucket.value,
            "ruleSetVersion": self.rule_set_version,
        }

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dictionary for database insertion."""
        return {
            "score_result_id": self.score_result_id,
            "assessment_id": self.assessment_id,
            "rule_set_version": self.rule_set_version,
            "bucket": self.bucket.value,
            "dimension_scores": self.dimension_scores.model_dump(mode="json"),
            "total_score": self.total_score,
            "weights_applied": self.weights_applied.model_dump(mode="json"),
            "answers_fingerprint": self.answers_fingerprint,
            "reproducibility_hash": self.reproducibility_hash,
            "computed_at": self.computed_at,
            "computed_by": self.computed_by.value,
            "status": self.status.value,
            "superseded_by": self.superseded_by,
        }


class AuditEntry(BaseModel):
    """Append-only record of a score being produced or superseded."""

    audit_entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    assessment_id: str
    previous_score_result_id: str | None = None
    new_score_result_id: str
    rule_set_version_before: str | None = None
    rule_set_version_after: str
    total_before: int | None = None
    total_after: int
    triggered_by: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    reason: str
    job_id: str | None = None

    model_config = {"frozen": True, "extra": "forbid"}

    def to_event(self) -> dict[str, Any]:
        """JSON-compatible dict with deterministic field names."""
        return self.model_dump(mode="json")
