"""Readiness domain models: pydantic models for scoring inputs, outputs and jobs."""

from readiness.models.assessment import (
    AssessmentAnswers,
    Bucket,
    InvestorType,
    MrrBand,
    Stage,
    StoredAssessment,
    TeamSizeBand,
)
from readiness.models.rescore import (
    AssessmentSelector,
    RescoreFailure,
    RescoreItemOutcome,
    RescoreItemStatus,
    RescoreJobResult,
)
from readiness.models.rule_set import (
    Dimension,
    DimensionWeights,
    RuleSet,
    parse_semver,
    validate_rule_set,
)
from readiness.models.score_result import (
    AuditEntry,
    ComputedBy,
    DimensionScore,
    DimensionScores,
    ScoreResult,
    ScoreStatus,
)

__all__ = [
    "AssessmentAnswers",
    "AssessmentSelector",
    "AuditEntry",
    "Bucket",
    "ComputedBy",
    "Dimension",
    "DimensionScore",
    "DimensionScores",
    "DimensionWeights",
    "InvestorType",
    "MrrBand",
    "RescoreFailure",
    "RescoreItemOutcome",
    "RescoreItemStatus",
    "RescoreJobResult",
    "RuleSet",
    "ScoreResult",
    "ScoreStatus",
    "Stage",
    "StoredAssessment",
    "TeamSizeBand",
    "parse_semver",
    "validate_rule_set",
]
