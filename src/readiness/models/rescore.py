"""Re-score job models: population selector, per-item outcomes and job summary."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from readiness.models.assessment import StoredAssessment
from readiness.models.rule_set import parse_semver
from readiness.models.score_result import ScoreResult


class AssessmentSelector(BaseModel):
    """Filter selecting which stored assessments a re-score job touches.

    Criteria are AND-combined; an empty selector matches every stored
    assessment. Assessments that were never scored only match when no
    rule-set version criterion is given.

    Attributes:
        assessment_ids: Restrict to these assessment ids.
        user_id: Restrict to assessments submitted by this user.
        rule_set_version: Current score was computed under exactly this version.
        rule_set_version_below: Current score was computed under a lower version.
    """

    assessment_ids: list[str] | None = None
    user_id: str | None = None
    rule_set_version: str | None = None
    rule_set_version_below: str | None = None

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("rule_set_version", "rule_set_version_below")
    @classmethod
    def _check_version(cls, v: str | None) -> str | None:
        if v is not None:
            parse_semver(v)
        return v

    @property
    def has_version_criteria(self) -> bool:
        return self.rule_set_version is not None or self.rule_set_version_below is not None

    def matches_assessment(self, assessment: StoredAssessment) -> bool:
        if self.assessment_ids is not None and assessment.assessment_id not in self.assessment_ids:
            return False
        return self.user_id is None or assessment.user_id == self.user_id

    def matches_score(self, current: ScoreResult | None) -> bool:
        if current is None:
            return not self.has_version_criteria
        if self.rule_set_version is not None and current.rule_set_version != self.rule_set_version:
            return False
        if self.rule_set_version_below is not None:
            return parse_semver(current.rule_set_version) < parse_semver(
                self.rule_set_version_below
            )
        return True

    def describe(self) -> str:
        """Short human-readable form for logs."""
        parts = [
            f"{name}={value}"
            for name, value in self.model_dump(exclude_none=True).items()
        ]
        return ", ".join(parts) or "all assessments"


class RescoreItemStatus(StrEnum):
    """Outcome of one assessment within a job."""

    MIGRATED = "migrated"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOT_REACHED = "not_reached"


class RescoreItemOutcome(BaseModel):
    """Per-assessment result, including the score delta."""

    assessment_id: str
    status: RescoreItemStatus
    previous_total: int | None = None
    new_total: int | None = None
    score_difference: int | None = None
    previous_rule_set_version: str | None = None
    new_score_result_id: str | None = None
    total_changed: bool = False
    error: str | None = None


class RescoreFailure(BaseModel):
    """A failed item: always reported with the assessment id and its cause."""

    assessment_id: str
    error: str


class RescoreJobResult(BaseModel):
    """Summary of a re-score job."""

    job_id: str
    target_rule_set_version: str
    reason: str
    triggered_by: str
    started_at: datetime
    finished_at: datetime | None = None
    processed: int = 0
    succeeded: int = 0
    failed: list[RescoreFailure] = Field(default_factory=list)
    skipped: int = 0
    cancelled: bool = False
    not_reached: list[str] = Field(default_factory=list)
    items: list[RescoreItemOutcome] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)
