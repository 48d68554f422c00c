"""Assessment answers: the immutable input snapshot consumed by the scorers.

Categorical answers are closed enums validated once at intake, so the
scorers branch on exhaustively-checked variants instead of raw strings.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from readiness.errors import ValidationError
from readiness.models.canonical import canonical_json_for_hash, compute_sha256


class MrrBand(StrEnum):
    """Monthly recurring revenue band."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TeamSizeBand(StrEnum):
    """Headcount band."""

    SOLO = "1-2"
    SMALL = "3-10"
    MEDIUM = "11-50"
    LARGE = "50+"


class InvestorType(StrEnum):
    """Most advanced investor type engaged so far."""

    NONE = "none"
    ANGELS = "angels"
    VC = "vc"
    LATE_STAGE = "lateStage"


class Stage(StrEnum):
    """Company milestone stage."""

    CONCEPT = "concept"
    LAUNCH = "launch"
    SCALE = "scale"
    EXIT = "exit"


class Bucket(StrEnum):
    """Sector/stage bucket used to select dimension weights."""

    B2B_SAAS = "B2B SaaS"
    FINTECH = "FinTech"
    B2C_CONSUMER = "B2C Consumer"
    E_COMMERCE = "E-commerce"
    HEALTHTECH = "HealthTech"


class AssessmentAnswers(BaseModel):
    """Answers captured at submission time.

    Never mutated; a retake creates a new assessment. Accepts the camelCase
    field names used by the intake forms as well as snake_case names.
    """

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    has_prototype: bool = Field(..., alias="hasPrototype")
    has_external_capital: bool = Field(..., alias="hasExternalCapital")
    has_revenue: bool = Field(..., alias="hasRevenue")
    full_time_team: bool = Field(..., alias="fullTimeTeam")
    has_term_sheets: bool = Field(..., alias="hasTermSheets")
    has_cap_table: bool = Field(..., alias="hasCapTable")
    mrr_band: MrrBand = Field(..., alias="mrrBand")
    team_size_band: TeamSizeBand = Field(..., alias="teamSizeBand")
    investor_type_engaged: InvestorType = Field(..., alias="investorTypeEngaged")
    stage: Stage = Field(..., alias="stage")
    funding_goal: str = Field(..., alias="fundingGoal")

    @classmethod
    def from_payload(cls, payload: Any) -> AssessmentAnswers:
        """Validate a raw intake payload.

        Args:
            payload: Dict of answers (camelCase or snake_case keys).

        Returns:
            Validated AssessmentAnswers.

        Raises:
            ValidationError: Listing every missing or invalid field.
        """
        if not isinstance(payload, dict):
            raise ValidationError([{"field": "answers", "message": "Answers must be an object"}])
        try:
            return cls.model_validate(payload, strict=False)
        except PydanticValidationError as e:
            errors = [
                {
                    "field": ".".join(str(part) for part in err.get("loc", ())) or "answers",
                    "message": err.get("msg", "Invalid value"),
                }
                for err in e.errors()
            ]
            raise ValidationError(errors) from e

    @property
    def has_funding_goal(self) -> bool:
        """True when a non-blank funding goal was stated."""
        return bool(self.funding_goal.strip())

    def to_payload(self) -> dict[str, Any]:
        """Serialize using the intake (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)

    def fingerprint(self) -> str:
        """SHA256 of the canonical answers payload."""
        return compute_sha256(canonical_json_for_hash(self.to_payload()))


class StoredAssessment(BaseModel):
    """An assessment row as persisted.

    Answers are kept exactly as submitted so that rows which no longer
    validate surface as per-item failures during re-scoring.
    """

    assessment_id: str = Field(..., description="Assessment UUID")
    user_id: str | None = Field(default=None, description="Submitting user, if known")
    answers: dict[str, Any] = Field(default_factory=dict, description="Raw submitted answers")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {"frozen": True, "extra": "forbid"}
