"""RuleSet model: an immutable, versioned set of dimension weights.

A published RuleSet is never edited; a methodology change is a new
version. All weight arithmetic uses Decimal.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from readiness.errors import ConfigurationError, InvalidRuleSetVersionError
from readiness.models.assessment import Bucket
from readiness.models.canonical import canonical_json_for_hash, compute_sha256

_SEMVER_PATTERN = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")


class Dimension(StrEnum):
    """The four scored axes."""

    IDEA = "idea"
    FINANCIALS = "financials"
    TEAM = "team"
    TRACTION = "traction"


def parse_semver(version: str) -> tuple[int, int, int]:
    """Parse a version string into a comparable tuple.

    Raises:
        InvalidRuleSetVersionError: If the string is not MAJOR.MINOR.PATCH.
    """
    match = _SEMVER_PATTERN.match(version)
    if match is None:
        raise InvalidRuleSetVersionError(version)
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


class DimensionWeights(BaseModel):
    """Relative weight of each dimension in the total score."""

    idea: Decimal = Field(..., description="Weight of the Idea dimension")
    financials: Decimal = Field(..., description="Weight of the Financials dimension")
    team: Decimal = Field(..., description="Weight of the Team dimension")
    traction: Decimal = Field(..., description="Weight of the Traction dimension")

    model_config = {"frozen": True, "extra": "forbid"}

    def as_dict(self) -> dict[Dimension, Decimal]:
        return {
            Dimension.IDEA: self.idea,
            Dimension.FINANCIALS: self.financials,
            Dimension.TEAM: self.team,
            Dimension.TRACTION: self.traction,
        }

    def total(self) -> Decimal:
        return self.idea + self.financials + self.team + self.traction

    def check(self, label: str) -> None:
        """Fail loudly on weights that cannot produce a meaningful total.

        Raises:
            ConfigurationError: If any weight is negative or all are zero.
        """
        negative = [d.value for d, w in self.as_dict().items() if w < 0]
        if negative:
            raise ConfigurationError(f"Negative weights in {label}: {negative}")
        if self.total() == 0:
            raise ConfigurationError(f"All dimension weights are zero in {label}")

    def normalized(self) -> DimensionWeights:
        """Return weights rescaled to sum to exactly 1.

        Raises:
            ConfigurationError: If the weights are negative or all zero.
        """
        self.check("weights")
        total = self.total()
        return DimensionWeights(
            idea=self.idea / total,
            financials=self.financials / total,
            team=self.team / total,
            traction=self.traction / total,
        )

    def scaled(self, factor: Decimal) -> DimensionWeights:
        """Multiply every weight by the same factor."""
        return DimensionWeights(
            idea=self.idea * factor,
            financials=self.financials * factor,
            team=self.team * factor,
            traction=self.traction * factor,
        )


class RuleSet(BaseModel):
    """A published scoring configuration.

    Attributes:
        version: Semantic version (e.g. "0.1.0"); unique within the store.
        dimension_weights: Default weights, used when no sector override applies.
        sector_overrides: Per-bucket weights replacing the defaults.
        created_at: Publication timestamp.
        created_by: Publisher identity.
        change_reason: Why this version exists.
    """

    version: str = Field(..., description="Semantic version MAJOR.MINOR.PATCH")
    dimension_weights: DimensionWeights
    sector_overrides: dict[Bucket, DimensionWeights] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    created_by: str | None = None
    change_reason: str | None = None

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("version")
    @classmethod
    def _check_version(cls, v: str) -> str:
        parse_semver(v)
        return v

    @property
    def semver(self) -> tuple[int, int, int]:
        return parse_semver(self.version)

    @property
    def content_hash(self) -> str:
        """Stable SHA256 over the version and every weight.

        Publication metadata (timestamps, author, reason) is excluded so the
        hash only changes when scoring behaviour can change.
        """
        return compute_sha256(canonical_json_for_hash(self.weights_document()))

    def weights_document(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "dimension_weights": self.dimension_weights.model_dump(),
            "sector_overrides": {
                bucket.value: weights.model_dump()
                for bucket, weights in sorted(self.sector_overrides.items())
            },
        }

    def weights_for(self, bucket: Bucket) -> DimensionWeights:
        """Raw (un-normalized) weights that apply to a bucket."""
        return self.sector_overrides.get(bucket, self.dimension_weights)


def validate_rule_set(rule_set: RuleSet) -> None:
    """Validate a rule set before it is published.

    Raises:
        ConfigurationError: On negative or all-zero default/override weights.
    """
    rule_set.dimension_weights.check(f"rule set {rule_set.version} defaults")
    for bucket, weights in sorted(rule_set.sector_overrides.items()):
        weights.check(f"rule set {rule_set.version} override '{bucket.value}'")
