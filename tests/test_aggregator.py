"""Tests for weighted aggregation of dimension scores."""

from __future__ import annotations

from decimal import Decimal

import pytest

from readiness.errors import ConfigurationError
from readiness.models.assessment import Bucket
from readiness.models.score_result import DimensionScore, DimensionScores
from readiness.scoring.aggregator import SCALE_FACTOR, aggregate, resolve_weights, weighted_total
from tests.fixtures.builders import make_rule_set, weights


def _scores(idea: int, financials: int, team: int, traction: int) -> DimensionScores:
    return DimensionScores(
        idea=DimensionScore(score=idea, rationale="idea"),
        financials=DimensionScore(score=financials, rationale="financials"),
        team=DimensionScore(score=team, rationale="team"),
        traction=DimensionScore(score=traction, rationale="traction"),
    )


EXAMPLE_SCORES = _scores(80, 15, 95, 30)


class TestWeightedTotal:
    """Decimal arithmetic and rounding."""

    def test_scale_factor_keeps_total_on_score_scale(self) -> None:
        assert SCALE_FACTOR == Decimal("1")

    def test_example_total_is_exact_decimal(self) -> None:
        assert weighted_total(EXAMPLE_SCORES, weights()) == Decimal("57.5")

    def test_half_rounds_up(self) -> None:
        assert aggregate(EXAMPLE_SCORES, Bucket.B2C_CONSUMER, make_rule_set("0.1.0")) == 58

    def test_below_half_rounds_down(self) -> None:
        rule_set = make_rule_set("0.1.0", idea="1", financials="1", team="1", traction="1")
        # (80 + 15 + 95 + 31) / 4 = 55.25
        assert aggregate(_scores(80, 15, 95, 31), Bucket.B2C_CONSUMER, rule_set) == 55

    def test_bounds(self) -> None:
        rule_set = make_rule_set("0.1.0")
        assert aggregate(_scores(0, 0, 0, 0), Bucket.B2B_SAAS, rule_set) == 0
        assert aggregate(_scores(100, 100, 100, 100), Bucket.B2B_SAAS, rule_set) == 100


class TestWeightInvariance:
    """Multiplying every weight by the same positive factor changes nothing."""

    @pytest.mark.parametrize("factor", ["2", "7", "100", "0.003"])
    def test_uniform_scaling_gives_identical_total(self, factor: str) -> None:
        base = weights()
        scaled = base.scaled(Decimal(factor))

        assert weighted_total(EXAMPLE_SCORES, scaled) == weighted_total(EXAMPLE_SCORES, base)

    def test_unnormalized_rule_set_matches_normalized(self) -> None:
        normalized = make_rule_set("0.1.0")
        percentages = make_rule_set("0.1.1", idea="30", financials="25", team="25", traction="20")

        assert aggregate(EXAMPLE_SCORES, Bucket.B2C_CONSUMER, normalized) == aggregate(
            EXAMPLE_SCORES, Bucket.B2C_CONSUMER, percentages
        )

    def test_resolved_weights_sum_to_one(self) -> None:
        rule_set = make_rule_set("0.1.0", idea="3", financials="2", team="2", traction="1")
        resolved = resolve_weights(Bucket.B2B_SAAS, rule_set)

        assert resolved.total() == Decimal("1")
        assert resolved.idea == Decimal("0.375")


class TestSectorOverrides:
    """A bucket's override replaces the default weights entirely."""

    def test_override_applies_to_its_bucket_only(self) -> None:
        rule_set = make_rule_set(
            "0.2.0",
            sector_overrides={Bucket.B2C_CONSUMER: weights("0", "0", "0", "1")},
        )

        assert aggregate(EXAMPLE_SCORES, Bucket.B2C_CONSUMER, rule_set) == 30
        assert aggregate(EXAMPLE_SCORES, Bucket.FINTECH, rule_set) == 58

    def test_healthtech_override_is_accepted(self) -> None:
        rule_set = make_rule_set(
            "0.2.0", sector_overrides={Bucket.HEALTHTECH: weights("1", "0", "0", "0")}
        )
        assert aggregate(EXAMPLE_SCORES, Bucket.HEALTHTECH, rule_set) == 80


class TestInvalidWeights:
    """Unusable weights fail loudly instead of producing a total."""

    def test_all_zero_weights_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="zero"):
            weighted_total(EXAMPLE_SCORES, weights("0", "0", "0", "0"))

    def test_negative_weight_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Negative"):
            weighted_total(EXAMPLE_SCORES, weights("0.5", "-0.1", "0.3", "0.3"))
