"""Aggregator: weighted combination of dimension scores into the total.

All arithmetic uses Decimal; the final quantization to an integer uses
ROUND_HALF_UP so .5 totals always round away from zero.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from readiness.models.assessment import Bucket
from readiness.models.rule_set import Dimension, DimensionWeights, RuleSet
from readiness.models.score_result import DimensionScores

# Totals are reported on the same 0-100 scale as the dimension scores.
SCALE_FACTOR = Decimal("1")

_INTEGER = Decimal("1")


def resolve_weights(bucket: Bucket, rule_set: RuleSet) -> DimensionWeights:
    """Normalized weights for a bucket: its sector override, else the defaults.

    Raises:
        ConfigurationError: If the selected weights are negative or all zero.
    """
    return rule_set.weights_for(bucket).normalized()


def weighted_total(scores: DimensionScores, weights: DimensionWeights) -> Decimal:
    """Unrounded Σ score[d] * w[d] * SCALE_FACTOR with w normalized to sum 1.

    Divides once by the raw weight sum instead of summing pre-divided weights,
    so uniformly scaled weights give an identical Decimal result.

    Raises:
        ConfigurationError: If the weights are negative or all zero.
    """
    weights.check("weights")
    by_dimension = {
        Dimension.IDEA: scores.idea.score,
        Dimension.FINANCIALS: scores.financials.score,
        Dimension.TEAM: scores.team.score,
        Dimension.TRACTION: scores.traction.score,
    }
    total = sum(
        (Decimal(by_dimension[d]) * w for d, w in weights.as_dict().items()),
        Decimal("0"),
    )
    return total / weights.total() * SCALE_FACTOR


def aggregate(scores: DimensionScores, bucket: Bucket, rule_set: RuleSet) -> int:
    """Compute the integer total score in [0, 100].

    Args:
        scores: The four dimension scores.
        bucket: Classifier bucket selecting a sector override, if any.
        rule_set: RuleSet providing the weights.

    Returns:
        Total rounded half-up to an integer.

    Raises:
        ConfigurationError: If the applicable weights are unusable.
    """
    weights = rule_set.weights_for(bucket)
    total = weighted_total(scores, weights).quantize(_INTEGER, rounding=ROUND_HALF_UP)
    return int(total)
