"""Readiness scoring: classifier, dimension scorers, aggregator and engine."""

from readiness.scoring.aggregator import SCALE_FACTOR, aggregate, resolve_weights
from readiness.scoring.classifier import CLASSIFICATION_RULES, DEFAULT_BUCKET, classify
from readiness.scoring.engine import ScoringEngine, ScoringOutcome, compute_reproducibility_hash
from readiness.scoring.scorers import (
    score_dimensions,
    score_financials,
    score_idea,
    score_team,
    score_traction,
    unclamped_points,
)

__all__ = [
    "CLASSIFICATION_RULES",
    "DEFAULT_BUCKET",
    "SCALE_FACTOR",
    "ScoringEngine",
    "ScoringOutcome",
    "aggregate",
    "classify",
    "compute_reproducibility_hash",
    "resolve_weights",
    "score_dimensions",
    "score_financials",
    "score_idea",
    "score_team",
    "score_traction",
    "unclamped_points",
]
