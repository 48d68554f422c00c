"""Sector/stage classifier.

A priority-ordered decision list: the first matching rule wins. The order
is part of the contract; reordering changes the bucket of ambiguous
answers and breaks bit-compatibility with historical scores.
"""

from __future__ import annotations

from collections.abc import Callable

from readiness.models.assessment import AssessmentAnswers, Bucket, MrrBand

ClassificationRule = tuple[Bucket, Callable[[AssessmentAnswers], bool]]

CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    (Bucket.B2B_SAAS, lambda a: a.has_term_sheets and a.mrr_band != MrrBand.NONE),
    (Bucket.FINTECH, lambda a: a.has_external_capital and a.has_term_sheets),
    (Bucket.B2C_CONSUMER, lambda a: a.has_prototype and not a.has_revenue),
    (Bucket.E_COMMERCE, lambda a: a.has_revenue and a.mrr_band == MrrBand.NONE),
)

DEFAULT_BUCKET = Bucket.B2B_SAAS


def classify(answers: AssessmentAnswers) -> Bucket:
    """Derive the bucket for a set of answers. Total; never raises."""
    for bucket, predicate in CLASSIFICATION_RULES:
        if predicate(answers):
            return bucket
    return DEFAULT_BUCKET
