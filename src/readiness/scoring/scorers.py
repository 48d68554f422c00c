"""Dimension scorers: pure functions mapping answers to a 0-100 score and rationale.

Each scorer accumulates points from sub-factors in a fixed order and clamps
the sum to [0, 100]. Clamping, not normalization: a scorer whose unclamped
points exceed 100 indicates a rule-authoring bug, so the bonus tables below
are authored to stay within range.

Rationale strings are deterministic templates listing every contributing
factor in application order; they feed the UI explanation text and audit
diffs, so their wording is stable.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from readiness.models.assessment import (
    AssessmentAnswers,
    InvestorType,
    MrrBand,
    Stage,
    TeamSizeBand,
)
from readiness.models.rule_set import Dimension
from readiness.models.score_result import DimensionScore, DimensionScores

MIN_SCORE = 0
MAX_SCORE = 100

IDEA_LABEL = "Business idea"
FINANCIALS_LABEL = "Financial health"
TEAM_LABEL = "Team strength"
TRACTION_LABEL = "Market traction"

STAGE_BONUS: dict[Stage, tuple[int, str]] = {
    Stage.CONCEPT: (10, "early concept stage shows potential but needs development"),
    Stage.LAUNCH: (30, "MVP launch demonstrates market entry capability"),
    Stage.SCALE: (40, "scaling stage shows proven market demand"),
    Stage.EXIT: (35, "exit-ready stage indicates mature business model"),
}

MRR_BONUS: dict[MrrBand, tuple[int, str]] = {
    MrrBand.NONE: (5, "no recurring revenue model"),
    MrrBand.LOW: (20, "established low MRR base"),
    MrrBand.MEDIUM: (30, "solid MRR growth trajectory"),
    MrrBand.HIGH: (40, "strong MRR performance"),
}

# 50+ deliberately scores below 11-50: large headcount is read as overhead risk.
TEAM_SIZE_BONUS: dict[TeamSizeBand, tuple[int, str]] = {
    TeamSizeBand.SOLO: (15, "small founding team allows for agility but may lack diverse skills"),
    TeamSizeBand.SMALL: (35, "optimal team size for startup growth and specialization"),
    TeamSizeBand.MEDIUM: (40, "established team size indicates successful scaling"),
    TeamSizeBand.LARGE: (
        25,
        "large team may indicate later-stage company or potential overhead concerns",
    ),
}

INVESTOR_BONUS: dict[InvestorType, tuple[int, str]] = {
    InvestorType.NONE: (5, "no investor engagement limits funding options"),
    InvestorType.ANGELS: (25, "angel investor engagement shows initial market validation"),
    InvestorType.VC: (35, "VC engagement indicates scaling potential"),
    InvestorType.LATE_STAGE: (40, "late-stage investor interest shows proven business model"),
}


@dataclass
class ScoreTally:
    """Running point total for one dimension, with factors in application order."""

    label: str
    points: int = 0
    factors: list[str] = field(default_factory=list)

    def add(self, points: int, factor: str) -> None:
        self.points += points
        self.factors.append(factor)

    def to_score(self) -> DimensionScore:
        score = max(MIN_SCORE, min(MAX_SCORE, self.points))
        rationale = f"{self.label} scored {score}/100. Key factors: {', '.join(self.factors)}."
        return DimensionScore(score=score, rationale=rationale)


def tally_idea(answers: AssessmentAnswers) -> ScoreTally:
    tally = ScoreTally(IDEA_LABEL)
    if answers.has_prototype:
        tally.add(50, "working prototype demonstrates feasibility")
    else:
        tally.add(15, "concept stage without prototype limits validation")
    tally.add(*STAGE_BONUS[answers.stage])
    return tally


def tally_financials(answers: AssessmentAnswers) -> ScoreTally:
    tally = ScoreTally(FINANCIALS_LABEL)
    if answers.has_revenue:
        tally.add(35, "active revenue generation")
    else:
        tally.add(10, "pre-revenue stage")
    tally.add(*MRR_BONUS[answers.mrr_band])
    if answers.has_cap_table:
        tally.add(15, "documented ownership structure")
    else:
        tally.add(0, "missing cap table documentation reduces investor confidence")
    if answers.has_external_capital:
        tally.add(10, "previous external funding validates business")
    return tally


def tally_team(answers: AssessmentAnswers) -> ScoreTally:
    tally = ScoreTally(TEAM_LABEL)
    if answers.full_time_team:
        tally.add(60, "full-time team commitment shows dedication")
    else:
        tally.add(20, "part-time commitment may limit execution speed")
    tally.add(*TEAM_SIZE_BONUS[answers.team_size_band])
    return tally


def tally_traction(answers: AssessmentAnswers) -> ScoreTally:
    tally = ScoreTally(TRACTION_LABEL)
    if answers.has_term_sheets:
        tally.add(50, "term sheets received show serious investor interest")
    else:
        tally.add(15, "no term sheets yet but may be appropriate for current stage")
    tally.add(*INVESTOR_BONUS[answers.investor_type_engaged])
    if answers.has_funding_goal:
        tally.add(10, "clear funding strategy")
    return tally


def score_idea(answers: AssessmentAnswers) -> DimensionScore:
    """Idea: prototype base plus stage bonus."""
    return tally_idea(answers).to_score()


def score_financials(answers: AssessmentAnswers) -> DimensionScore:
    """Financials: revenue base, MRR bonus, cap table and external capital."""
    return tally_financials(answers).to_score()


def score_team(answers: AssessmentAnswers) -> DimensionScore:
    """Team: commitment base plus team-size bonus."""
    return tally_team(answers).to_score()


def score_traction(answers: AssessmentAnswers) -> DimensionScore:
    """Traction: term-sheet base, investor engagement and stated funding goal."""
    return tally_traction(answers).to_score()


DIMENSION_TALLIES: dict[Dimension, Callable[[AssessmentAnswers], ScoreTally]] = {
    Dimension.IDEA: tally_idea,
    Dimension.FINANCIALS: tally_financials,
    Dimension.TEAM: tally_team,
    Dimension.TRACTION: tally_traction,
}


def unclamped_points(dimension: Dimension, answers: AssessmentAnswers) -> int:
    """Points a scorer accumulates before clamping (for rule-authoring checks)."""
    return DIMENSION_TALLIES[dimension](answers).points


def score_dimensions(answers: AssessmentAnswers) -> DimensionScores:
    """Run all four scorers."""
    return DimensionScores(
        idea=score_idea(answers),
        financials=score_financials(answers),
        team=score_team(answers),
        traction=score_traction(answers),
    )
