"""Tests for the four dimension scorers."""

from __future__ import annotations

import itertools

import pytest

from readiness.models.assessment import InvestorType, MrrBand, Stage, TeamSizeBand
from readiness.models.rule_set import Dimension
from readiness.scoring.scorers import (
    score_dimensions,
    score_financials,
    score_idea,
    score_team,
    score_traction,
    unclamped_points,
)
from tests.fixtures.builders import make_answers


class TestExampleAnswers:
    """The launch-stage example scores idea 80, financials 15, team 95, traction 30."""

    def test_dimension_scores(self) -> None:
        scores = score_dimensions(make_answers())

        assert scores.idea.score == 80
        assert scores.financials.score == 15
        assert scores.team.score == 95
        assert scores.traction.score == 30

    def test_idea_rationale_lists_factors_in_order(self) -> None:
        rationale = score_idea(make_answers()).rationale

        assert rationale == (
            "Business idea scored 80/100. Key factors: working prototype demonstrates "
            "feasibility, MVP launch demonstrates market entry capability."
        )

    def test_financials_rationale_mentions_missing_cap_table(self) -> None:
        rationale = score_financials(make_answers()).rationale

        assert rationale.startswith("Financial health scored 15/100.")
        assert "missing cap table documentation" in rationale
        assert rationale.index("pre-revenue stage") < rationale.index("no recurring revenue")

    def test_traction_includes_funding_goal_bonus(self) -> None:
        result = score_traction(make_answers())

        assert result.score == 30
        assert "clear funding strategy" in result.rationale


class TestScorerRules:
    """Individual sub-factors."""

    def test_strongest_financials_reach_100(self) -> None:
        answers = make_answers(
            hasRevenue=True, mrrBand="high", hasCapTable=True, hasExternalCapital=True
        )
        assert score_financials(answers).score == 100

    def test_team_of_eleven_to_fifty_outscores_fifty_plus(self) -> None:
        medium = score_team(make_answers(teamSizeBand="11-50"))
        large = score_team(make_answers(teamSizeBand="50+"))

        assert medium.score == 100
        assert large.score == 85
        assert "overhead" in large.rationale

    def test_part_time_team(self) -> None:
        assert score_team(make_answers(fullTimeTeam=False, teamSizeBand="1-2")).score == 35

    def test_blank_funding_goal_earns_nothing(self) -> None:
        result = score_traction(make_answers(fundingGoal="   "))

        assert result.score == 20
        assert "funding strategy" not in result.rationale

    def test_term_sheets_and_late_stage_investors(self) -> None:
        answers = make_answers(hasTermSheets=True, investorTypeEngaged="lateStage")
        assert score_traction(answers).score == 100

    @pytest.mark.parametrize(
        ("stage", "expected"),
        [("concept", 60), ("launch", 80), ("scale", 90), ("exit", 85)],
    )
    def test_stage_bonus(self, stage: str, expected: int) -> None:
        assert score_idea(make_answers(stage=stage)).score == expected


class TestBounds:
    """Authored bonus tables never push a scorer past 100 before clamping."""

    def test_unclamped_points_within_range_for_every_answer_combination(self) -> None:
        flags = [True, False]
        for (
            prototype,
            capital,
            revenue,
            full_time,
            term_sheets,
            cap_table,
            mrr,
            team_size,
            investor,
            stage,
        ) in itertools.product(
            flags,
            flags,
            flags,
            flags,
            flags,
            flags,
            list(MrrBand),
            list(TeamSizeBand),
            list(InvestorType),
            list(Stage),
        ):
            answers = make_answers(
                hasPrototype=prototype,
                hasExternalCapital=capital,
                hasRevenue=revenue,
                fullTimeTeam=full_time,
                hasTermSheets=term_sheets,
                hasCapTable=cap_table,
                mrrBand=mrr.value,
                teamSizeBand=team_size.value,
                investorTypeEngaged=investor.value,
                stage=stage.value,
            )
            for dimension in Dimension:
                assert 0 <= unclamped_points(dimension, answers) <= 100

    def test_scorers_are_deterministic(self) -> None:
        answers = make_answers()
        assert score_dimensions(answers) == score_dimensions(answers)
