"""Tests for the readiness command-line interface."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from readiness.cli import create_parser, main
from readiness.models.assessment import StoredAssessment
from readiness.persistence.repositories.assessments import get_assessments_repository
from readiness.services import factory
from tests.fixtures.builders import answers_payload

REWEIGHTED_DOCUMENT: dict[str, Any] = {
    "version": "0.2.0",
    "dimensions": {"market": 5, "moat": 5, "financials": 40, "team": 25, "traction": 25},
    "changeReason": "Weight financials higher",
}


def _write_json(path: Path, data: Any) -> str:
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, Any]:
    exit_code = main(list(argv))
    return exit_code, json.loads(capsys.readouterr().out)


class TestParser:
    """Argument parsing."""

    def test_rescore_defaults(self) -> None:
        args = create_parser().parse_args(["rescore", "--target", "0.2.0", "--reason", "r"])

        assert args.triggered_by == "cli"
        assert args.assessment_ids is None

    def test_repeatable_assessment_id(self) -> None:
        args = create_parser().parse_args(
            [
                "rescore",
                "--target",
                "0.2.0",
                "--reason",
                "r",
                "--assessment-id",
                "a",
                "--assessment-id",
                "b",
            ]
        )

        assert args.assessment_ids == ["a", "b"]

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 0
        assert "usage: readiness" in capsys.readouterr().out


class TestScoreCommand:
    """readiness score."""

    def test_scores_answers_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = _write_json(tmp_path / "answers.json", answers_payload())

        exit_code, output = _run(capsys, "score", "--input", path)

        assert exit_code == 0
        assert output["totalScore"] == 58
        assert output["ruleSetVersion"] == "0.1.0"

    def test_invalid_json(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "answers.json"
        path.write_text("{not json", encoding="utf-8")

        exit_code, output = _run(capsys, "score", "--input", str(path))

        assert exit_code == 1
        assert output["error"]["code"] == "INVALID_JSON"

    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code, output = _run(capsys, "score", "--input", str(tmp_path / "absent.json"))

        assert exit_code == 1
        assert output["error"]["message"].startswith("File not found")

    def test_invalid_answers(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write_json(tmp_path / "answers.json", {"hasPrototype": True})

        exit_code, output = _run(capsys, "score", "--input", path)

        assert exit_code == 1
        assert output["error"]["code"] == "ANSWERS_INVALID"
        assert output["error"]["details"]["errors"]

    def test_unknown_version(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write_json(tmp_path / "answers.json", answers_payload())

        exit_code, output = _run(capsys, "score", "--input", path, "--ruleset-version", "9.9.9")

        assert exit_code == 1
        assert output["error"]["code"] == "RULESET_NOT_FOUND"


class TestRuleSetsCommand:
    """readiness rulesets."""

    def test_list_bundled(self, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code, output = _run(capsys, "rulesets", "list")

        assert exit_code == 0
        assert output["activeVersion"] == "0.1.0"
        assert [item["version"] for item in output["items"]] == ["0.1.0"]

    def test_show(self, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code, output = _run(capsys, "rulesets", "show", "0.1.0")

        assert exit_code == 0
        assert output["active"] is True
        assert output["changeReason"] == "Initial scoring methodology"

    def test_publish_and_revert(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = _write_json(tmp_path / "rules.json", REWEIGHTED_DOCUMENT)

        exit_code, published = _run(capsys, "rulesets", "publish", path)
        assert exit_code == 0
        assert published["active"] is True

        exit_code, reverted = _run(
            capsys,
            "rulesets",
            "revert",
            "0.1.0",
            "--new-version",
            "0.3.0",
            "--reason",
            "roll back",
        )
        assert exit_code == 0
        assert reverted["version"] == "0.3.0"
        assert reverted["active"] is True

    def test_publish_duplicate(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = _write_json(tmp_path / "rules.json", {**REWEIGHTED_DOCUMENT, "version": "0.1.0"})

        exit_code, output = _run(capsys, "rulesets", "publish", path)

        assert exit_code == 1
        assert output["error"]["code"] == "RULESET_VERSION_EXISTS"


class TestRescoreCommand:
    """readiness rescore."""

    def test_migrates_population(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        service = factory.get_scoring_service()
        for _ in range(2):
            service.submit_assessment(answers_payload())
        path = _write_json(tmp_path / "rules.json", REWEIGHTED_DOCUMENT)
        _run(capsys, "rulesets", "publish", path, "--no-activate")

        exit_code, output = _run(
            capsys, "rescore", "--target", "0.2.0", "--reason", "reweight", "--scored-under", "0.1.0"
        )

        assert exit_code == 0
        assert output["succeeded"] == 2
        assert output["triggered_by"] == "cli"

    def test_item_failure_exits_2(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        factory.get_scoring_service().submit_assessment(answers_payload())
        get_assessments_repository().create(
            StoredAssessment(assessment_id="broken", answers={"stage": "launch"})
        )
        path = _write_json(tmp_path / "rules.json", REWEIGHTED_DOCUMENT)
        _run(capsys, "rulesets", "publish", path, "--no-activate")

        exit_code, output = _run(capsys, "rescore", "--target", "0.2.0", "--reason", "reweight")

        assert exit_code == 2
        assert output["succeeded"] == 1
        assert [f["assessment_id"] for f in output["failed"]] == ["broken"]

    def test_unknown_target(self, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code, output = _run(capsys, "rescore", "--target", "9.9.9", "--reason", "typo")

        assert exit_code == 1
        assert output["error"]["code"] == "RULESET_NOT_FOUND"
