"""Tests for the append-only score audit trail."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from readiness.audit.trail import (
    AUDIT_LOG_PATH_ENV,
    AuditChainError,
    AuditTrail,
    AuditTrailError,
    InMemoryAuditTrail,
    JsonlFileAuditTrail,
    get_audit_trail,
)
from readiness.errors import PersistenceError
from readiness.models.score_result import AuditEntry


def _entry(assessment_id: str, previous: str | None, new: str, total: int = 50) -> AuditEntry:
    return AuditEntry(
        assessment_id=assessment_id,
        previous_score_result_id=previous,
        new_score_result_id=new,
        rule_set_version_before="0.1.0" if previous else None,
        rule_set_version_after="0.2.0" if previous else "0.1.0",
        total_after=total,
        triggered_by="tester",
        reason="test",
    )


class TestInMemoryAuditTrail:
    """Chain checks and ordering."""

    def test_history_is_oldest_first(self) -> None:
        trail = InMemoryAuditTrail()
        trail.record(_entry("a-1", None, "s-1"))
        trail.record(_entry("a-1", "s-1", "s-2"))

        assert [e.new_score_result_id for e in trail.history("a-1")] == ["s-1", "s-2"]

    def test_history_is_per_assessment(self) -> None:
        trail = InMemoryAuditTrail()
        trail.record(_entry("a-1", None, "s-1"))
        trail.record(_entry("a-2", None, "s-9"))

        assert len(trail.history("a-1")) == 1
        assert trail.history("missing") == []
        assert len(trail.entries) == 2

    def test_entry_must_continue_the_chain(self) -> None:
        trail = InMemoryAuditTrail()
        trail.record(_entry("a-1", None, "s-1"))

        with pytest.raises(AuditChainError) as exc_info:
            trail.record(_entry("a-1", "s-other", "s-2"))

        assert exc_info.value.expected == "s-1"
        assert len(trail.history("a-1")) == 1

    def test_first_entry_must_have_no_predecessor(self) -> None:
        with pytest.raises(AuditChainError):
            InMemoryAuditTrail().record(_entry("a-1", "s-0", "s-1"))

    def test_chain_check_can_be_disabled(self) -> None:
        trail = InMemoryAuditTrail(verify_chain=False)
        trail.record(_entry("a-1", "s-0", "s-1"))

        assert len(trail.history("a-1")) == 1

    def test_recording_the_same_entry_twice_is_a_no_op(self) -> None:
        trail = InMemoryAuditTrail()
        first = _entry("a-1", None, "s-1")
        trail.record(first)
        trail.record(_entry("a-1", "s-1", "s-2"))

        trail.record(first)

        assert [e.new_score_result_id for e in trail.history("a-1")] == ["s-1", "s-2"]

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryAuditTrail(), AuditTrail)


class TestJsonlFileAuditTrail:
    """File-backed trail."""

    def test_appends_one_sorted_line_per_entry(self, tmp_path: Path) -> None:
        path = tmp_path / "audit" / "scores.jsonl"
        trail = JsonlFileAuditTrail(path)
        trail.record(_entry("a-1", None, "s-1"))
        trail.record(_entry("a-1", "s-1", "s-2"))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert list(first) == sorted(first)
        assert first["new_score_result_id"] == "s-1"

    def test_history_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "scores.jsonl"
        JsonlFileAuditTrail(path).record(_entry("a-1", None, "s-1"))

        reopened = JsonlFileAuditTrail(path)
        reopened.record(_entry("a-1", "s-1", "s-2"))

        assert [e.new_score_result_id for e in reopened.history("a-1")] == ["s-1", "s-2"]

    def test_unwritable_path_raises_trail_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        trail = JsonlFileAuditTrail(blocker / "scores.jsonl")

        with pytest.raises(AuditTrailError) as exc_info:
            trail.record(_entry("a-1", None, "s-1"))

        assert isinstance(exc_info.value, PersistenceError)

    @pytest.mark.parametrize("bad_line", ["{not json", "[1, 2]", '{"assessment_id": "a-1"}'])
    def test_corrupt_line_raises_trail_error(self, tmp_path: Path, bad_line: str) -> None:
        path = tmp_path / "scores.jsonl"
        trail = JsonlFileAuditTrail(path)
        trail.record(_entry("a-1", None, "s-1"))
        with open(path, mode="a", encoding="utf-8") as f:
            f.write(bad_line + "\n")

        with pytest.raises(AuditTrailError) as exc_info:
            trail.history("a-1")

        assert "Corrupt audit entry" in exc_info.value.reason

    def test_retried_append_is_not_duplicated(self, tmp_path: Path) -> None:
        path = tmp_path / "scores.jsonl"
        entry = _entry("a-1", None, "s-1")

        JsonlFileAuditTrail(path).record(entry)
        JsonlFileAuditTrail(path).record(entry)

        assert len(path.read_text(encoding="utf-8").splitlines()) == 1


class TestDefaultTrail:
    """Factory selection from the environment."""

    def test_in_memory_when_unconfigured(self) -> None:
        assert isinstance(get_audit_trail(), InMemoryAuditTrail)

    def test_jsonl_when_path_configured(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv(AUDIT_LOG_PATH_ENV, str(tmp_path / "trail.jsonl"))

        trail = get_audit_trail()

        assert isinstance(trail, JsonlFileAuditTrail)
        assert get_audit_trail() is trail
