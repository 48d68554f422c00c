"""Scores repository: every ScoreResult ever computed for an assessment.

Rows are never deleted on replacement. Each assessment has at most one
'current' score; replacing it marks the old row superseded and links it to
its successor in the same transaction. Replacement is compare-and-set on
the current score id, so two writers cannot both supersede the same row.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from readiness.errors import PersistenceError, StaleScoreError
from readiness.models.assessment import Bucket
from readiness.models.rule_set import DimensionWeights
from readiness.models.score_result import (
    ComputedBy,
    DimensionScores,
    ScoreResult,
    ScoreStatus,
)
from readiness.persistence.db import ConnectionFactory, begin_app_conn, is_postgres_configured

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

_SCORE_COLUMNS = """
    score_result_id, assessment_id, rule_set_version, bucket, dimension_scores,
    total_score, weights_applied, answers_fingerprint, reproducibility_hash,
    computed_at, computed_by, status, superseded_by
"""


class ScoresRepository(Protocol):
    """Storage interface for score results."""

    def get(self, score_result_id: str) -> ScoreResult | None: ...

    def get_current(self, assessment_id: str) -> ScoreResult | None: ...

    def history(self, assessment_id: str) -> list[ScoreResult]: ...

    def replace_current(
        self, new: ScoreResult, expected_current_id: str | None
    ) -> ScoreResult: ...

    def restore_current(
        self,
        assessment_id: str,
        previous_score_result_id: str | None,
        failed_score_result_id: str,
    ) -> None: ...


def _require_assessment(result: ScoreResult) -> str:
    if result.assessment_id is None:
        raise PersistenceError("replace_current_score", "score result has no assessment_id")
    return result.assessment_id


class PostgresScoresRepository:
    """Postgres repository over the scores table."""

    def __init__(self, connect: ConnectionFactory = begin_app_conn) -> None:
        self._connect = connect

    def get(self, score_result_id: str) -> ScoreResult | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    text(
                        f"SELECT {_SCORE_COLUMNS} FROM scores "
                        "WHERE score_result_id = :score_result_id"
                    ),
                    {"score_result_id": score_result_id},
                ).fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError("get_score", str(e)) from e
        return _row_to_score(row) if row is not None else None

    def get_current(self, assessment_id: str) -> ScoreResult | None:
        try:
            with self._connect() as conn:
                row = self._current_row(conn, assessment_id, lock=False)
        except SQLAlchemyError as e:
            raise PersistenceError("get_current_score", str(e)) from e
        return _row_to_score(row) if row is not None else None

    def history(self, assessment_id: str) -> list[ScoreResult]:
        """All scores for an assessment, oldest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    text(
                        f"SELECT {_SCORE_COLUMNS} FROM scores "
                        "WHERE assessment_id = :assessment_id "
                        "ORDER BY computed_at, score_result_id"
                    ),
                    {"assessment_id": assessment_id},
                ).fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError("score_history", str(e)) from e
        return [_row_to_score(row) for row in rows]

    def replace_current(self, new: ScoreResult, expected_current_id: str | None) -> ScoreResult:
        """Make `new` the current score, superseding `expected_current_id`.

        Raises:
            StaleScoreError: If the current score is not `expected_current_id`.
            PersistenceError: On database failure.
        """
        assessment_id = _require_assessment(new)
        stored = new.model_copy(update={"status": ScoreStatus.CURRENT, "superseded_by": None})
        try:
            with self._connect() as conn:
                row = self._current_row(conn, assessment_id, lock=True)
                actual = str(row.score_result_id) if row is not None else None
                if actual != expected_current_id:
                    raise StaleScoreError(assessment_id, expected_current_id, actual)

                if actual is not None:
                    conn.execute(
                        text(
                            """
                            UPDATE scores
                            SET status = :status, superseded_by = :superseded_by
                            WHERE score_result_id = :score_result_id
                            """
                        ),
                        {
                            "status": ScoreStatus.SUPERSEDED.value,
                            "superseded_by": stored.score_result_id,
                            "score_result_id": actual,
                        },
                    )
                self._insert(conn, stored)
        except SQLAlchemyError as e:
            raise PersistenceError("replace_current_score", str(e)) from e
        return stored

    def restore_current(
        self,
        assessment_id: str,
        previous_score_result_id: str | None,
        failed_score_result_id: str,
    ) -> None:
        """Undo a replacement whose audit entry could not be written.

        The un-audited score is removed and the previous one becomes current again.
        """
        try:
            with self._connect() as conn:
                conn.execute(
                    text(
                        """
                        DELETE FROM scores
                        WHERE score_result_id = :failed_id AND assessment_id = :assessment_id
                        """
                    ),
                    {"failed_id": failed_score_result_id, "assessment_id": assessment_id},
                )
                if previous_score_result_id is not None:
                    conn.execute(
                        text(
                            """
                            UPDATE scores
                            SET status = :status, superseded_by = NULL
                            WHERE score_result_id = :previous_id
                            """
                        ),
                        {
                            "status": ScoreStatus.CURRENT.value,
                            "previous_id": previous_score_result_id,
                        },
                    )
        except SQLAlchemyError as e:
            raise PersistenceError("restore_current_score", str(e)) from e

        logger.warning(
            "Restored score %s as current for assessment %s (discarded %s)",
            previous_score_result_id,
            assessment_id,
            failed_score_result_id,
        )

    def _current_row(self, conn: Connection, assessment_id: str, *, lock: bool) -> Any:
        suffix = " FOR UPDATE" if lock else ""
        return conn.execute(
            text(
                f"SELECT {_SCORE_COLUMNS} FROM scores "
                f"WHERE assessment_id = :assessment_id AND status = :status{suffix}"
            ),
            {"assessment_id": assessment_id, "status": ScoreStatus.CURRENT.value},
        ).fetchone()

    def _insert(self, conn: Connection, result: ScoreResult) -> None:
        row = result.to_db_dict()
        row["dimension_scores"] = json.dumps(row["dimension_scores"], sort_keys=True)
        row["weights_applied"] = json.dumps(row["weights_applied"], sort_keys=True)
        conn.execute(
            text(
                """
                INSERT INTO scores (
                    score_result_id, assessment_id, rule_set_version, bucket,
                    dimension_scores, total_score, weights_applied,
                    answers_fingerprint, reproducibility_hash, computed_at,
                    computed_by, status, superseded_by
                ) VALUES (
                    :score_result_id, :assessment_id, :rule_set_version, :bucket,
                    CAST(:dimension_scores AS JSONB), :total_score, CAST(:weights_applied AS JSONB),
                    :answers_fingerprint, :reproducibility_hash, :computed_at,
                    :computed_by, :status, :superseded_by
                )
                """
            ),
            row,
        )


def _load_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_score(row: Any) -> ScoreResult:
    """Convert database row to ScoreResult."""
    computed_at = row.computed_at
    if isinstance(computed_at, str):
        computed_at = datetime.fromisoformat(computed_at)
    return ScoreResult(
        score_result_id=str(row.score_result_id),
        assessment_id=str(row.assessment_id),
        rule_set_version=row.rule_set_version,
        bucket=Bucket(row.bucket),
        dimension_scores=DimensionScores.model_validate(_load_json(row.dimension_scores)),
        total_score=row.total_score,
        weights_applied=DimensionWeights.model_validate(_load_json(row.weights_applied)),
        answers_fingerprint=row.answers_fingerprint,
        reproducibility_hash=row.reproducibility_hash,
        computed_at=computed_at,
        computed_by=ComputedBy(row.computed_by),
        status=ScoreStatus(row.status),
        superseded_by=str(row.superseded_by) if row.superseded_by is not None else None,
    )


class InMemoryScoresRepository:
    """In-memory fallback repository for when Postgres is not configured.

    A single lock makes replace_current and restore_current atomic.
    """

    def __init__(self) -> None:
        self._scores: dict[str, ScoreResult] = {}
        self._by_assessment: dict[str, list[str]] = defaultdict(list)
        self._current: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, score_result_id: str) -> ScoreResult | None:
        return self._scores.get(score_result_id)

    def get_current(self, assessment_id: str) -> ScoreResult | None:
        current_id = self._current.get(assessment_id)
        return self._scores.get(current_id) if current_id is not None else None

    def history(self, assessment_id: str) -> list[ScoreResult]:
        with self._lock:
            return [self._scores[sid] for sid in self._by_assessment.get(assessment_id, [])]

    def replace_current(self, new: ScoreResult, expected_current_id: str | None) -> ScoreResult:
        assessment_id = _require_assessment(new)
        stored = new.model_copy(update={"status": ScoreStatus.CURRENT, "superseded_by": None})
        with self._lock:
            actual = self._current.get(assessment_id)
            if actual != expected_current_id:
                raise StaleScoreError(assessment_id, expected_current_id, actual)
            if actual is not None:
                self._scores[actual] = self._scores[actual].model_copy(
                    update={
                        "status": ScoreStatus.SUPERSEDED,
                        "superseded_by": stored.score_result_id,
                    }
                )
            self._scores[stored.score_result_id] = stored
            self._by_assessment[assessment_id].append(stored.score_result_id)
            self._current[assessment_id] = stored.score_result_id
        return stored

    def restore_current(
        self,
        assessment_id: str,
        previous_score_result_id: str | None,
        failed_score_result_id: str,
    ) -> None:
        with self._lock:
            self._scores.pop(failed_score_result_id, None)
            ids = self._by_assessment.get(assessment_id, [])
            if failed_score_result_id in ids:
                ids.remove(failed_score_result_id)
            if previous_score_result_id is None:
                self._current.pop(assessment_id, None)
            else:
                self._scores[previous_score_result_id] = self._scores[
                    previous_score_result_id
                ].model_copy(update={"status": ScoreStatus.CURRENT, "superseded_by": None})
                self._current[assessment_id] = previous_score_result_id

        logger.warning(
            "Restored score %s as current for assessment %s (discarded %s)",
            previous_score_result_id,
            assessment_id,
            failed_score_result_id,
        )


_default_repository: InMemoryScoresRepository | None = None


def get_scores_repository() -> ScoresRepository:
    """Factory to get appropriate scores repository.

    Returns Postgres repository if configured, otherwise the process-wide
    in-memory fallback.
    """
    global _default_repository

    if is_postgres_configured():
        return PostgresScoresRepository()
    if _default_repository is None:
        _default_repository = InMemoryScoresRepository()
    return _default_repository


def clear_in_memory_scores() -> None:
    """Drop the in-memory fallback store. For testing only."""
    global _default_repository
    _default_repository = None
