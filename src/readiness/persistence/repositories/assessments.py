"""Assessments repository: submitted answers, stored exactly as received.

Answers are immutable once written; a retake is a new assessment. The only
removal is withdraw(), which undoes a submission whose score or initial
audit entry could not be stored, and refuses once any score exists.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from readiness.errors import PersistenceError
from readiness.models.assessment import StoredAssessment
from readiness.persistence.db import ConnectionFactory, begin_app_conn, is_postgres_configured

logger = logging.getLogger(__name__)


class AssessmentExistsError(PersistenceError):
    """Raised when inserting an assessment id that is already stored."""

    def __init__(self, assessment_id: str) -> None:
        self.assessment_id = assessment_id
        super().__init__("create_assessment", f"assessment {assessment_id} already exists")


class AssessmentsRepository(Protocol):
    """Storage interface for submitted assessments."""

    def create(self, assessment: StoredAssessment) -> StoredAssessment: ...

    def get(self, assessment_id: str) -> StoredAssessment | None: ...

    def list(
        self,
        *,
        assessment_ids: list[str] | None = None,
        user_id: str | None = None,
    ) -> list[StoredAssessment]: ...

    def withdraw(self, assessment_id: str) -> bool: ...


class PostgresAssessmentsRepository:
    """Postgres repository over the assessments table."""

    def __init__(self, connect: ConnectionFactory = begin_app_conn) -> None:
        self._connect = connect

    def create(self, assessment: StoredAssessment) -> StoredAssessment:
        """Insert a new assessment.

        Raises:
            AssessmentExistsError: If the id is already stored.
            PersistenceError: On any other database failure.
        """
        try:
            with self._connect() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO assessments (assessment_id, user_id, answers, created_at)
                        VALUES (:assessment_id, :user_id, CAST(:answers AS JSONB), :created_at)
                        """
                    ),
                    {
                        "assessment_id": assessment.assessment_id,
                        "user_id": assessment.user_id,
                        "answers": json.dumps(assessment.answers, sort_keys=True),
                        "created_at": assessment.created_at,
                    },
                )
        except IntegrityError as e:
            raise AssessmentExistsError(assessment.assessment_id) from e
        except SQLAlchemyError as e:
            raise PersistenceError("create_assessment", str(e)) from e
        return assessment

    def get(self, assessment_id: str) -> StoredAssessment | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    text(
                        """
                        SELECT assessment_id, user_id, answers, created_at
                        FROM assessments
                        WHERE assessment_id = :assessment_id
                        """
                    ),
                    {"assessment_id": assessment_id},
                ).fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError("get_assessment", str(e)) from e

        return _row_to_assessment(row) if row is not None else None

    def list(
        self,
        *,
        assessment_ids: list[str] | None = None,
        user_id: str | None = None,
    ) -> list[StoredAssessment]:
        """List assessments matching all given filters, oldest first."""
        clauses = []
        params: dict[str, Any] = {}
        if assessment_ids is not None:
            if not assessment_ids:
                return []
            clauses.append("assessment_id::text = ANY(:assessment_ids)")
            params["assessment_ids"] = list(assessment_ids)
        if user_id is not None:
            clauses.append("user_id = :user_id")
            params["user_id"] = user_id

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    text(
                        f"""
                        SELECT assessment_id, user_id, answers, created_at
                        FROM assessments
                        {where}
                        ORDER BY created_at, assessment_id
                        """
                    ),
                    params,
                ).fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError("list_assessments", str(e)) from e

        return [_row_to_assessment(row) for row in rows]

    def withdraw(self, assessment_id: str) -> bool:
        """Delete an assessment that has no scores. Returns True if a row was removed."""
        try:
            with self._connect() as conn:
                deleted = conn.execute(
                    text(
                        """
                        DELETE FROM assessments
                        WHERE assessment_id = :assessment_id
                          AND NOT EXISTS (
                              SELECT 1 FROM scores WHERE assessment_id = :assessment_id
                          )
                        """
                    ),
                    {"assessment_id": assessment_id},
                )
        except SQLAlchemyError as e:
            raise PersistenceError("withdraw_assessment", str(e)) from e
        return bool(deleted.rowcount)


def _row_to_assessment(row: Any) -> StoredAssessment:
    """Convert database row to StoredAssessment."""
    answers = row.answers
    if isinstance(answers, str):
        answers = json.loads(answers)
    created_at = row.created_at
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    return StoredAssessment(
        assessment_id=str(row.assessment_id),
        user_id=row.user_id,
        answers=answers,
        created_at=created_at,
    )


class InMemoryAssessmentsRepository:
    """In-memory fallback repository for when Postgres is not configured."""

    def __init__(self) -> None:
        self._assessments: dict[str, StoredAssessment] = {}
        self._lock = threading.Lock()

    def create(self, assessment: StoredAssessment) -> StoredAssessment:
        with self._lock:
            if assessment.assessment_id in self._assessments:
                raise AssessmentExistsError(assessment.assessment_id)
            self._assessments[assessment.assessment_id] = assessment
        return assessment

    def get(self, assessment_id: str) -> StoredAssessment | None:
        return self._assessments.get(assessment_id)

    def list(
        self,
        *,
        assessment_ids: list[str] | None = None,
        user_id: str | None = None,
    ) -> list[StoredAssessment]:
        items = [
            a
            for a in self._assessments.values()
            if (assessment_ids is None or a.assessment_id in assessment_ids)
            and (user_id is None or a.user_id == user_id)
        ]
        items.sort(key=lambda a: (a.created_at, a.assessment_id))
        return items

    def withdraw(self, assessment_id: str) -> bool:
        with self._lock:
            return self._assessments.pop(assessment_id, None) is not None


_default_repository: InMemoryAssessmentsRepository | None = None


def get_assessments_repository() -> AssessmentsRepository:
    """Factory to get appropriate assessments repository.

    Returns Postgres repository if configured, otherwise the process-wide
    in-memory fallback.
    """
    global _default_repository

    if is_postgres_configured():
        return PostgresAssessmentsRepository()
    if _default_repository is None:
        _default_repository = InMemoryAssessmentsRepository()
    return _default_repository


def clear_in_memory_assessments() -> None:
    """Drop the in-memory fallback store. For testing only."""
    global _default_repository
    _default_repository = None
