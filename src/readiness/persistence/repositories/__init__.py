"""Persistence repositories for the readiness service.

Postgres persistence with in-memory fallbacks for development/testing.
"""

from readiness.persistence.repositories.assessments import (
    AssessmentExistsError,
    AssessmentsRepository,
    InMemoryAssessmentsRepository,
    PostgresAssessmentsRepository,
    clear_in_memory_assessments,
    get_assessments_repository,
)
from readiness.persistence.repositories.scores import (
    InMemoryScoresRepository,
    PostgresScoresRepository,
    ScoresRepository,
    clear_in_memory_scores,
    get_scores_repository,
)

__all__ = [
    "AssessmentExistsError",
    "AssessmentsRepository",
    "InMemoryAssessmentsRepository",
    "InMemoryScoresRepository",
    "PostgresAssessmentsRepository",
    "PostgresScoresRepository",
    "ScoresRepository",
    "clear_in_memory_assessments",
    "clear_in_memory_scores",
    "get_assessments_repository",
    "get_scores_repository",
]
