"""Typed exceptions for the readiness scoring engine.

Taxonomy:
- ConfigurationError: malformed or missing configuration (never retried)
- RuleSetNotFoundError: an explicit rule-set version does not exist
- ValidationError: assessment answers are incomplete or invalid (never retried)
- PersistenceError: a storage read/write failed after bounded retries
- StaleScoreError: the current score was replaced concurrently (never retried)
- ScoreIntegrityError: a stored score no longer reproduces from its inputs

All errors fail closed: no caller ever receives a guessed or default score.
"""

from __future__ import annotations

from typing import Any


class ScoringError(Exception):
    """Base class for every scoring engine error."""

    pass


class ConfigurationError(ScoringError):
    """Raised when a rule set or the runtime configuration is unusable.

    Attributes:
        missing: Names of missing configuration items, if any.
    """

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        super().__init__(message)


class RuleSetNotFoundError(ScoringError):
    """Raised when a requested rule-set version was never published."""

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"Rule set version '{version}' does not exist")


class InvalidRuleSetVersionError(ConfigurationError):
    """Raised when a version string is not MAJOR.MINOR.PATCH."""

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"Invalid rule set version '{version}': expected MAJOR.MINOR.PATCH")


class RuleSetVersionExistsError(ScoringError):
    """Raised when publishing a version that is already in the store."""

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(
            f"Rule set version '{version}' already published. "
            "Publish a new version instead of overwriting."
        )


class ActiveVersionConflictError(ScoringError):
    """Raised when the active-version compare-and-set loses a race."""

    def __init__(self, expected: str | None, actual: str | None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Active rule set version is '{actual}', expected '{expected}'")


class ValidationError(ScoringError):
    """Raised when assessment answers are missing fields or hold invalid values.

    Attributes:
        errors: List of {"field": ..., "message": ...} entries.
    """

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        self.errors = errors
        fields = ", ".join(str(e.get("field")) for e in errors) or "answers"
        super().__init__(f"Assessment answers invalid: {fields}")


class PersistenceError(ScoringError):
    """Raised when a storage operation fails after its single retry."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence operation '{operation}' failed: {reason}")


class StaleScoreError(ScoringError):
    """Raised when the current score changed between read and replace."""

    def __init__(self, assessment_id: str, expected: str | None, actual: str | None) -> None:
        self.assessment_id = assessment_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Current score for assessment {assessment_id} is {actual}, expected {expected}"
        )


class ScoreIntegrityError(ScoringError):
    """Raised when recomputing a stored score yields a different hash."""

    def __init__(self, score_result_id: str, expected_hash: str, computed_hash: str) -> None:
        self.score_result_id = score_result_id
        self.expected_hash = expected_hash
        self.computed_hash = computed_hash
        super().__init__(
            f"Integrity check failed for score_result_id={score_result_id}. "
            f"Expected hash: {expected_hash[:16]}..., "
            f"Computed hash: {computed_hash[:16]}..."
        )


def describe_error(exc: BaseException) -> str:
    """Render an exception as "<Type>: message" for job summaries."""
    return f"{type(exc).__name__}: {exc}"
