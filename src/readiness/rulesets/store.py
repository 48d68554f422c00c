"""RuleSet Store: immutable, versioned rule sets plus an active-version pointer.

Design requirements:
- Append-only: a published version is never edited or overwritten
- Activation is compare-and-set on the pointer; there is no process-wide
  mutable "current rule set"
- Reads are lock-free; publish/activate are serialized (writer lock in
  memory, row lock in Postgres)
- Fail-closed: unknown versions raise, they never fall back to defaults
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from readiness.errors import (
    ActiveVersionConflictError,
    PersistenceError,
    RuleSetNotFoundError,
    RuleSetVersionExistsError,
)
from readiness.models.assessment import Bucket
from readiness.models.rule_set import DimensionWeights, RuleSet, validate_rule_set
from readiness.persistence.db import ConnectionFactory, begin_app_conn, is_postgres_configured
from readiness.rulesets.document import bundled_rule_sets

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

ACTIVE_POINTER_ID: Final = "active"


class _Unchecked:
    """Sentinel: activate without comparing the current active version."""

    def __repr__(self) -> str:
        return "UNCHECKED"


UNCHECKED: Final = _Unchecked()

ExpectedVersion = str | None | _Unchecked


class RuleSetStore(Protocol):
    """Versioned rule-set storage with an atomically updated active pointer."""

    def publish(
        self,
        rule_set: RuleSet,
        *,
        activate: bool = True,
        expected_active_version: ExpectedVersion = UNCHECKED,
    ) -> RuleSet: ...

    def get(self, version: str) -> RuleSet | None: ...

    def get_or_raise(self, version: str) -> RuleSet: ...

    def get_active(self) -> RuleSet | None: ...

    def active_version(self) -> str | None: ...

    def list_versions(self) -> list[RuleSet]: ...

    def activate(self, version: str, expected_active_version: ExpectedVersion = UNCHECKED) -> None: ...

    def revert_to(
        self,
        version: str,
        new_version: str,
        reason: str,
        created_by: str | None = None,
        *,
        activate: bool = True,
    ) -> RuleSet: ...


def _check_expected(expected: ExpectedVersion, actual: str | None) -> None:
    if isinstance(expected, _Unchecked):
        return
    if expected != actual:
        raise ActiveVersionConflictError(expected, actual)


class BaseRuleSetStore(ABC):
    """Operations shared by every store, expressed over a few primitives."""

    @abstractmethod
    def publish(
        self,
        rule_set: RuleSet,
        *,
        activate: bool = True,
        expected_active_version: ExpectedVersion = UNCHECKED,
    ) -> RuleSet:
        """Publish a new version, optionally activating it in the same atomic step.

        Args:
            rule_set: The rule set to publish.
            activate: Whether to make it the active version.
            expected_active_version: If given, activation only succeeds when the
                active version still equals this value (None = nothing active).

        Returns:
            The published rule set.

        Raises:
            RuleSetVersionExistsError: If the version is already published.
            ConfigurationError: If the weights are invalid.
            ActiveVersionConflictError: If the compare-and-set fails.
        """

    @abstractmethod
    def get(self, version: str) -> RuleSet | None:
        """Get a rule set by version, or None."""

    @abstractmethod
    def active_version(self) -> str | None:
        """Version the active pointer refers to, or None."""

    @abstractmethod
    def list_versions(self) -> list[RuleSet]:
        """All published rule sets in SemVer order."""

    @abstractmethod
    def activate(self, version: str, expected_active_version: ExpectedVersion = UNCHECKED) -> None:
        """Point the active pointer at an already-published version.

        Raises:
            RuleSetNotFoundError: If the version was never published.
            ActiveVersionConflictError: If the compare-and-set fails.
        """

    def get_or_raise(self, version: str) -> RuleSet:
        """Get a rule set by version.

        Raises:
            RuleSetNotFoundError: If the version does not exist.
        """
        rule_set = self.get(version)
        if rule_set is None:
            raise RuleSetNotFoundError(version)
        return rule_set

    def get_active(self) -> RuleSet | None:
        version = self.active_version()
        if version is None:
            return None
        return self.get(version)

    def revert_to(
        self,
        version: str,
        new_version: str,
        reason: str,
        created_by: str | None = None,
        *,
        activate: bool = True,
    ) -> RuleSet:
        """Republish an older version's weights under a new version.

        History stays append-only: the old version is copied, never re-activated
        in place, so scores computed after the revert carry a distinct version.

        Raises:
            RuleSetNotFoundError: If the source version does not exist.
            RuleSetVersionExistsError: If new_version is already published.
        """
        source = self.get_or_raise(version)
        reverted = RuleSet(
            version=new_version,
            dimension_weights=source.dimension_weights,
            sector_overrides=dict(source.sector_overrides),
            created_by=created_by,
            change_reason=f"Reverted to version {version}: {reason}",
        )
        logger.info("Reverting rule set %s as new version %s", version, new_version)
        return self.publish(reverted, activate=activate)


class InMemoryRuleSetStore(BaseRuleSetStore):
    """Process-local store for tests and single-process deployments.

    Thread-safe: writes take a single lock; reads see whole, immutable
    RuleSet objects.
    """

    def __init__(self, rule_sets: list[RuleSet] | None = None) -> None:
        self._rule_sets: dict[str, RuleSet] = {}
        self._active: str | None = None
        self._lock = threading.Lock()
        for rule_set in rule_sets or []:
            self.publish(rule_set)

    def publish(
        self,
        rule_set: RuleSet,
        *,
        activate: bool = True,
        expected_active_version: ExpectedVersion = UNCHECKED,
    ) -> RuleSet:
        validate_rule_set(rule_set)
        with self._lock:
            if rule_set.version in self._rule_sets:
                raise RuleSetVersionExistsError(rule_set.version)
            if activate:
                _check_expected(expected_active_version, self._active)
            self._rule_sets[rule_set.version] = rule_set
            if activate:
                self._active = rule_set.version

        logger.info("Published rule set %s (active=%s)", rule_set.version, activate)
        return rule_set

    def get(self, version: str) -> RuleSet | None:
        return self._rule_sets.get(version)

    def active_version(self) -> str | None:
        return self._active

    def list_versions(self) -> list[RuleSet]:
        return sorted(self._rule_sets.values(), key=lambda rs: rs.semver)

    def activate(self, version: str, expected_active_version: ExpectedVersion = UNCHECKED) -> None:
        with self._lock:
            if version not in self._rule_sets:
                raise RuleSetNotFoundError(version)
            _check_expected(expected_active_version, self._active)
            self._active = version
        logger.info("Activated rule set %s", version)


class PostgresRuleSetStore(BaseRuleSetStore):
    """Postgres-backed store over the rule_sets and rule_set_pointer tables.

    Each operation runs in its own transaction. The pointer row is locked
    with SELECT ... FOR UPDATE so concurrent publishers cannot both win a
    compare-and-set.
    """

    def __init__(self, connect: ConnectionFactory = begin_app_conn) -> None:
        self._connect = connect

    def publish(
        self,
        rule_set: RuleSet,
        *,
        activate: bool = True,
        expected_active_version: ExpectedVersion = UNCHECKED,
    ) -> RuleSet:
        validate_rule_set(rule_set)
        try:
            with self._connect() as conn:
                if activate:
                    _check_expected(expected_active_version, self._lock_pointer(conn))

                major, minor, patch = rule_set.semver
                inserted = conn.execute(
                    text(
                        """
                        INSERT INTO rule_sets (
                            version, semver_major, semver_minor, semver_patch,
                            dimension_weights, sector_overrides, content_hash,
                            created_at, created_by, change_reason
                        ) VALUES (
                            :version, :major, :minor, :patch,
                            CAST(:dimension_weights AS JSONB), CAST(:sector_overrides AS JSONB),
                            :content_hash, :created_at, :created_by, :change_reason
                        )
                        ON CONFLICT (version) DO NOTHING
                        """
                    ),
                    {
                        "version": rule_set.version,
                        "major": major,
                        "minor": minor,
                        "patch": patch,
                        "dimension_weights": json.dumps(
                            rule_set.dimension_weights.model_dump(mode="json"), sort_keys=True
                        ),
                        "sector_overrides": json.dumps(
                            {
                                bucket.value: weights.model_dump(mode="json")
                                for bucket, weights in rule_set.sector_overrides.items()
                            },
                            sort_keys=True,
                        ),
                        "content_hash": rule_set.content_hash,
                        "created_at": rule_set.created_at,
                        "created_by": rule_set.created_by,
                        "change_reason": rule_set.change_reason,
                    },
                )
                if inserted.rowcount == 0:
                    raise RuleSetVersionExistsError(rule_set.version)

                if activate:
                    self._write_pointer(conn, rule_set.version)
        except SQLAlchemyError as e:
            raise PersistenceError("publish_rule_set", str(e)) from e

        logger.info("Published rule set %s (active=%s)", rule_set.version, activate)
        return rule_set

    def get(self, version: str) -> RuleSet | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    text(
                        """
                        SELECT version, dimension_weights, sector_overrides,
                               created_at, created_by, change_reason
                        FROM rule_sets
                        WHERE version = :version
                        """
                    ),
                    {"version": version},
                ).fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError("get_rule_set", str(e)) from e

        return _row_to_rule_set(row) if row is not None else None

    def active_version(self) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    text("SELECT version FROM rule_set_pointer WHERE pointer_id = :pointer_id"),
                    {"pointer_id": ACTIVE_POINTER_ID},
                ).fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError("get_active_rule_set", str(e)) from e

        return row.version if row is not None else None

    def list_versions(self) -> list[RuleSet]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    text(
                        """
                        SELECT version, dimension_weights, sector_overrides,
                               created_at, created_by, change_reason
                        FROM rule_sets
                        ORDER BY semver_major, semver_minor, semver_patch
                        """
                    )
                ).fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError("list_rule_sets", str(e)) from e

        return [_row_to_rule_set(row) for row in rows]

    def activate(self, version: str, expected_active_version: ExpectedVersion = UNCHECKED) -> None:
        try:
            with self._connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM rule_sets WHERE version = :version"),
                    {"version": version},
                ).fetchone()
                if exists is None:
                    raise RuleSetNotFoundError(version)
                _check_expected(expected_active_version, self._lock_pointer(conn))
                self._write_pointer(conn, version)
        except SQLAlchemyError as e:
            raise PersistenceError("activate_rule_set", str(e)) from e

        logger.info("Activated rule set %s", version)

    def _lock_pointer(self, conn: Connection) -> str | None:
        row = conn.execute(
            text(
                """
                SELECT version FROM rule_set_pointer
                WHERE pointer_id = :pointer_id
                FOR UPDATE
                """
            ),
            {"pointer_id": ACTIVE_POINTER_ID},
        ).fetchone()
        return row.version if row is not None else None

    def _write_pointer(self, conn: Connection, version: str) -> None:
        conn.execute(
            text(
                """
                INSERT INTO rule_set_pointer (pointer_id, version, updated_at)
                VALUES (:pointer_id, :version, now())
                ON CONFLICT (pointer_id)
                DO UPDATE SET version = EXCLUDED.version, updated_at = EXCLUDED.updated_at
                """
            ),
            {"pointer_id": ACTIVE_POINTER_ID, "version": version},
        )


def _load_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_rule_set(row: Any) -> RuleSet:
    """Convert database row to RuleSet."""
    overrides = _load_json(row.sector_overrides) or {}
    created_at = row.created_at
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    return RuleSet(
        version=row.version,
        dimension_weights=DimensionWeights.model_validate(_load_json(row.dimension_weights)),
        sector_overrides={
            Bucket(label): DimensionWeights.model_validate(weights)
            for label, weights in overrides.items()
        },
        created_at=created_at,
        created_by=row.created_by,
        change_reason=row.change_reason,
    )


def load_bundled_rule_sets(store: RuleSetStore) -> list[str]:
    """Publish packaged rule documents that the store does not hold yet.

    Missing versions are published inactive; when nothing is active the
    highest bundled version is activated. An existing active version is
    never changed.

    Returns:
        Versions newly published.
    """
    published: list[str] = []
    bundled = bundled_rule_sets()
    for rule_set in bundled:
        if store.get(rule_set.version) is None:
            store.publish(rule_set, activate=False)
            published.append(rule_set.version)

    if bundled and store.active_version() is None:
        store.activate(bundled[-1].version, expected_active_version=None)

    if published:
        logger.info("Loaded bundled rule sets: %s", ", ".join(published))
    return published


_default_store: InMemoryRuleSetStore | None = None
_default_store_lock = threading.Lock()


def get_rule_set_store() -> RuleSetStore:
    """Factory to get the appropriate rule set store.

    Returns the Postgres store if configured, otherwise a process-wide
    in-memory store seeded with the bundled rule sets.
    """
    global _default_store

    if is_postgres_configured():
        return PostgresRuleSetStore()

    with _default_store_lock:
        if _default_store is None:
            _default_store = InMemoryRuleSetStore()
            load_bundled_rule_sets(_default_store)
        return _default_store


def reset_default_store() -> None:
    """Drop the process-wide in-memory store. For testing only."""
    global _default_store
    with _default_store_lock:
        _default_store = None
