"""Score audit trail implementations.

Every score a user could see is linked to the score it replaced by one
AuditEntry. The trail exposes append and read only; there is no update or
delete in the interface.

Design requirements:
- Append-only: never truncate/overwrite
- Fail closed: any IO failure raises AuditTrailError
- Deterministic: consistent JSON serialization (sorted keys, no extra whitespace)
- Same-assessment appends are serialized; different assessments proceed independently
- Idempotent: re-recording an audit_entry_id already present is a no-op
- Chain check: an entry's previous_score_result_id must be the new_score_result_id
  of the latest entry for that assessment (None for the first entry)
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from readiness.concurrency import KeyedLock
from readiness.errors import PersistenceError, ScoringError
from readiness.models.score_result import AuditEntry

logger = logging.getLogger(__name__)

AUDIT_LOG_PATH_ENV = "READINESS_AUDIT_LOG_PATH"


class AuditTrailError(PersistenceError):
    """Raised when an audit entry cannot be written or read."""

    def __init__(self, reason: str) -> None:
        super().__init__("record_audit_entry", reason)


class AuditChainError(ScoringError):
    """Raised when an entry does not continue the assessment's audit chain."""

    def __init__(self, assessment_id: str, expected: str | None, actual: str | None) -> None:
        self.assessment_id = assessment_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Audit chain broken for assessment {assessment_id}: "
            f"previous_score_result_id={actual}, latest recorded={expected}"
        )


@runtime_checkable
class AuditTrail(Protocol):
    """Protocol for score audit trails. Implementations must be append-only."""

    def record(self, entry: AuditEntry) -> None:
        """Append an entry.

        Recording an entry whose audit_entry_id is already in the trail is a
        no-op, so a write retried after a timeout cannot break the chain.

        Raises:
            AuditTrailError: If the write fails.
            AuditChainError: If the entry does not continue the chain.
        """
        ...

    def history(self, assessment_id: str) -> list[AuditEntry]:
        """Entries for one assessment, oldest first."""
        ...


class ChainedAuditTrail(ABC):
    """Base trail: per-assessment serialization plus the chain check."""

    def __init__(self, verify_chain: bool = True) -> None:
        self._verify_chain = verify_chain
        self._locks = KeyedLock()

    def record(self, entry: AuditEntry) -> None:
        with self._locks.hold(entry.assessment_id):
            history = self.history(entry.assessment_id)
            if any(e.audit_entry_id == entry.audit_entry_id for e in history):
                logger.debug("Audit entry %s already recorded", entry.audit_entry_id)
                return
            if self._verify_chain:
                latest = history[-1].new_score_result_id if history else None
                if entry.previous_score_result_id != latest:
                    raise AuditChainError(
                        entry.assessment_id, latest, entry.previous_score_result_id
                    )
            self._append(entry)

        logger.debug(
            "Recorded audit entry %s for assessment %s",
            entry.audit_entry_id,
            entry.assessment_id,
        )

    @abstractmethod
    def history(self, assessment_id: str) -> list[AuditEntry]: ...

    @abstractmethod
    def _append(self, entry: AuditEntry) -> None: ...


class InMemoryAuditTrail(ChainedAuditTrail):
    """In-memory audit trail for testing and development."""

    def __init__(self, verify_chain: bool = True) -> None:
        super().__init__(verify_chain)
        self._entries: dict[str, list[AuditEntry]] = defaultdict(list)
        self._guard = threading.Lock()

    def history(self, assessment_id: str) -> list[AuditEntry]:
        with self._guard:
            return list(self._entries.get(assessment_id, []))

    def _append(self, entry: AuditEntry) -> None:
        with self._guard:
            self._entries[entry.assessment_id].append(entry)

    @property
    def entries(self) -> list[AuditEntry]:
        """All entries across assessments, in append order per assessment."""
        with self._guard:
            return [e for entries in self._entries.values() for e in entries]


class JsonlFileAuditTrail(ChainedAuditTrail):
    """Append-only JSONL file audit trail.

    Appends one line per entry: json.dumps(entry, sort_keys=True,
    separators=(",", ":")) + "\\n". Reads scan the whole file, which suits
    development and single-node deployments rather than large histories.
    """

    def __init__(self, file_path: str | Path, verify_chain: bool = True) -> None:
        super().__init__(verify_chain)
        self._file_path = Path(file_path)
        self._file_lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def history(self, assessment_id: str) -> list[AuditEntry]:
        if not self._file_path.exists():
            return []
        try:
            with self._file_lock, open(self._file_path, encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as e:
            raise AuditTrailError(f"Failed to read {self._file_path}: {e}") from e

        entries = []
        for line in lines:
            if not line.strip():
                continue
            try:
                event = json.loads(line)
                if event.get("assessment_id") == assessment_id:
                    entries.append(AuditEntry.model_validate(event))
            except (json.JSONDecodeError, AttributeError, ValidationError) as e:
                raise AuditTrailError(f"Corrupt audit entry in {self._file_path}: {e}") from e
        return entries

    def _append(self, entry: AuditEntry) -> None:
        line = json.dumps(entry.to_event(), sort_keys=True, separators=(",", ":")) + "\n"

        parent = self._file_path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AuditTrailError(f"Failed to create audit log directory {parent}: {e}") from e

        try:
            with self._file_lock, open(self._file_path, mode="a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            raise AuditTrailError(f"Failed to write audit entry to {self._file_path}: {e}") from e


_default_trail: AuditTrail | None = None


def get_audit_trail() -> AuditTrail:
    """Factory to get the configured audit trail.

    Postgres if READINESS_DATABASE_URL is set; else a JSONL file if
    READINESS_AUDIT_LOG_PATH is set; else a process-wide in-memory trail.
    """
    global _default_trail

    from readiness.persistence.db import is_postgres_configured

    if is_postgres_configured():
        from readiness.audit.postgres_trail import PostgresAuditTrail

        return PostgresAuditTrail()

    if _default_trail is None:
        path = os.environ.get(AUDIT_LOG_PATH_ENV)
        _default_trail = JsonlFileAuditTrail(path) if path else InMemoryAuditTrail()
    return _default_trail


def reset_default_trail() -> None:
    """Drop the process-wide default trail. For testing only."""
    global _default_trail
    _default_trail = None
