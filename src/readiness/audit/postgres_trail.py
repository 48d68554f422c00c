"""PostgreSQL score audit trail.

Design Requirements:
    - Append-only: INSERT only, no UPDATE/DELETE (enforced by DB trigger)
    - Same-assessment appends serialized across processes with a
      transaction-scoped advisory lock
    - Fail closed: any DB error raises AuditTrailError
    - Idempotent on audit_entry_id, so a retried append is harmless
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from readiness.audit.trail import AuditChainError, AuditTrailError
from readiness.models.score_result import AuditEntry
from readiness.persistence.db import ConnectionFactory, begin_app_conn

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)


class PostgresAuditTrail:
    """Audit trail stored in the score_audit_log table.

    Each record() runs in its own transaction. emit_in_tx() lets callers
    make the append atomic with other writes on the same connection.
    """

    _INSERT_SQL = text(
        """
        INSERT INTO score_audit_log (
            audit_entry_id, assessment_id, previous_score_result_id, new_score_result_id,
            rule_set_version_before, rule_set_version_after, total_before, total_after,
            triggered_by, occurred_at, reason, job_id
        ) VALUES (
            :audit_entry_id, :assessment_id, :previous_score_result_id, :new_score_result_id,
            :rule_set_version_before, :rule_set_version_after, :total_before, :total_after,
            :triggered_by, :occurred_at, :reason, :job_id
        )
        """
    )

    _SELECT_SQL = """
        SELECT audit_entry_id, assessment_id, previous_score_result_id, new_score_result_id,
               rule_set_version_before, rule_set_version_after, total_before, total_after,
               triggered_by, occurred_at, reason, job_id
        FROM score_audit_log
        WHERE assessment_id = :assessment_id
    """

    def __init__(self, connect: ConnectionFactory = begin_app_conn, verify_chain: bool = True):
        self._connect = connect
        self._verify_chain = verify_chain

    def record(self, entry: AuditEntry) -> None:
        try:
            with self._connect() as conn:
                self.emit_in_tx(conn, entry)
        except SQLAlchemyError as e:
            raise AuditTrailError(f"Failed to record audit entry: {e}") from e

    def emit_in_tx(self, conn: Connection, entry: AuditEntry) -> None:
        """Append an entry within an existing transaction.

        An entry already present (same audit_entry_id) is left as is.

        Raises:
            AuditChainError: If the entry does not continue the chain.
            SQLAlchemyError: If the INSERT fails.
        """
        conn.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:assessment_id))"),
            {"assessment_id": entry.assessment_id},
        )
        exists = conn.execute(
            text("SELECT 1 FROM score_audit_log WHERE audit_entry_id = :audit_entry_id"),
            {"audit_entry_id": entry.audit_entry_id},
        ).fetchone()
        if exists is not None:
            logger.debug("Audit entry %s already recorded", entry.audit_entry_id)
            return
        if self._verify_chain:
            latest = conn.execute(
                text(self._SELECT_SQL + " ORDER BY seq DESC LIMIT 1"),
                {"assessment_id": entry.assessment_id},
            ).fetchone()
            expected = str(latest.new_score_result_id) if latest is not None else None
            if entry.previous_score_result_id != expected:
                raise AuditChainError(entry.assessment_id, expected, entry.previous_score_result_id)

        conn.execute(
            self._INSERT_SQL,
            {
                "audit_entry_id": entry.audit_entry_id,
                "assessment_id": entry.assessment_id,
                "previous_score_result_id": entry.previous_score_result_id,
                "new_score_result_id": entry.new_score_result_id,
                "rule_set_version_before": entry.rule_set_version_before,
                "rule_set_version_after": entry.rule_set_version_after,
                "total_before": entry.total_before,
                "total_after": entry.total_after,
                "triggered_by": entry.triggered_by,
                "occurred_at": entry.timestamp,
                "reason": entry.reason,
                "job_id": entry.job_id,
            },
        )

    def history(self, assessment_id: str) -> list[AuditEntry]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    text(self._SELECT_SQL + " ORDER BY seq"),
                    {"assessment_id": assessment_id},
                ).fetchall()
        except SQLAlchemyError as e:
            raise AuditTrailError(f"Failed to read audit history: {e}") from e
        return [_row_to_entry(row) for row in rows]


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _row_to_entry(row: Any) -> AuditEntry:
    """Convert database row to AuditEntry."""
    occurred_at = row.occurred_at
    if isinstance(occurred_at, str):
        occurred_at = datetime.fromisoformat(occurred_at)
    return AuditEntry(
        audit_entry_id=str(row.audit_entry_id),
        assessment_id=str(row.assessment_id),
        previous_score_result_id=_optional_str(row.previous_score_result_id),
        new_score_result_id=str(row.new_score_result_id),
        rule_set_version_before=row.rule_set_version_before,
        rule_set_version_after=row.rule_set_version_after,
        total_before=row.total_before,
        total_after=row.total_after,
        triggered_by=row.triggered_by,
        timestamp=occurred_at,
        reason=row.reason,
        job_id=row.job_id,
    )
