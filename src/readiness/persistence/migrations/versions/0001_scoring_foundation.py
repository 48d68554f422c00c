"""Scoring foundation: assessments, scores, score_audit_log, rule_sets, rule_set_pointer.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

- assessments: submitted answers, immutable after insert (unscored rows may be withdrawn)
- scores: every ScoreResult; at most one 'current' row per assessment
- score_audit_log: append-only audit trail with immutability trigger
- rule_sets: append-only published rule sets
- rule_set_pointer: the active rule-set version
"""

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Apply migration: create tables, indexes and immutability triggers."""

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS rule_sets (
            version TEXT PRIMARY KEY,
            semver_major INTEGER NOT NULL,
            semver_minor INTEGER NOT NULL,
            semver_patch INTEGER NOT NULL,
            dimension_weights JSONB NOT NULL,
            sector_overrides JSONB NOT NULL DEFAULT '{}'::jsonb,
            content_hash TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            created_by TEXT,
            change_reason TEXT
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS rule_set_pointer (
            pointer_id TEXT PRIMARY KEY,
            version TEXT NOT NULL REFERENCES rule_sets (version),
            updated_at TIMESTAMPTZ NOT NULL
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS assessments (
            assessment_id UUID PRIMARY KEY,
            user_id TEXT,
            answers JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL
        )
        """
    )

    op.execute("CREATE INDEX IF NOT EXISTS ix_assessments_user_id ON assessments (user_id)")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS scores (
            score_result_id UUID PRIMARY KEY,
            assessment_id UUID NOT NULL REFERENCES assessments (assessment_id),
            rule_set_version TEXT NOT NULL REFERENCES rule_sets (version),
            bucket TEXT NOT NULL,
            dimension_scores JSONB NOT NULL,
            total_score INTEGER NOT NULL CHECK (total_score BETWEEN 0 AND 100),
            weights_applied JSONB NOT NULL,
            answers_fingerprint TEXT NOT NULL,
            reproducibility_hash TEXT NOT NULL,
            computed_at TIMESTAMPTZ NOT NULL,
            computed_by TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('current', 'superseded')),
            superseded_by UUID
        )
        """
    )

    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_scores_one_current
        ON scores (assessment_id)
        WHERE status = 'current'
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_scores_assessment_computed
        ON scores (assessment_id, computed_at)
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS score_audit_log (
            audit_entry_id UUID PRIMARY KEY,
            seq BIGSERIAL NOT NULL,
            assessment_id UUID NOT NULL,
            previous_score_result_id UUID,
            new_score_result_id UUID NOT NULL,
            rule_set_version_before TEXT,
            rule_set_version_after TEXT NOT NULL,
            total_before INTEGER,
            total_after INTEGER NOT NULL,
            triggered_by TEXT NOT NULL,
            occurred_at TIMESTAMPTZ NOT NULL,
            reason TEXT NOT NULL,
            job_id TEXT
        )
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_score_audit_log_assessment
        ON score_audit_log (assessment_id, seq)
        """
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION readiness_reject_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only: % is not allowed', TG_TABLE_NAME, TG_OP;
        END;
        $$ LANGUAGE plpgsql
        """
    )

    op.execute(
        """
        CREATE TRIGGER score_audit_log_immutability
        BEFORE UPDATE OR DELETE ON score_audit_log
        FOR EACH ROW EXECUTE FUNCTION readiness_reject_mutation()
        """
    )

    op.execute(
        """
        CREATE TRIGGER rule_sets_immutability
        BEFORE UPDATE OR DELETE ON rule_sets
        FOR EACH ROW EXECUTE FUNCTION readiness_reject_mutation()
        """
    )

    op.execute(
        """
        CREATE TRIGGER assessments_immutability
        BEFORE UPDATE ON assessments
        FOR EACH ROW EXECUTE FUNCTION readiness_reject_mutation()
        """
    )


def downgrade() -> None:
    """Revert migration: drop triggers, function and tables."""

    op.execute("DROP TRIGGER IF EXISTS assessments_immutability ON assessments")
    op.execute("DROP TRIGGER IF EXISTS rule_sets_immutability ON rule_sets")
    op.execute("DROP TRIGGER IF EXISTS score_audit_log_immutability ON score_audit_log")
    op.execute("DROP FUNCTION IF EXISTS readiness_reject_mutation()")

    op.execute("DROP TABLE IF EXISTS score_audit_log")
    op.execute("DROP TABLE IF EXISTS scores")
    op.execute("DROP TABLE IF EXISTS assessments")
    op.execute("DROP TABLE IF EXISTS rule_set_pointer")
    op.execute("DROP TABLE IF EXISTS rule_sets")
