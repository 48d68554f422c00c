"""Re-Score Manager: replays stored assessments under a chosen RuleSet.

For each selected assessment the manager recomputes the score under the
target RuleSet, makes the new ScoreResult current (the old one is kept and
marked superseded) and appends an audit entry linking the two.

Guarantees:
- The target version is resolved before any item runs
- Items run on a bounded worker pool; same-assessment work is serialized
- An assessment already scored under the target version is skipped, so
  re-running a job is a no-op
- One item's failure never aborts the batch; every failure is reported
  with the assessment id and its cause
- If the audit entry cannot be written (and is not found in the trail
  afterwards), the previous score is restored as current, so no
  user-visible score lacks an audit entry
- Cancellation is cooperative: started items finish, unstarted items are
  reported as not reached
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime

from readiness.audit.trail import AuditTrail
from readiness.concurrency import CancellationToken, KeyedLock
from readiness.config import RescoreConfig
from readiness.errors import PersistenceError, ScoringError, StaleScoreError, describe_error
from readiness.models.assessment import AssessmentAnswers, StoredAssessment
from readiness.models.rescore import (
    AssessmentSelector,
    RescoreFailure,
    RescoreItemOutcome,
    RescoreItemStatus,
    RescoreJobResult,
)
from readiness.models.rule_set import RuleSet
from readiness.models.score_result import AuditEntry, ComputedBy, ScoreResult
from readiness.observability.tracing import traced_span
from readiness.persistence.repositories.assessments import AssessmentsRepository
from readiness.persistence.repositories.scores import ScoresRepository
from readiness.scoring.engine import ScoringEngine
from readiness.services.rescore.retry import PersistenceCaller

logger = logging.getLogger(__name__)


class RescoreManager:
    """Runs re-score jobs against the configured repositories."""

    def __init__(
        self,
        engine: ScoringEngine,
        assessments: AssessmentsRepository,
        scores: ScoresRepository,
        audit: AuditTrail,
        config: RescoreConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._engine = engine
        self._assessments = assessments
        self._scores = scores
        self._audit = audit
        self._config = config or RescoreConfig()
        self._sleep = sleep
        self._locks = KeyedLock()

    def rescore(
        self,
        selector: AssessmentSelector,
        target_rule_set_version: str,
        reason: str,
        triggered_by: str,
        *,
        cancel_token: CancellationToken | None = None,
        job_id: str | None = None,
    ) -> RescoreJobResult:
        """Re-score every assessment the selector matches.

        Args:
            selector: Which stored assessments to touch.
            target_rule_set_version: Explicit RuleSet version to score under.
            reason: Why the job runs; copied into every audit entry.
            triggered_by: Who started the job.
            cancel_token: Optional token; once cancelled, unstarted items are skipped.
            job_id: Optional job id (generated when omitted).

        Returns:
            Job summary with per-item outcomes.

        Raises:
            RuleSetNotFoundError: If the target version does not exist.
            PersistenceError: If the population cannot be read.
        """
        target = self._engine.resolve_rule_set(target_rule_set_version)
        token = cancel_token or CancellationToken()
        job_id = job_id or str(uuid.uuid4())
        started_at = datetime.now(UTC)

        logger.info(
            "Rescore job %s started: target=%s selector=[%s] triggered_by=%s",
            job_id,
            target.version,
            selector.describe(),
            triggered_by,
            extra={"job_id": job_id, "rule_set_version": target.version},
        )

        outcomes: dict[str, RescoreItemOutcome] = {}
        # Spare threads let abandoned (timed-out) calls drain without starving workers.
        io_executor = ThreadPoolExecutor(
            max_workers=self._config.max_workers * 2, thread_name_prefix="rescore-io"
        )
        executor = ThreadPoolExecutor(
            max_workers=self._config.max_workers, thread_name_prefix="rescore"
        )
        with io_executor, executor:
            caller = PersistenceCaller(
                io_executor,
                timeout_seconds=self._config.item_timeout_seconds,
                backoff_seconds=self._config.retry_backoff_seconds,
                sleep=self._sleep,
            )
            population = self._select(selector, caller)

            futures = {
                executor.submit(
                    self._process_item,
                    assessment.assessment_id,
                    target,
                    reason,
                    triggered_by,
                    job_id,
                    token,
                    caller,
                ): assessment.assessment_id
                for assessment in population
            }
            for future in as_completed(futures):
                assessment_id = futures[future]
                outcomes[assessment_id] = future.result()

        items = [outcomes[a.assessment_id] for a in population]
        result = _summarize(
            job_id, target.version, reason, triggered_by, started_at, items, token.cancelled
        )

        logger.info(
            "Rescore job %s finished: processed=%d succeeded=%d failed=%d skipped=%d "
            "not_reached=%d cancelled=%s",
            job_id,
            result.processed,
            result.succeeded,
            len(result.failed),
            result.skipped,
            len(result.not_reached),
            result.cancelled,
            extra={"job_id": job_id, "rule_set_version": target.version},
        )
        return result

    def start_rescore(
        self,
        selector: AssessmentSelector,
        target_rule_set_version: str,
        reason: str,
        triggered_by: str,
    ) -> RescoreJob:
        """Run a job on a background thread and return a handle to it."""
        job = RescoreJob(self, selector, target_rule_set_version, reason, triggered_by)
        job.start()
        return job

    def _select(
        self, selector: AssessmentSelector, caller: PersistenceCaller
    ) -> list[StoredAssessment]:
        candidates = caller.call(
            "list_assessments",
            lambda: self._assessments.list(
                assessment_ids=selector.assessment_ids, user_id=selector.user_id
            ),
        )
        candidates = [a for a in candidates if selector.matches_assessment(a)]
        if not selector.has_version_criteria:
            return candidates

        selected = []
        for assessment in candidates:
            current = caller.call(
                "get_current_score",
                lambda a=assessment: self._scores.get_current(a.assessment_id),
            )
            if selector.matches_score(current):
                selected.append(assessment)
        return selected

    def _process_item(
        self,
        assessment_id: str,
        target: RuleSet,
        reason: str,
        triggered_by: str,
        job_id: str,
        token: CancellationToken,
        caller: PersistenceCaller,
    ) -> RescoreItemOutcome:
        if token.cancelled:
            return RescoreItemOutcome(
                assessment_id=assessment_id, status=RescoreItemStatus.NOT_REACHED
            )

        try:
            span_attributes = {
                "readiness.assessment_id": assessment_id,
                "readiness.job_id": job_id,
                "readiness.rule_set_version": target.version,
            }
            with (
                traced_span("readiness.rescore.item", span_attributes),
                self._locks.hold(assessment_id),
            ):
                return self._migrate(assessment_id, target, reason, triggered_by, job_id, caller)
        except ScoringError as e:
            logger.warning(
                "Rescore of assessment %s failed: %s",
                assessment_id,
                describe_error(e),
                extra={"job_id": job_id, "assessment_id": assessment_id},
            )
            return RescoreItemOutcome(
                assessment_id=assessment_id,
                status=RescoreItemStatus.FAILED,
                error=describe_error(e),
            )
        except Exception as e:
            logger.exception(
                "Unexpected error re-scoring assessment %s",
                assessment_id,
                extra={"job_id": job_id, "assessment_id": assessment_id},
            )
            return RescoreItemOutcome(
                assessment_id=assessment_id,
                status=RescoreItemStatus.FAILED,
                error=describe_error(e),
            )

    def _migrate(
        self,
        assessment_id: str,
        target: RuleSet,
        reason: str,
        triggered_by: str,
        job_id: str,
        caller: PersistenceCaller,
    ) -> RescoreItemOutcome:
        stored = caller.call("get_assessment", lambda: self._assessments.get(assessment_id))
        if stored is None:
            raise PersistenceError("get_assessment", f"assessment {assessment_id} not found")

        current = caller.call("get_current_score", lambda: self._scores.get_current(assessment_id))
        if current is not None and current.rule_set_version == target.version:
            return RescoreItemOutcome(
                assessment_id=assessment_id,
                status=RescoreItemStatus.SKIPPED,
                previous_total=current.total_score,
                new_total=current.total_score,
                score_difference=0,
                previous_rule_set_version=current.rule_set_version,
            )

        answers = AssessmentAnswers.from_payload(stored.answers)
        new = self._engine.score_with_rule_set(
            answers, target, assessment_id=assessment_id, computed_by=ComputedBy.RESCORE_JOB
        )
        previous_id = current.score_result_id if current is not None else None
        new = self._replace_current(new, previous_id, caller)

        entry = AuditEntry(
            assessment_id=assessment_id,
            previous_score_result_id=previous_id,
            new_score_result_id=new.score_result_id,
            rule_set_version_before=current.rule_set_version if current else None,
            rule_set_version_after=new.rule_set_version,
            total_before=current.total_score if current else None,
            total_after=new.total_score,
            triggered_by=triggered_by,
            reason=reason,
            job_id=job_id,
        )
        try:
            caller.call("record_audit_entry", lambda: self._audit.record(entry))
        except Exception as e:
            if not self._audit_landed(entry, caller):
                self._compensate(assessment_id, previous_id, new.score_result_id, caller, e)
                raise
            logger.info(
                "Audit entry %s for assessment %s landed despite %s",
                entry.audit_entry_id,
                assessment_id,
                describe_error(e),
            )

        previous_total = current.total_score if current is not None else None
        difference = new.total_score - previous_total if previous_total is not None else None
        return RescoreItemOutcome(
            assessment_id=assessment_id,
            status=RescoreItemStatus.MIGRATED,
            previous_total=previous_total,
            new_total=new.total_score,
            score_difference=difference,
            previous_rule_set_version=current.rule_set_version if current else None,
            new_score_result_id=new.score_result_id,
            total_changed=difference is None or abs(difference) > self._config.epsilon,
        )

    def _replace_current(
        self, new: ScoreResult, previous_id: str | None, caller: PersistenceCaller
    ) -> ScoreResult:
        assessment_id = new.assessment_id or ""
        try:
            return caller.call(
                "replace_current_score", lambda: self._scores.replace_current(new, previous_id)
            )
        except (PersistenceError, StaleScoreError) as e:
            # A timed-out attempt may have landed; accept it rather than fail the item.
            try:
                current = caller.call(
                    "get_current_score", lambda: self._scores.get_current(assessment_id)
                )
            except PersistenceError:
                raise e
            if current is not None and current.score_result_id == new.score_result_id:
                return current
            raise

    def _audit_landed(self, entry: AuditEntry, caller: PersistenceCaller) -> bool:
        """True if the entry is in the trail even though recording it reported failure."""
        try:
            history = caller.call(
                "audit_history", lambda: self._audit.history(entry.assessment_id)
            )
        except PersistenceError:
            return False
        return any(e.audit_entry_id == entry.audit_entry_id for e in history)

    def _compensate(
        self,
        assessment_id: str,
        previous_id: str | None,
        failed_id: str,
        caller: PersistenceCaller,
        cause: Exception,
    ) -> None:
        logger.warning(
            "Audit entry for assessment %s not recorded (%s); restoring previous score",
            assessment_id,
            describe_error(cause),
        )
        try:
            caller.call(
                "restore_current_score",
                lambda: self._scores.restore_current(assessment_id, previous_id, failed_id),
            )
        except Exception:
            logger.exception(
                "Compensation failed for assessment %s: score %s is current without audit entry",
                assessment_id,
                failed_id,
            )


def _summarize(
    job_id: str,
    target_version: str,
    reason: str,
    triggered_by: str,
    started_at: datetime,
    items: list[RescoreItemOutcome],
    cancelled: bool,
) -> RescoreJobResult:
    by_status: dict[RescoreItemStatus, list[RescoreItemOutcome]] = {s: [] for s in RescoreItemStatus}
    for item in items:
        by_status[item.status].append(item)

    failed = [
        RescoreFailure(assessment_id=i.assessment_id, error=i.error or "unknown error")
        for i in by_status[RescoreItemStatus.FAILED]
    ]
    succeeded = len(by_status[RescoreItemStatus.MIGRATED])
    skipped = len(by_status[RescoreItemStatus.SKIPPED])
    return RescoreJobResult(
        job_id=job_id,
        target_rule_set_version=target_version,
        reason=reason,
        triggered_by=triggered_by,
        started_at=started_at,
        finished_at=datetime.now(UTC),
        processed=succeeded + len(failed) + skipped,
        succeeded=succeeded,
        failed=failed,
        skipped=skipped,
        cancelled=cancelled,
        not_reached=[i.assessment_id for i in by_status[RescoreItemStatus.NOT_REACHED]],
        items=items,
    )


class RescoreJob:
    """Handle for a re-score job running on a background thread."""

    def __init__(
        self,
        manager: RescoreManager,
        selector: AssessmentSelector,
        target_rule_set_version: str,
        reason: str,
        triggered_by: str,
    ) -> None:
        self.job_id = str(uuid.uuid4())
        self._manager = manager
        self._selector = selector
        self._target = target_rule_set_version
        self._reason = reason
        self._triggered_by = triggered_by
        self._token = CancellationToken()
        self._result: RescoreJobResult | None = None
        self._error: Exception | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"rescore-job-{self.job_id[:8]}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            self._result = self._manager.rescore(
                self._selector,
                self._target,
                self._reason,
                self._triggered_by,
                cancel_token=self._token,
                job_id=self.job_id,
            )
        except Exception as e:
            logger.error("Rescore job %s aborted: %s", self.job_id, describe_error(e))
            self._error = e

    def cancel(self) -> None:
        """Request cancellation; items already running still finish."""
        self._token.cancel()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job ends. Returns False if the timeout expired first."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def done(self) -> bool:
        return not self._thread.is_alive()

    @property
    def result(self) -> RescoreJobResult:
        """The job summary.

        Raises:
            RuntimeError: If the job is still running.
            ScoringError: Whatever aborted the job before any item ran.
        """
        if not self.done:
            raise RuntimeError(f"Rescore job {self.job_id} is still running")
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise RuntimeError(f"Rescore job {self.job_id} was never started")
        return self._result
