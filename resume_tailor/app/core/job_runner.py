# resume_tailor/app/core/job_runner.py

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from resume_tailor.app.core.ai_orchestrator import PipelineResult
from resume_tailor.app.core.error_policy import Classification, backoff_delay, classify
from resume_tailor.app.core.errors import DatabaseError
from resume_tailor.app.core.job_store import SQLJobStore
from resume_tailor.app.models.job_models import Job

logger = logging.getLogger(__name__)

Pipeline = Callable[[Job], PipelineResult]


class OutcomeKind(str, Enum):
    SKIPPED = "skipped"      # not claimable: finished, leased elsewhere or not yet due
    COMPLETED = "completed"
    FAILED = "failed"
    REQUEUE = "requeue"
    LOST = "lost"            # lease was taken over before the terminal write


@dataclass(frozen=True)
class RunOutcome:
    kind: OutcomeKind
    delay: float = 0.0
    error: Optional[str] = None


class JobRunner:
    """Claims a job, runs the pipeline on it and records the outcome."""

    def __init__(
        self,
        store: SQLJobStore,
        pipeline: Pipeline,
        lease_seconds: float,
        retry_base_delay: float = 5.0,
        store_write_retries: int = 3,
        classifier: Callable[[BaseException], Classification] = classify,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.pipeline = pipeline
        self.lease_seconds = lease_seconds
        self.retry_base_delay = retry_base_delay
        self.store_write_retries = max(1, store_write_retries)
        self.classifier = classifier
        self._sleep = sleep

    def run(self, job_id: str) -> RunOutcome:
        job = self.store.claim(job_id, self.lease_seconds)
        if job is None:
            logger.info("Job %s: not claimable, skipping delivery", job_id)
            return RunOutcome(OutcomeKind.SKIPPED)

        token = job.lease_token
        logger.info("Job %s: claimed attempt %d/%d", job_id, job.attempts, job.max_attempts)
        try:
            result = self.pipeline(job)
        except Exception as exc:
            return self._handle_failure(job, token, exc)

        written = self._write(lambda: self.store.complete(
            job_id, token, result.text,
            formatted_result=result.formatted,
            result_mime_type=result.mime_type,
            metadata=result.metadata,
        ))
        if not written:
            logger.warning("Job %s: lease lost before completion could be recorded", job_id)
            return RunOutcome(OutcomeKind.LOST)
        logger.info("Job %s: completed", job_id)
        return RunOutcome(OutcomeKind.COMPLETED)

    def _handle_failure(self, job: Job, token: str, exc: Exception) -> RunOutcome:
        decision = self.classifier(exc)
        message = str(exc) or type(exc).__name__
        attempts_left = job.attempts < job.max_attempts

        if decision.retryable and (attempts_left or not decision.charge_attempt):
            delay = max(backoff_delay(self.retry_base_delay, job.attempts), decision.retry_after or 0.0)
            released = self._write(lambda: self.store.release(
                job.job_id, token, delay, refund_attempt=not decision.charge_attempt,
            ))
            if not released:
                logger.warning("Job %s: lease lost before retry could be scheduled", job.job_id)
                return RunOutcome(OutcomeKind.LOST, error=message)
            logger.warning("Job %s: attempt %d failed (%s), retrying in %.1fs: %s",
                           job.job_id, job.attempts, decision.reason, delay, message)
            return RunOutcome(OutcomeKind.REQUEUE, delay=delay, error=message)

        failed = self._write(lambda: self.store.fail(job.job_id, token, message))
        if not failed:
            logger.warning("Job %s: lease lost before failure could be recorded", job.job_id)
            return RunOutcome(OutcomeKind.LOST, error=message)
        logger.error("Job %s: failed after %d attempt(s) (%s): %s",
                     job.job_id, job.attempts, decision.reason, message)
        return RunOutcome(OutcomeKind.FAILED, error=message)

    def _write(self, op: Callable[[], bool]) -> bool:
        for attempt in range(1, self.store_write_retries + 1):
            try:
                return op()
            except DatabaseError as exc:
                if attempt >= self.store_write_retries:
                    raise
                delay = backoff_delay(0.5, attempt)
                logger.warning("Job store write failed (attempt %d/%d), retrying in %.1fs: %s",
                               attempt, self.store_write_retries, delay, exc)
                self._sleep(delay)
        return False
