# resume_tailor/app/core/async_queue.py

import logging
from typing import Any, Callable, Dict, List, Optional

from resume_tailor.app.config import settings
from resume_tailor.app.core.artifacts import FormattedOutput, MIME_TYPES
from resume_tailor.app.core.errors import JobNotFoundError, JobNotReadyError
from resume_tailor.app.core.job_store import SQLJobStore
from resume_tailor.app.core.services import get_job_store
from resume_tailor.app.core.tasks import enqueue_job
from resume_tailor.app.models.job_models import CustomizeResumeRequest, Job, JobStatus

logger = logging.getLogger(__name__)


class JobQueue:
    """Durable job submission: persist first, then hand the id to Celery."""

    def __init__(
        self,
        store: Optional[SQLJobStore] = None,
        enqueue: Callable[[str], bool] = enqueue_job,
        max_attempts: Optional[int] = None,
    ):
        self._store = store
        self._enqueue = enqueue
        self.max_attempts = max_attempts or settings.JOB_MAX_ATTEMPTS

    @property
    def store(self) -> SQLJobStore:
        if self._store is None:
            self._store = get_job_store()
        return self._store

    def submit(self, request: CustomizeResumeRequest, owner_id: str) -> str:
        job = self.store.create(owner_id, request, max_attempts=self.max_attempts)
        logger.info("Job %s: submitted owner=%s preset=%s output=%s",
                    job.job_id, owner_id, request.optimization_preset, request.output_format)
        # The row is durable already; a lost message is picked up by recover_abandoned_jobs
        if not self._enqueue(job.job_id):
            logger.warning("Job %s: enqueue failed, waiting for recovery sweep", job.job_id)
        return job.job_id

    def get_status(self, job_id: str, owner_id: Optional[str] = None) -> Dict[str, Any]:
        job = self._load(job_id, owner_id)
        status: Dict[str, Any] = {
            "job_id": job.job_id,
            "status": job.status,
            "created_at": job.created_at,
            "completed_at": job.completed_at,
        }
        if job.status is JobStatus.COMPLETED:
            status["result"] = job.result
            status["result_mime_type"] = job.result_mime_type
        elif job.status is JobStatus.FAILED:
            status["error"] = job.error
        return status

    def get_history(self, owner_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return [
            {
                "job_id": job.job_id,
                "status": job.status,
                "created_at": job.created_at,
                "completed_at": job.completed_at,
            }
            for job in self.store.list_for_owner(owner_id, limit=limit)
        ]

    def get_result_file(self, job_id: str, owner_id: Optional[str] = None) -> FormattedOutput:
        job = self._load(job_id, owner_id)
        if job.status is not JobStatus.COMPLETED:
            raise JobNotReadyError(job_id, job.status.value)
        if job.formatted_result is not None:
            return FormattedOutput(job.formatted_result, job.result_mime_type or MIME_TYPES["text"])
        return FormattedOutput((job.result or "").encode("utf-8"), MIME_TYPES["text"])

    def _load(self, job_id: str, owner_id: Optional[str]) -> Job:
        job = self.store.find(job_id)
        # Other owners' jobs are indistinguishable from missing ones
        if job is None or (owner_id is not None and job.owner_id != owner_id):
            raise JobNotFoundError(job_id)
        return job


# Singleton
queue = JobQueue()


def get_queue() -> JobQueue:
    return queue
