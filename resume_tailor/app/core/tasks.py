# resume_tailor/app/core/tasks.py

from typing import Optional

from celery.utils.log import get_task_logger
from kombu.exceptions import OperationalError

from resume_tailor.worker.worker import celery_app
from resume_tailor.app.config import settings
from resume_tailor.app.core.errors import ExternalAPIError
from resume_tailor.app.core.job_runner import OutcomeKind
from resume_tailor.app.core.providers import CompletionParams
from resume_tailor.app.core.services import get_chat_client, get_job_runner, get_job_store

logger = get_task_logger(__name__)


def enqueue_job(job_id: str, countdown: Optional[float] = None) -> bool:
    """Send a customize_resume message; False when the broker is unreachable."""
    try:
        customize_resume.apply_async(
            args=[job_id],
            queue="llm",
            routing_key="llm",
            countdown=countdown or None,
        )
    except OperationalError as exc:
        logger.error("Job %s: could not enqueue, left for the recovery sweep: %s", job_id, exc)
        return False
    return True


@celery_app.task(
    name="customize_resume",
    bind=False,
    acks_late=True,                           # redelivered if the worker dies mid-job
    reject_on_worker_lost=True,
    soft_time_limit=settings.JOB_TIMEOUT,     # raises inside the pipeline -> JobTimeoutError
    time_limit=settings.JOB_TIMEOUT + 30,     # kills the child; the lease then expires
)
def customize_resume(job_id: str):
    logger.info("Job %s: delivery received", job_id)
    outcome = get_job_runner().run(job_id)
    if outcome.kind is OutcomeKind.REQUEUE:
        logger.info("Job %s: re-enqueued with countdown %.1fs", job_id, outcome.delay)
        enqueue_job(job_id, countdown=outcome.delay)
    return {"job_id": job_id, "outcome": outcome.kind.value, "delay": outcome.delay}


@celery_app.task(
    name="recover_abandoned_jobs",
    bind=False,
    soft_time_limit=120,
    time_limit=180,
)
def recover_abandoned_jobs():
    """
    Periodic sweep: re-enqueue jobs whose queue message may have been lost,
    and fail jobs abandoned by a crashed worker once their attempts are spent.
    """
    store = get_job_store()
    requeued, failed = 0, 0
    for job in store.find_recoverable(settings.RECOVERY_STALE_AFTER):
        if job.lease_token is not None and job.attempts >= job.max_attempts:
            error = f"Job abandoned by its worker after {job.attempts} attempt(s)"
            if store.fail_abandoned(job.job_id, error):
                logger.warning("Job %s: %s", job.job_id, error)
                failed += 1
            continue
        if enqueue_job(job.job_id):
            requeued += 1
    if requeued or failed:
        logger.info("Recovery sweep: requeued=%d failed=%d", requeued, failed)
    return {"requeued": requeued, "failed": failed}


@celery_app.task(
    name="warmup_llm",
    bind=False,
    soft_time_limit=180,
    time_limit=240,
)
def warmup_llm():
    """
    Pre-load the default model via a tiny completion through the resilient client.
    """
    model = settings.DEFAULT_STRATEGIST_MODEL
    logger.info("Warming up LLM model=%s base_url=%s", settings.full_model_id(model), settings.LLM_BASE_URL)
    try:
        txt = get_chat_client().execute(
            settings.LLM_PROVIDER, model,
            "You are a helpful assistant.", settings.WARMUP_PROMPT,
            CompletionParams(temperature=0.0, max_tokens=16),
        )
    except ExternalAPIError as exc:
        logger.warning("Warmup failed for model=%s: %s", model, exc)
        return {"status": "error", "model": model, "error": str(exc)}
    logger.info("Warmup response (truncated): %s", (txt or "")[:120])
    return {"status": "ok", "model": model}
