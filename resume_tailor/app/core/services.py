# resume_tailor/app/core/services.py
"""Process-wide collaborators, built lazily once per API or worker process."""

from functools import lru_cache

from celery.exceptions import SoftTimeLimitExceeded

from resume_tailor.app.config import settings
from resume_tailor.app.core.ai_orchestrator import AIOrchestrator, PipelineResult
from resume_tailor.app.core.chat_client import ChatCompletionClient
from resume_tailor.app.core.circuit_breaker import CircuitBreakerRegistry
from resume_tailor.app.core.errors import JobTimeoutError
from resume_tailor.app.core.job_runner import JobRunner
from resume_tailor.app.core.job_store import SQLJobStore
from resume_tailor.app.core.providers import LiteLLMProvider
from resume_tailor.app.models.job_models import Job


@lru_cache(maxsize=1)
def get_job_store() -> SQLJobStore:
    store = SQLJobStore(settings.DATABASE_URL)
    store.init_schema()
    return store


@lru_cache(maxsize=1)
def get_breaker_registry() -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(
        failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
        reset_timeout=settings.CIRCUIT_RESET_TIMEOUT,
    )


@lru_cache(maxsize=1)
def get_chat_client() -> ChatCompletionClient:
    return ChatCompletionClient(
        provider=LiteLLMProvider(settings, name=settings.LLM_PROVIDER),
        breakers=get_breaker_registry(),
        timeout=settings.LLM_REQUEST_TIMEOUT,
        max_retries=settings.LLM_MAX_RETRIES,
        retry_base_delay=settings.LLM_RETRY_BASE_DELAY,
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> AIOrchestrator:
    return AIOrchestrator(get_chat_client(), config=settings)


def run_pipeline(job: Job) -> PipelineResult:
    try:
        return get_orchestrator().run(job)
    except SoftTimeLimitExceeded as exc:
        raise JobTimeoutError(f"Job {job.job_id} exceeded {settings.JOB_TIMEOUT}s") from exc


@lru_cache(maxsize=1)
def get_job_runner() -> JobRunner:
    return JobRunner(
        store=get_job_store(),
        pipeline=run_pipeline,
        lease_seconds=settings.lease_seconds,
        retry_base_delay=settings.JOB_RETRY_BASE_DELAY,
        store_write_retries=settings.STORE_WRITE_RETRIES,
    )
