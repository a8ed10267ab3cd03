# resume_tailor/app/core/chat_client.py

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from celery.exceptions import SoftTimeLimitExceeded

from resume_tailor.app.core.circuit_breaker import CircuitBreakerRegistry
from resume_tailor.app.core.error_policy import ErrorAction, backoff_delay, classify
from resume_tailor.app.core.errors import ExternalAPIError
from resume_tailor.app.core.providers import ChatCompletionProvider, CompletionParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptEvent:
    service: str
    model: str
    attempt: int
    outcome: str  # "success" | "retry" | "failure"
    duration_ms: float
    error: Optional[str] = None


AttemptListener = Callable[[AttemptEvent], None]


class ChatCompletionClient:
    """Wraps a provider with per-call timeout, retry with backoff and a per-service circuit breaker."""

    def __init__(
        self,
        provider: ChatCompletionProvider,
        breakers: CircuitBreakerRegistry,
        timeout: float = 60.0,
        max_retries: int = 2,
        retry_base_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        listeners: Optional[List[AttemptListener]] = None,
    ):
        self.provider = provider
        self.breakers = breakers
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._listeners: List[AttemptListener] = list(listeners or [])

    def add_listener(self, listener: AttemptListener) -> None:
        self._listeners.append(listener)

    def execute(self, service_name: str, model: str, system_prompt: str, user_content: str,
                params: Optional[CompletionParams] = None) -> str:
        params = params or CompletionParams()
        breaker = self.breakers.get(service_name)
        permit = breaker.acquire()  # raises CircuitOpenError without touching the provider

        # A half-open trial is exactly one call
        max_attempts = 1 if permit.trial else self.max_retries + 1
        attempt = 0
        while True:
            attempt += 1
            started = time.monotonic()
            try:
                text = self.provider.complete(model, system_prompt, user_content, params, self.timeout)
            except ExternalAPIError as exc:
                decision = classify(exc)
                will_retry = decision.action is ErrorAction.RETRYABLE and attempt < max_attempts
                self._emit(AttemptEvent(
                    service=service_name, model=model, attempt=attempt,
                    outcome="retry" if will_retry else "failure",
                    duration_ms=(time.monotonic() - started) * 1000, error=str(exc),
                ))
                logger.warning(
                    "Request to %s failed (attempt %d/%d, model=%s, reason=%s, will_retry=%s): %s",
                    service_name, attempt, max_attempts, model, decision.reason, will_retry, exc,
                )
                if not will_retry:
                    breaker.record_failure()
                    raise
                delay = backoff_delay(self.retry_base_delay, attempt)
                logger.debug("Retrying %s in %.2fs", service_name, delay)
                self._sleep(delay)
                continue
            except SoftTimeLimitExceeded:
                # the job ran out of time, the service did not fail
                breaker.release_trial()
                raise
            except Exception:
                # unexpected provider errors still have to release a half-open trial
                breaker.record_failure()
                raise

            breaker.record_success()
            self._emit(AttemptEvent(
                service=service_name, model=model, attempt=attempt, outcome="success",
                duration_ms=(time.monotonic() - started) * 1000,
            ))
            logger.debug("Request to %s succeeded on attempt %d (model=%s)", service_name, attempt, model)
            return text

    def _emit(self, event: AttemptEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Attempt listener failed for %s", event.service)
