# resume_tailor/app/core/circuit_breaker.py

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from resume_tailor.app.core.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class BreakerSnapshot:
    service: str
    state: CircuitState
    consecutive_failures: int
    last_failure_time: Optional[float]
    last_success_time: Optional[float]


@dataclass(frozen=True)
class Permit:
    """Handed out by `acquire`; a trial permit is the single test call while HALF_OPEN."""
    trial: bool = False


class CircuitBreaker:
    """Per-service breaker. Every read-modify-write happens under `_lock`."""

    def __init__(self, service: str, failure_threshold: int = 5, reset_timeout: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.service = service
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._last_failure: Optional[float] = None
        self._last_success: Optional[float] = None
        self._trial_in_flight = False

    def acquire(self) -> Permit:
        """Raise CircuitOpenError when calls must not reach the service."""
        with self._lock:
            now = self._clock()
            if self._state is CircuitState.OPEN:
                remaining = self._remaining(now)
                if remaining > 0:
                    raise CircuitOpenError(self.service, retry_after=remaining)
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
                logger.info("Circuit breaker for %s is now HALF_OPEN", self.service)

            if self._state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.service, retry_after=0.0)
                self._trial_in_flight = True
                return Permit(trial=True)

            return Permit()

    def record_success(self) -> None:
        with self._lock:
            self._last_success = self._clock()
            self._failures = 0
            self._trial_in_flight = False
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._opened_at = None
                logger.info("Circuit breaker for %s is now CLOSED", self.service)

    def release_trial(self) -> None:
        """Give back a trial permit whose call ended without a verdict on the service."""
        with self._lock:
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._failures += 1
            self._last_failure = now
            self._trial_in_flight = False
            if self._state is CircuitState.HALF_OPEN:
                self._open(now)
            elif self._state is CircuitState.CLOSED and self._failures >= self.failure_threshold:
                self._open(now)

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False
        logger.info("Circuit breaker for %s was reset", self.service)

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            state = self._state
            # OPEN -> HALF_OPEN is applied lazily on the next acquire; report it as due
            if state is CircuitState.OPEN and self._remaining(self._clock()) <= 0:
                state = CircuitState.HALF_OPEN
            return BreakerSnapshot(
                service=self.service,
                state=state,
                consecutive_failures=self._failures,
                last_failure_time=self._last_failure,
                last_success_time=self._last_success,
            )

    @property
    def state(self) -> CircuitState:
        return self.snapshot().state

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        logger.error(
            "Circuit breaker for %s is now OPEN after %d consecutive failures",
            self.service, self._failures,
        )

    def _remaining(self, now: float) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.reset_timeout - (now - self._opened_at))


class CircuitBreakerRegistry:
    """Process-wide breakers keyed by service name, created on first use."""

    def __init__(self, failure_threshold: int = 5, reset_timeout: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, service: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(service)
            if breaker is None:
                breaker = CircuitBreaker(
                    service,
                    failure_threshold=self.failure_threshold,
                    reset_timeout=self.reset_timeout,
                    clock=self._clock,
                )
                self._breakers[service] = breaker
            return breaker

    def reset(self, service: str) -> None:
        with self._lock:
            breaker = self._breakers.get(service)
        if breaker is not None:
            breaker.reset()

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()

    def snapshots(self) -> Dict[str, BreakerSnapshot]:
        with self._lock:
            breakers = dict(self._breakers)
        return {name: b.snapshot() for name, b in breakers.items()}
