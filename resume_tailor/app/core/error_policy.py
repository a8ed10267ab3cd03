# resume_tailor/app/core/error_policy.py
"""Shared error classification used by both the per-call and per-job retry layers."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from resume_tailor.app.core.errors import (
    CircuitOpenError,
    DatabaseError,
    JobTimeoutError,
    NetworkError,
    ParsingError,
    PipelineStageError,
    RateLimitError,
    UnauthorizedError,
    UpstreamClientError,
    UpstreamServerError,
    UpstreamTimeoutError,
    ValidationError,
)


class ErrorAction(str, Enum):
    FATAL = "fatal"
    RETRYABLE = "retryable"
    RATE_LIMITED = "rate_limited"


class StageFailureMode(str, Enum):
    FAIL = "fail"
    DEGRADE = "degrade"


@dataclass(frozen=True)
class Classification:
    action: ErrorAction
    reason: str
    retry_after: Optional[float] = None
    # False for fast-fail deferrals that never reached the upstream
    charge_attempt: bool = True

    @property
    def retryable(self) -> bool:
        return self.action in (ErrorAction.RETRYABLE, ErrorAction.RATE_LIMITED)


# Ordered by MRO lookup, so subclasses must be listed explicitly when they differ from their parent.
ERROR_POLICY: Dict[type, Tuple[ErrorAction, str]] = {
    ValidationError: (ErrorAction.FATAL, "invalid_input"),
    ParsingError: (ErrorAction.FATAL, "unparseable_document"),
    UnauthorizedError: (ErrorAction.FATAL, "provider_auth"),
    UpstreamClientError: (ErrorAction.FATAL, "upstream_client_error"),
    RateLimitError: (ErrorAction.RATE_LIMITED, "rate_limited"),
    CircuitOpenError: (ErrorAction.RETRYABLE, "circuit_open"),
    UpstreamServerError: (ErrorAction.RETRYABLE, "upstream_server_error"),
    UpstreamTimeoutError: (ErrorAction.RETRYABLE, "upstream_timeout"),
    NetworkError: (ErrorAction.RETRYABLE, "network_error"),
    JobTimeoutError: (ErrorAction.RETRYABLE, "job_timeout"),
    DatabaseError: (ErrorAction.RETRYABLE, "database_error"),
}

STAGE_POLICY: Dict[str, StageFailureMode] = {
    "parse": StageFailureMode.FAIL,
    "profile": StageFailureMode.FAIL,
    "research": StageFailureMode.FAIL,
    "fact_extraction": StageFailureMode.DEGRADE,
    "generate": StageFailureMode.FAIL,
    "verify": StageFailureMode.DEGRADE,
    "format": StageFailureMode.DEGRADE,
}


def classify(error: BaseException) -> Classification:
    """Map an exception onto the shared retry table. Unknown errors are fatal."""
    if isinstance(error, PipelineStageError):
        return classify(error.cause)

    for cls in type(error).__mro__:
        entry = ERROR_POLICY.get(cls)
        if entry is None:
            continue
        action, reason = entry
        if isinstance(error, CircuitOpenError):
            return Classification(action, reason, retry_after=error.retry_after, charge_attempt=False)
        if isinstance(error, RateLimitError):
            return Classification(action, reason, retry_after=error.retry_after)
        return Classification(action, reason)

    return Classification(ErrorAction.FATAL, "unclassified")


def stage_failure_mode(stage: str) -> StageFailureMode:
    return STAGE_POLICY.get(stage, StageFailureMode.FAIL)


def backoff_delay(base: float, attempt: int) -> float:
    """Exponential backoff: base * 2^(attempt-1), attempt counted from 1."""
    return base * (2 ** max(attempt - 1, 0))
