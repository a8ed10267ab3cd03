"""Shared fixtures: fake provider, manual clocks, recorded sleeps and a SQLite job store."""

from datetime import datetime, timedelta, timezone
from typing import List, Union

import pytest

from resume_tailor.app.config import Settings
from resume_tailor.app.core.chat_client import ChatCompletionClient
from resume_tailor.app.core.circuit_breaker import CircuitBreakerRegistry
from resume_tailor.app.core.job_store import SQLJobStore
from resume_tailor.app.models.job_models import CustomizeResumeRequest


class ManualClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualUTCClock:
    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeProvider:
    """Scripted provider: pops one response (or exception) per call, then repeats `default`."""

    name = "fake"

    def __init__(self, responses: List[Union[str, Exception]] = None, default: str = "ok"):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    def complete(self, model, system_prompt, user_content, params, timeout):
        self.calls.append({
            "model": model,
            "system_prompt": system_prompt,
            "user_content": user_content,
            "params": params,
            "timeout": timeout,
        })
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def utc_clock() -> ManualUTCClock:
    return ManualUTCClock()


@pytest.fixture
def sleeps() -> List[float]:
    """Delays passed to an injected sleep, recorded instead of slept."""
    return []


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def registry(clock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(failure_threshold=3, reset_timeout=30.0, clock=clock)


@pytest.fixture
def chat_client(provider, registry, sleeps) -> ChatCompletionClient:
    return ChatCompletionClient(
        provider=provider,
        breakers=registry,
        timeout=10.0,
        max_retries=2,
        retry_base_delay=1.0,
        sleep=sleeps.append,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        LLM_PROVIDER="fake",
        LLM_API_KEY="test-key",
        DEFAULT_PROFILER_MODEL="profiler-model",
        DEFAULT_RESEARCHER_MODEL="researcher-model",
        DEFAULT_STRATEGIST_MODEL="strategist-model",
        DEFAULT_FACT_CHECKER_MODEL="checker-model",
        JOB_MAX_ATTEMPTS=3,
        JOB_RETRY_BASE_DELAY=5.0,
    )


@pytest.fixture
def store(tmp_path, utc_clock):
    job_store = SQLJobStore(f"sqlite:///{tmp_path / 'jobs.db'}", clock=utc_clock)
    job_store.init_schema()
    yield job_store
    job_store.close()


@pytest.fixture
def sample_request() -> CustomizeResumeRequest:
    """Plain-text resume and job description"""
    return CustomizeResumeRequest(
        resume_content=(
            "Jane Doe\njane@example.com\n\nEXPERIENCE\nBackend Engineer at Acme Corp\n"
            "2019 - 2023\n- Built payment APIs in Python\n\nSKILLS\n- Python\n- PostgreSQL"
        ),
        job_description="Senior Python engineer to build APIs with FastAPI and PostgreSQL.",
    )
