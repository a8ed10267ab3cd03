"""ChatCompletionClient retry, backoff and circuit breaker tests"""

import pytest
from celery.exceptions import SoftTimeLimitExceeded

from resume_tailor.app.core.circuit_breaker import CircuitState
from resume_tailor.app.core.errors import (
    CircuitOpenError,
    RateLimitError,
    UnauthorizedError,
    UpstreamServerError,
)
from resume_tailor.app.core.providers import CompletionParams


def _server_error():
    return UpstreamServerError("upstream returned 500", service="fake", status=500)


class TestRetries:
    def test_success_on_first_attempt(self, chat_client, provider, sleeps):
        provider.responses = ["tailored"]

        result = chat_client.execute("fake", "m", "system", "user")

        assert result == "tailored"
        assert len(provider.calls) == 1
        assert sleeps == []

    def test_transient_errors_are_retried_with_backoff(self, chat_client, provider, sleeps):
        provider.responses = [_server_error(), _server_error(), "recovered"]

        result = chat_client.execute("fake", "m", "system", "user")

        assert result == "recovered"
        assert len(provider.calls) == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(self, chat_client, provider, registry, sleeps):
        provider.responses = [_server_error()] * 5

        with pytest.raises(UpstreamServerError):
            chat_client.execute("fake", "m", "system", "user")

        assert len(provider.calls) == 3
        assert sleeps == [1.0, 2.0]
        # only the final failure of the call counts toward the breaker
        assert registry.get("fake").snapshot().consecutive_failures == 1

    def test_fatal_errors_are_not_retried(self, chat_client, provider, sleeps):
        provider.responses = [UnauthorizedError("bad key", service="fake", status=401)]

        with pytest.raises(UnauthorizedError):
            chat_client.execute("fake", "m", "system", "user")

        assert len(provider.calls) == 1
        assert sleeps == []

    def test_rate_limit_is_left_to_the_job_layer(self, chat_client, provider, sleeps):
        provider.responses = [RateLimitError("429", service="fake", retry_after=30.0)]

        with pytest.raises(RateLimitError) as exc_info:
            chat_client.execute("fake", "m", "system", "user")

        assert exc_info.value.retry_after == 30.0
        assert len(provider.calls) == 1

    def test_unexpected_errors_count_as_failure(self, chat_client, provider, registry):
        provider.responses = [RuntimeError("bug in provider")]

        with pytest.raises(RuntimeError):
            chat_client.execute("fake", "m", "system", "user")

        assert registry.get("fake").snapshot().consecutive_failures == 1

    def test_passes_params_and_timeout(self, chat_client, provider):
        chat_client.execute("fake", "m", "system", "user", CompletionParams(temperature=0.1, max_tokens=50))

        call = provider.calls[0]
        assert call["params"].temperature == 0.1
        assert call["params"].max_tokens == 50
        assert call["timeout"] == 10.0
        assert call["system_prompt"] == "system"
        assert call["user_content"] == "user"

    def test_job_time_limit_is_not_a_service_failure(self, chat_client, provider, registry, sleeps):
        provider.responses = [SoftTimeLimitExceeded()]

        with pytest.raises(SoftTimeLimitExceeded):
            chat_client.execute("fake", "m", "system", "user")

        assert len(provider.calls) == 1
        assert sleeps == []
        assert registry.get("fake").snapshot().consecutive_failures == 0


class TestCircuit:
    def _trip(self, chat_client, provider):
        provider.responses = [_server_error()] * 9
        for _ in range(3):
            with pytest.raises(UpstreamServerError):
                chat_client.execute("fake", "m", "system", "user")

    def test_open_circuit_fails_fast(self, chat_client, provider, registry):
        self._trip(chat_client, provider)
        calls_before = len(provider.calls)

        with pytest.raises(CircuitOpenError) as exc_info:
            chat_client.execute("fake", "m", "system", "user")

        assert len(provider.calls) == calls_before
        assert exc_info.value.retry_after > 0
        assert registry.get("fake").state is CircuitState.OPEN

    def test_half_open_trial_makes_exactly_one_call(self, chat_client, provider, registry, clock, sleeps):
        self._trip(chat_client, provider)
        clock.advance(30)
        calls_before = len(provider.calls)
        sleeps.clear()
        provider.responses = [_server_error(), "never reached"]

        with pytest.raises(UpstreamServerError):
            chat_client.execute("fake", "m", "system", "user")

        assert len(provider.calls) == calls_before + 1
        assert sleeps == []
        assert registry.get("fake").state is CircuitState.OPEN

    def test_half_open_success_closes(self, chat_client, provider, registry, clock):
        self._trip(chat_client, provider)
        clock.advance(30)
        provider.responses = ["back"]

        assert chat_client.execute("fake", "m", "system", "user") == "back"
        assert registry.get("fake").state is CircuitState.CLOSED

    def test_job_time_limit_frees_the_half_open_trial(self, chat_client, provider, registry, clock):
        """A job running out of time says nothing about the service, so the trial goes back unused."""
        self._trip(chat_client, provider)
        clock.advance(30)
        provider.responses = [SoftTimeLimitExceeded(), "back"]

        with pytest.raises(SoftTimeLimitExceeded):
            chat_client.execute("fake", "m", "system", "user")

        assert registry.get("fake").state is CircuitState.HALF_OPEN
        assert chat_client.execute("fake", "m", "system", "user") == "back"
        assert registry.get("fake").state is CircuitState.CLOSED

    def test_services_do_not_share_a_circuit(self, chat_client, provider, registry):
        self._trip(chat_client, provider)
        provider.responses = ["other"]

        assert chat_client.execute("other-service", "m", "system", "user") == "other"


class TestEvents:
    def test_every_attempt_is_emitted(self, chat_client, provider):
        events = []
        chat_client.add_listener(events.append)
        provider.responses = [_server_error(), "ok"]

        chat_client.execute("fake", "model-x", "system", "user")

        assert [e.outcome for e in events] == ["retry", "success"]
        assert [e.attempt for e in events] == [1, 2]
        assert events[0].error is not None
        assert all(e.model == "model-x" for e in events)

    def test_listener_errors_do_not_break_the_call(self, chat_client, provider):
        def broken(_event):
            raise ValueError("listener bug")

        chat_client.add_listener(broken)

        assert chat_client.execute("fake", "m", "system", "user") == "ok"
