"""AIOrchestrator stage order and degrade path tests"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from celery.exceptions import SoftTimeLimitExceeded

from resume_tailor.app.core.ai_orchestrator import AIOrchestrator, parse_fact_ledger
from resume_tailor.app.core.artifacts import OutputFormatter
from resume_tailor.app.core.error_policy import ErrorAction, classify
from resume_tailor.app.core.errors import (
    CorruptDocumentError,
    JobTimeoutError,
    NetworkError,
    PipelineStageError,
    UnauthorizedError,
    UpstreamClientError,
)
from resume_tailor.app.models.job_models import Job, JobStatus

LEDGER = '{"name": "Jane Doe", "employers": ["Acme Corp"]}'


def make_job(request) -> Job:
    return Job(
        job_id="job-1",
        owner_id="tester",
        status=JobStatus.PROCESSING,
        inputs=request,
        attempts=1,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def fetcher():
    return MagicMock()


@pytest.fixture
def orchestrator(chat_client, fetcher, test_settings):
    return AIOrchestrator(chat_client, fetcher=fetcher, formatter=OutputFormatter(), config=test_settings)


class TestHappyPath:
    def test_runs_stages_in_order(self, orchestrator, provider, sample_request):
        provider.responses = ["profile", "research", LEDGER, "generated", "verified"]

        result = orchestrator.run(make_job(sample_request))

        assert result.text == "verified"
        assert result.formatted is None
        assert result.mime_type == "text/plain"
        assert [s.stage for s in result.stages] == [
            "parse", "profile", "research", "fact_extraction", "generate", "verify", "format",
        ]
        assert result.stages[-1].skipped is True
        assert result.metadata["degraded_stages"] == []

    def test_stage_inputs_flow_forward(self, orchestrator, provider, sample_request):
        provider.responses = ["PROFILE-OUT", "RESEARCH-OUT", LEDGER, "GENERATED-OUT", "verified"]

        orchestrator.run(make_job(sample_request))

        profile_call, research_call, fact_call, generate_call, verify_call = provider.calls
        assert "Jane Doe" in profile_call["user_content"]
        assert research_call["user_content"] == sample_request.job_description
        assert fact_call["params"].temperature == 0.1
        assert "PROFILE-OUT" in generate_call["user_content"]
        assert "RESEARCH-OUT" in generate_call["user_content"]
        assert "Acme Corp" in generate_call["user_content"]
        assert generate_call["params"].temperature == 0.3
        assert "GENERATED-OUT" in verify_call["user_content"]
        assert verify_call["params"].temperature == 0.2

    def test_models_default_and_override(self, orchestrator, provider, sample_request):
        request = sample_request.model_copy(update={"profiler_model": "custom/profiler"})
        provider.responses = ["p", "r", LEDGER, "g", "v"]

        result = orchestrator.run(make_job(request))

        assert [c["model"] for c in provider.calls] == [
            "custom/profiler", "researcher-model", "checker-model", "strategist-model", "strategist-model",
        ]
        assert result.metadata["models"]["profiler"] == "custom/profiler"

    def test_preset_drives_temperature_and_prompt(self, orchestrator, provider, sample_request):
        request = sample_request.model_copy(update={"optimization_preset": "ats_optimization"})
        provider.responses = ["p", "r", LEDGER, "g", "v"]

        orchestrator.run(make_job(request))

        assert provider.calls[0]["params"].temperature == 0.5
        assert "ATS" in provider.calls[3]["system_prompt"]

    def test_job_description_url_is_fetched(self, orchestrator, provider, fetcher, sample_request):
        request = sample_request.model_copy(update={
            "job_description": "https://jobs.example.com/123",
            "is_job_description_url": True,
        })
        fetcher.fetch.return_value = "Fetched posting text"
        provider.responses = ["p", "r", LEDGER, "g", "v"]

        orchestrator.run(make_job(request))

        fetcher.fetch.assert_called_once_with("https://jobs.example.com/123")
        assert provider.calls[1]["user_content"] == "Fetched posting text"

    def test_html_output_is_formatted(self, orchestrator, provider, sample_request):
        request = sample_request.model_copy(update={"output_format": "html"})
        provider.responses = ["p", "r", LEDGER, "g", "SUMMARY\nBuilt things"]

        result = orchestrator.run(make_job(request))

        assert result.mime_type == "text/html"
        assert b"<h2>Summary</h2>" in result.formatted
        assert result.text == "SUMMARY\nBuilt things"


class TestDegradePaths:
    def test_non_json_fact_extraction_skips_verification(self, orchestrator, provider, sample_request):
        provider.responses = ["p", "r", "Sorry, I cannot do that.", "generated"]

        result = orchestrator.run(make_job(sample_request))

        assert result.text == "generated"
        assert len(provider.calls) == 4
        verify = next(s for s in result.stages if s.stage == "verify")
        assert verify.skipped is True
        assert result.metadata["degraded_stages"] == ["fact_extraction"]

    def test_verification_failure_keeps_generated_text(self, orchestrator, provider, sample_request):
        provider.responses = ["p", "r", LEDGER, "generated", UnauthorizedError("revoked", service="fake")]

        result = orchestrator.run(make_job(sample_request))

        assert result.text == "generated"
        assert result.metadata["degraded_stages"] == ["verify"]

    def test_empty_verification_keeps_generated_text(self, orchestrator, provider, sample_request):
        provider.responses = ["p", "r", LEDGER, "generated", "   "]

        result = orchestrator.run(make_job(sample_request))

        assert result.text == "generated"

    def test_format_failure_falls_back_to_plain_text(self, chat_client, provider, fetcher, test_settings,
                                                     sample_request):
        formatter = MagicMock()
        formatter.format.side_effect = RuntimeError("renderer crashed")
        orchestrator = AIOrchestrator(chat_client, fetcher=fetcher, formatter=formatter, config=test_settings)
        request = sample_request.model_copy(update={"output_format": "pdf"})
        provider.responses = ["p", "r", LEDGER, "g", "verified"]

        result = orchestrator.run(make_job(request))

        assert result.text == "verified"
        assert result.formatted is None
        assert result.mime_type == "text/plain"
        assert result.metadata["degraded_stages"] == ["format"]


class TestFatalStages:
    def test_generate_failure_names_the_stage(self, orchestrator, provider, sample_request):
        provider.responses = ["p", "r", LEDGER, UpstreamClientError("context too long", service="fake", status=400)]

        with pytest.raises(PipelineStageError) as exc_info:
            orchestrator.run(make_job(sample_request))

        assert exc_info.value.stage == "generate"
        assert "generate stage failed" in str(exc_info.value)
        assert classify(exc_info.value).action is ErrorAction.FATAL

    def test_fetch_failure_is_retryable(self, orchestrator, provider, fetcher, sample_request):
        request = sample_request.model_copy(update={
            "job_description": "https://jobs.example.com/1",
            "is_job_description_url": True,
        })
        fetcher.fetch.side_effect = NetworkError("connection reset", service="job-board")
        provider.responses = ["p"]

        with pytest.raises(PipelineStageError) as exc_info:
            orchestrator.run(make_job(request))

        assert exc_info.value.stage == "research"
        assert classify(exc_info.value).action is ErrorAction.RETRYABLE

    def test_corrupt_resume_fails_before_any_llm_call(self, orchestrator, provider, sample_request):
        request = sample_request.model_copy(update={"resume_format": "pdf", "resume_content": "not base64!!"})

        with pytest.raises(PipelineStageError) as exc_info:
            orchestrator.run(make_job(request))

        assert exc_info.value.stage == "parse"
        assert isinstance(exc_info.value.cause, CorruptDocumentError)
        assert provider.calls == []


class TestJobTimeLimit:
    """Celery's soft time limit can fire inside any stage; it must end the run as a retryable timeout."""

    def test_time_limit_in_fatal_stage_is_retryable(self, orchestrator, provider, sample_request):
        provider.responses = [SoftTimeLimitExceeded()]

        with pytest.raises(PipelineStageError) as exc_info:
            orchestrator.run(make_job(sample_request))

        assert exc_info.value.stage == "profile"
        assert isinstance(exc_info.value.cause, JobTimeoutError)
        assert classify(exc_info.value).action is ErrorAction.RETRYABLE

    @pytest.mark.parametrize("responses, stage", [
        (["p", "r", SoftTimeLimitExceeded()], "fact_extraction"),
        (["p", "r", LEDGER, "g", SoftTimeLimitExceeded()], "verify"),
    ])
    def test_time_limit_in_degradable_stage_is_not_degraded(self, orchestrator, provider, sample_request,
                                                            responses, stage):
        provider.responses = list(responses)

        with pytest.raises(PipelineStageError) as exc_info:
            orchestrator.run(make_job(sample_request))

        assert exc_info.value.stage == stage
        assert len(provider.calls) == len(responses)
        assert classify(exc_info.value).reason == "job_timeout"

    def test_time_limit_in_format_stage_is_not_degraded(self, chat_client, provider, fetcher, test_settings,
                                                        sample_request):
        formatter = MagicMock()
        formatter.format.side_effect = SoftTimeLimitExceeded()
        orchestrator = AIOrchestrator(chat_client, fetcher=fetcher, formatter=formatter, config=test_settings)
        provider.responses = ["p", "r", LEDGER, "g", "v"]
        request = sample_request.model_copy(update={"output_format": "pdf"})

        with pytest.raises(PipelineStageError) as exc_info:
            orchestrator.run(make_job(request))

        assert exc_info.value.stage == "format"
        assert isinstance(exc_info.value.cause, JobTimeoutError)


class TestParseFactLedger:
    def test_plain_json(self):
        assert parse_fact_ledger(LEDGER)["name"] == "Jane Doe"

    def test_fenced_json(self):
        assert parse_fact_ledger(f"```json\n{LEDGER}\n```")["employers"] == ["Acme Corp"]

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            parse_fact_ledger("[1, 2, 3]")
