# resume_tailor/app/core/ai_orchestrator.py

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from celery.exceptions import SoftTimeLimitExceeded

from resume_tailor.app.config import Settings, settings as default_settings
from resume_tailor.app.core.artifacts import MIME_TYPES, OutputFormatter
from resume_tailor.app.core.chat_client import ChatCompletionClient
from resume_tailor.app.core.document_parser import DocumentParser, decode_resume_content
from resume_tailor.app.core.error_policy import StageFailureMode, stage_failure_mode
from resume_tailor.app.core.errors import JobTimeoutError, ParsingError, PipelineStageError
from resume_tailor.app.core.jd_fetcher import JobDescriptionFetcher
from resume_tailor.app.core.prompts import (
    PromptFactory,
    build_strategist_content,
    build_verifier_content,
    get_preset,
)
from resume_tailor.app.core.providers import CompletionParams
from resume_tailor.app.models.job_models import Job

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class StageResult:
    stage: str
    content: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    duration_ms: float = 0.0
    degraded: bool = False
    skipped: bool = False


@dataclass
class PipelineResult:
    text: str
    formatted: Optional[bytes]
    mime_type: str
    stages: List[StageResult] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


def parse_fact_ledger(raw: str) -> Dict[str, Any]:
    """The extractor must answer with a JSON object; anything else is a failed extraction."""
    cleaned = _FENCE.sub("", raw.strip())
    ledger = json.loads(cleaned)
    if not isinstance(ledger, dict):
        raise ValueError("fact extraction did not return a JSON object")
    return ledger


class AIOrchestrator:
    """Runs the resume customization pipeline for one job, stage by stage."""

    def __init__(
        self,
        chat_client: ChatCompletionClient,
        parser: Optional[DocumentParser] = None,
        fetcher: Optional[JobDescriptionFetcher] = None,
        formatter: Optional[OutputFormatter] = None,
        config: Optional[Settings] = None,
    ):
        self.chat = chat_client
        self.config = config or default_settings
        self.parser = parser or DocumentParser()
        self.fetcher = fetcher or JobDescriptionFetcher(timeout=self.config.JD_FETCH_TIMEOUT)
        self.formatter = formatter or OutputFormatter()
        self.service_name = self.config.LLM_PROVIDER

    def run(self, job: Job) -> PipelineResult:
        inputs = job.inputs
        preset = get_preset(inputs.optimization_preset)
        prompts = PromptFactory(preset).build()
        models = {
            "profiler": inputs.profiler_model or self.config.DEFAULT_PROFILER_MODEL,
            "researcher": inputs.researcher_model or self.config.DEFAULT_RESEARCHER_MODEL,
            "strategist": inputs.strategist_model or self.config.DEFAULT_STRATEGIST_MODEL,
            "fact_checker": self.config.DEFAULT_FACT_CHECKER_MODEL,
        }
        stages: List[StageResult] = []
        logger.info("Job %s: starting pipeline preset=%s output=%s",
                    job.job_id, inputs.optimization_preset, inputs.output_format)

        resume_text = self._stage(job.job_id, "parse", stages, lambda: self._parse_resume(job))

        profile = self._stage(job.job_id, "profile", stages, lambda: self.chat.execute(
            self.service_name, models["profiler"], prompts.profiler, resume_text,
            CompletionParams(temperature=preset.temperature, max_tokens=preset.profiler_max_tokens),
        ))

        research = self._stage(job.job_id, "research", stages, lambda: self.chat.execute(
            self.service_name, models["researcher"], prompts.researcher, self._resolve_job_description(job),
            CompletionParams(temperature=preset.temperature, max_tokens=preset.researcher_max_tokens),
        ))

        ledger: Dict[str, Any] = self._stage(job.job_id, "fact_extraction", stages, lambda: parse_fact_ledger(
            self.chat.execute(
                self.service_name, models["fact_checker"], prompts.fact_extractor, resume_text,
                CompletionParams(temperature=0.1, max_tokens=1500),
            )
        ), fallback={})
        ledger_json = json.dumps(ledger, ensure_ascii=False)

        generated = self._stage(job.job_id, "generate", stages, lambda: self.chat.execute(
            self.service_name, models["strategist"], prompts.strategist,
            build_strategist_content(profile, research, resume_text, ledger_json),
            CompletionParams(temperature=0.3, max_tokens=preset.strategist_max_tokens),
        ))

        if ledger:
            final_text = self._stage(job.job_id, "verify", stages, lambda: self._verify(
                models["strategist"], prompts.fact_verifier, ledger_json, generated,
            ), fallback=generated)
        else:
            logger.info("Job %s: fact ledger empty, skipping verification", job.job_id)
            stages.append(StageResult(stage="verify", skipped=True))
            final_text = generated

        formatted: Optional[bytes] = None
        mime_type = MIME_TYPES["text"]
        if inputs.output_format != "text":
            output = self._stage(job.job_id, "format", stages,
                                 lambda: self.formatter.format(final_text, inputs.output_format),
                                 fallback=None)
            if output is not None:
                formatted, mime_type = output.content, output.mime_type
        else:
            stages.append(StageResult(stage="format", skipped=True))

        metadata = {
            "optimization_preset": inputs.optimization_preset,
            "output_format": inputs.output_format,
            "models": models,
            "degraded_stages": [s.stage for s in stages if s.degraded],
        }
        return PipelineResult(text=final_text, formatted=formatted, mime_type=mime_type,
                              stages=stages, metadata=metadata)

    # ---------- Stages ----------

    def _parse_resume(self, job: Job) -> str:
        inputs = job.inputs
        raw = decode_resume_content(inputs.resume_content, inputs.resume_format)
        text = self.parser.parse(raw, inputs.resume_format)
        if not text.strip():
            raise ParsingError("Resume contains no extractable text")
        return text

    def _resolve_job_description(self, job: Job) -> str:
        inputs = job.inputs
        if not inputs.is_job_description_url:
            return inputs.job_description
        logger.info("Job %s: fetching job description from %s", job.job_id, inputs.job_description)
        return self.fetcher.fetch(inputs.job_description.strip())

    def _verify(self, model: str, system_prompt: str, ledger_json: str, generated: str) -> str:
        verified = self.chat.execute(
            self.service_name, model, system_prompt,
            build_verifier_content(ledger_json, generated),
            CompletionParams(temperature=0.2, max_tokens=4000),
        )
        if not verified.strip():
            raise ValueError("verification returned an empty resume")
        return verified

    _NO_FALLBACK = object()

    def _stage(self, job_id: str, stage: str, stages: List[StageResult],
               fn: Callable[[], T], fallback: Any = _NO_FALLBACK) -> T:
        started = time.monotonic()
        try:
            value = fn()
        except SoftTimeLimitExceeded as exc:
            # never degraded: the job is out of time and goes back for recovery
            logger.error("Job %s: stage %s hit the job time limit", job_id, stage)
            raise PipelineStageError(stage, JobTimeoutError(f"Job {job_id} exceeded its time limit")) from exc
        except Exception as exc:
            duration_ms = (time.monotonic() - started) * 1000
            if stage_failure_mode(stage) is StageFailureMode.DEGRADE and fallback is not self._NO_FALLBACK:
                logger.warning("Job %s: stage %s failed after %.0fms, continuing with fallback: %s",
                               job_id, stage, duration_ms, exc)
                stages.append(StageResult(stage=stage, duration_ms=duration_ms, degraded=True))
                return fallback
            logger.error("Job %s: stage %s failed after %.0fms: %s", job_id, stage, duration_ms, exc)
            raise PipelineStageError(stage, exc) from exc

        duration_ms = (time.monotonic() - started) * 1000
        if isinstance(value, str):
            stages.append(StageResult(stage=stage, content=value, duration_ms=duration_ms))
        elif isinstance(value, dict):
            stages.append(StageResult(stage=stage, data=value, duration_ms=duration_ms))
        else:
            stages.append(StageResult(stage=stage, duration_ms=duration_ms))
        logger.info("Job %s: stage %s completed in %.0fms", job_id, stage, duration_ms)
        return value
