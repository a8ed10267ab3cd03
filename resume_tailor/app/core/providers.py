# resume_tailor/app/core/providers.py

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import litellm
from litellm import exceptions as llm_exc

from resume_tailor.app.config import Settings, settings as default_settings
from resume_tailor.app.core.errors import (
    ExternalAPIError,
    NetworkError,
    RateLimitError,
    UnauthorizedError,
    UpstreamClientError,
    UpstreamServerError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionParams:
    temperature: float = 0.7
    max_tokens: int = 2000


class ChatCompletionProvider(Protocol):
    name: str

    def complete(self, model: str, system_prompt: str, user_content: str,
                 params: CompletionParams, timeout: float) -> str:
        ...


_LITELLM_ERRORS = (
    llm_exc.Timeout,
    llm_exc.RateLimitError,
    llm_exc.AuthenticationError,
    llm_exc.PermissionDeniedError,
    llm_exc.APIConnectionError,
    llm_exc.APIError,
    llm_exc.BadRequestError,
    llm_exc.NotFoundError,
    llm_exc.InternalServerError,
    llm_exc.ServiceUnavailableError,
)


def _retry_after(exc: Exception) -> Optional[float]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except (TypeError, ValueError):
        return None


def translate_error(exc: Exception, service: str) -> ExternalAPIError:
    """Turn a LiteLLM exception into one of our tagged upstream errors."""
    message = str(exc) or exc.__class__.__name__
    status = getattr(exc, "status_code", None)

    if isinstance(exc, llm_exc.Timeout):
        return UpstreamTimeoutError(f"Request to {service} timed out: {message}", service=service)
    if isinstance(exc, llm_exc.RateLimitError) or status == 429:
        return RateLimitError(f"Rate limit exceeded on {service}: {message}",
                              service=service, retry_after=_retry_after(exc))
    if isinstance(exc, (llm_exc.AuthenticationError, llm_exc.PermissionDeniedError)) or status in (401, 403):
        return UnauthorizedError(f"Authentication with {service} failed: {message}",
                                 service=service, status=status)
    if isinstance(exc, llm_exc.APIConnectionError):
        return NetworkError(f"Could not reach {service}: {message}", service=service)
    if isinstance(status, int) and 400 <= status < 500:
        return UpstreamClientError(f"{service} rejected the request ({status}): {message}",
                                   service=service, status=status)
    return UpstreamServerError(f"{service} failed ({status or 'unknown status'}): {message}",
                               service=service, status=status)


class LiteLLMProvider:
    """Chat completions through LiteLLM, errors translated at the call site."""

    def __init__(self, config: Optional[Settings] = None, name: str = "llm"):
        self.config = config or default_settings
        self.name = name

    def complete(self, model: str, system_prompt: str, user_content: str,
                 params: CompletionParams, timeout: float) -> str:
        model_id = self.config.full_model_id(model)
        try:
            resp = litellm.completion(
                model=model_id,
                api_base=self.config.LLM_BASE_URL or None,
                api_key=self.config.LLM_API_KEY or None,
                timeout=timeout,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                temperature=params.temperature,
                max_tokens=params.max_tokens,
            )
        except _LITELLM_ERRORS as exc:
            raise translate_error(exc, self.name) from exc

        content = resp.choices[0].message.content if resp.choices else None
        if not content:
            raise UpstreamServerError(f"{self.name} returned an empty completion for {model_id}",
                                      service=self.name)
        return content
