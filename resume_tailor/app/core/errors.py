# resume_tailor/app/core/errors.py

from typing import Any, Dict, Optional


class ResumeTailorError(Exception):
    """Base for every error the pipeline raises on purpose."""

    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(ResumeTailorError):
    status_code = 400


class ParsingError(ResumeTailorError):
    status_code = 422


class UnsupportedFormatError(ParsingError):
    pass


class CorruptDocumentError(ParsingError):
    pass


class NoContentExtractedError(ParsingError):
    pass


class ExternalAPIError(ResumeTailorError):
    """Failure of an upstream service (LLM provider, job board, ...)."""

    status_code = 502

    def __init__(self, message: str, service: str = "", status: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.service = service
        self.status = status


class UpstreamServerError(ExternalAPIError):
    pass


class UpstreamClientError(ExternalAPIError):
    pass


class UpstreamTimeoutError(ExternalAPIError):
    status_code = 504


class NetworkError(ExternalAPIError):
    pass


class UnauthorizedError(ExternalAPIError):
    pass


class RateLimitError(ExternalAPIError):
    status_code = 429

    def __init__(self, message: str, service: str = "", retry_after: Optional[float] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, service=service, status=429, context=context)
        self.retry_after = retry_after


class CircuitOpenError(ExternalAPIError):
    status_code = 503

    def __init__(self, service: str, retry_after: float = 0.0):
        super().__init__(f"Service {service} is currently unavailable (circuit open)", service=service)
        self.retry_after = retry_after


class DatabaseError(ResumeTailorError):
    pass


class JobTimeoutError(ResumeTailorError):
    status_code = 504


class PipelineStageError(ResumeTailorError):
    """A fatal stage failure; classification follows `cause`."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} stage failed: {cause}", {"stage": stage})
        self.stage = stage
        self.cause = cause


class JobNotFoundError(ResumeTailorError):
    status_code = 404

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found", {"job_id": job_id})


class JobNotReadyError(ResumeTailorError):
    status_code = 409

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} has no result yet (status={status})", {"job_id": job_id, "status": status})
