#resume_tailor/app/models/job_models.py

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, Dict, Any, List, Literal
from enum import Enum

from resume_tailor.app.core.prompts import OPTIMIZATION_PRESETS


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class CustomizeResumeRequest(BaseModel):
    """Body of POST /resume/customize; also the job inputs persisted with each job."""
    model_config = ConfigDict(populate_by_name=True)

    resume_content: str = Field(..., alias="resumeContent", description="Resume text, or base64/data URL for pdf/docx")
    job_description: str = Field(..., alias="jobDescription", description="Job description text or URL")
    resume_format: Literal["text", "pdf", "docx", "html", "json"] = Field(default="text", alias="resumeFormat")
    is_job_description_url: bool = Field(default=False, alias="isJobDescriptionUrl")
    output_format: Literal["text", "markdown", "html", "pdf"] = Field(default="text", alias="outputFormat")
    optimization_preset: str = Field(default="default", alias="optimizationPreset")
    profiler_model: Optional[str] = Field(default=None, alias="profilerModel")
    researcher_model: Optional[str] = Field(default=None, alias="researcherModel")
    strategist_model: Optional[str] = Field(default=None, alias="strategistModel")

    @field_validator("resume_content", "job_description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("optimization_preset")
    @classmethod
    def _known_preset(cls, value: str) -> str:
        value = value or "default"
        if value not in OPTIMIZATION_PRESETS:
            raise ValueError(f"must be one of: {', '.join(OPTIMIZATION_PRESETS)}")
        return value

    @model_validator(mode="after")
    def _url_flag_matches(self):
        if self.is_job_description_url and not self.job_description.strip().lower().startswith(("http://", "https://")):
            raise ValueError("jobDescription must be an http(s) URL when isJobDescriptionUrl is true")
        return self


class Job(BaseModel):
    """Read model of a persisted job row."""
    job_id: str
    owner_id: str
    status: JobStatus
    inputs: CustomizeResumeRequest
    attempts: int = 0
    max_attempts: int = 3
    lease_token: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    available_at: Optional[datetime] = None
    result: Optional[str] = None
    formatted_result: Optional[bytes] = None
    result_mime_type: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobSubmitResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: JobStatus
    result: Optional[str] = None
    result_mime_type: Optional[str] = Field(default=None, alias="resultMimeType")
    error: Optional[str] = None
    created_at: datetime = Field(..., alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")



class JobHistoryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: JobStatus
    created_at: datetime = Field(..., alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")


class JobHistoryResponse(BaseModel):
    jobs: List[JobHistoryItem] = Field(default_factory=list)
