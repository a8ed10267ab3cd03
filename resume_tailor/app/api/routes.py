#resume_tailor/app/api/routes.py

from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import Response

from resume_tailor.app.core.async_queue import JobQueue, get_queue
from resume_tailor.app.models.job_models import (
    CustomizeResumeRequest,
    JobHistoryResponse,
    JobSubmitResponse,
    JobStatusResponse,
)

api_router = APIRouter()

_EXTENSIONS = {
    "text/plain": "txt",
    "text/markdown": "md",
    "text/html": "html",
    "application/pdf": "pdf",
}


@api_router.get("/health", tags=["Health"])
def health_check():
    return {"status": "ok"}


@api_router.post("/resume/customize", response_model=JobSubmitResponse, tags=["Resume"])
def customize_resume(
    request: CustomizeResumeRequest,
    x_user_id: Optional[str] = Header(default=None),
    queue: JobQueue = Depends(get_queue),
):
    """Submit a resume customization job; returns immediately with its id."""
    job_id = queue.submit(request, owner_id=x_user_id or "anonymous")
    return JobSubmitResponse(job_id=job_id)


@api_router.get("/resume/status/{job_id}", response_model=JobStatusResponse,
                response_model_exclude_none=True, tags=["Resume"])
def resume_status(
    job_id: str,
    x_user_id: Optional[str] = Header(default=None),
    queue: JobQueue = Depends(get_queue),
):
    status = queue.get_status(job_id, owner_id=x_user_id or "anonymous")
    return JobStatusResponse(**status)


@api_router.get("/resume/history", response_model=JobHistoryResponse,
                response_model_exclude_none=True, tags=["Resume"])
def resume_history(
    x_user_id: Optional[str] = Header(default=None),
    queue: JobQueue = Depends(get_queue),
):
    """The caller's jobs, newest first."""
    jobs = queue.get_history(x_user_id or "anonymous")
    return JobHistoryResponse(jobs=jobs)


@api_router.get("/resume/result/{job_id}", tags=["Resume"])
def resume_result(
    job_id: str,
    x_user_id: Optional[str] = Header(default=None),
    queue: JobQueue = Depends(get_queue),
):
    """
    Download the customized resume in the format requested at submission.
    409 while the job has not completed.
    """
    output = queue.get_result_file(job_id, owner_id=x_user_id or "anonymous")
    ext = _EXTENSIONS.get(output.mime_type, "txt")
    return Response(
        content=output.content,
        media_type=output.mime_type,
        headers={"Content-Disposition": f'attachment; filename="resume_{job_id}.{ext}"'},
    )
