"""Generation queue API endpoints.

- POST /api/queue - Enqueue a text-to-image job and wake the queue processor
- GET /api/queue - List all jobs, oldest first
- DELETE /api/queue/{job_id} - Remove a pending or failed job
- POST /api/queue/{job_id}/retry - Move a failed job back to pending

Completed jobs are deleted by the processor; their images appear in history.
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from pydantic import Field

from sakuga.api.dependencies import get_processor, get_registry, get_settings, get_uow_factory
from sakuga.api.schemas import CamelModel, GenerationRequest, check_limits
from sakuga.models.job import JobStatus, QueueJob

logger = structlog.get_logger()
router = APIRouter(prefix="/api/queue", tags=["queue"])


# Request/Response Models


class JobResponse(CamelModel):
    """Queue job as returned to the client."""

    id: UUID
    prompt: str
    provider: str
    model: str | None = None
    aspect_ratio: str | None = None
    count: int
    status: JobStatus = Field(..., description="pending, processing or failed")
    error: str | None = Field(default=None, description="Last failure message (failed jobs only)")
    retry_count: int = Field(..., description="Number of explicit retries")
    created_at: datetime
    updated_at: datetime


class JobEnvelope(CamelModel):
    success: bool = True
    job: JobResponse


class DeleteResponse(CamelModel):
    success: bool = True


# Endpoints


@router.post("", response_model=JobEnvelope)
async def enqueue_job(
    request: GenerationRequest,
    settings=Depends(get_settings),
    registry=Depends(get_registry),
    uow_factory=Depends(get_uow_factory),
    processor=Depends(get_processor),
) -> JobEnvelope:
    """Add a generation job to the queue.

    Returns:
        The created job (status=pending)

    Raises:
        404: Unknown provider
        400: Prompt or count over the configured limit
    """
    check_limits(settings, prompt=request.prompt, count=request.count)
    registry.resolve(request.provider)

    async with await uow_factory() as uow:
        job = await uow.jobs.enqueue(
            QueueJob(
                prompt=request.prompt,
                provider=request.provider,
                model=request.model,
                aspect_ratio=request.aspect_ratio,
                count=request.count,
            )
        )

    logger.info(
        "job.enqueued",
        job_id=str(job.id),
        provider=job.provider,
        count=job.count,
        prompt_length=len(job.prompt),
    )
    processor.trigger()
    return JobEnvelope(job=JobResponse.model_validate(job))


@router.get("", response_model=list[JobResponse])
async def list_jobs(uow_factory=Depends(get_uow_factory)) -> list[JobResponse]:
    """List every job in the queue, oldest first."""
    async with await uow_factory() as uow:
        jobs = await uow.jobs.list_all()
    return [JobResponse.model_validate(job) for job in jobs]


@router.delete("/{job_id}", response_model=DeleteResponse)
async def delete_job(job_id: UUID, uow_factory=Depends(get_uow_factory)) -> DeleteResponse:
    """Remove a job before it is processed.

    Raises:
        404: Job not found
        400: Job is processing (it cannot be cancelled mid-flight)
    """
    async with await uow_factory() as uow:
        await uow.jobs.delete_if_not_processing(job_id)

    logger.info("job.deleted", job_id=str(job_id))
    return DeleteResponse()


@router.post("/{job_id}/retry", response_model=JobEnvelope)
async def retry_job(
    job_id: UUID,
    uow_factory=Depends(get_uow_factory),
    processor=Depends(get_processor),
) -> JobEnvelope:
    """Reset a failed job to pending and wake the processor.

    Raises:
        404: Job not found
        400: Job is not failed
    """
    async with await uow_factory() as uow:
        job = await uow.jobs.retry(job_id)

    logger.info("job.retried", job_id=str(job.id), retry_count=job.retry_count)
    processor.trigger()
    return JobEnvelope(job=JobResponse.model_validate(job))
