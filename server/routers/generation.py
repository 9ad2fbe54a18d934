"""Flashcard generation and job status routes."""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import ORJSONResponse

from core.container import container
from core.logging import get_logger
from models.generation import GenerationRequest
from services.exceptions import (
    AllAdaptersFailedError,
    JobNotFoundError,
    NoAdapterAvailableError,
    QueueUnavailableError,
)
from services.generation import GenerationService
from services.jobs import QueueService

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["generation"])


def _provider_error(error: Exception, providers) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=503,
        content={"success": False, "error": str(error), "providers": providers},
    )


@router.post("/generate")
async def generate_flashcards(
    request: GenerationRequest,
    service: GenerationService = Depends(lambda: container.generation_service())
):
    """Serve from cache, enqueue a job, or generate inline when the queue is down."""
    try:
        outcome = await service.submit(request)
    except AllAdaptersFailedError as e:
        logger.error("Generation failed on every provider", topic=request.topic,
                     providers=e.as_detail())
        return _provider_error(e, e.as_detail())
    except NoAdapterAvailableError as e:
        logger.error("No provider available", topic=request.topic, tried=e.tried)
        return _provider_error(e, {name: "not available" for name in e.tried})

    if outcome.cached:
        return {"success": True, "cached": True, **outcome.result.to_cache()}

    if outcome.queued:
        return ORJSONResponse(
            status_code=202,
            content={
                "success": True,
                "jobId": outcome.job_id,
                "status": "queued",
                "statusUrl": f"/api/jobs/{outcome.job_id}",
            },
        )

    return {
        "success": True,
        "cached": False,
        **outcome.result.to_cache(),
        "metadata": outcome.metadata,
    }


@router.get("/jobs/{job_id}")
async def get_job_status(
    job_id: str,
    queue: QueueService = Depends(lambda: container.queue())
):
    try:
        job = await queue.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    except QueueUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return job.to_event()


@router.get("/queue/stats")
async def get_queue_stats(queue: QueueService = Depends(lambda: container.queue())):
    """Job counts by status."""
    try:
        counts = await queue.stats()
    except QueueUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, "queue": queue.name, "enabled": queue.enabled, "counts": counts}


@router.get("/queue/dead-letters")
async def get_dead_letters(
    limit: int = Query(default=50, ge=1, le=1000),
    queue: QueueService = Depends(lambda: container.queue())
):
    try:
        entries = await queue.dead_letters(limit)
    except QueueUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, "enabled": queue.dlq.enabled, "entries": entries}
