"""WebSocket router streaming job status updates.

One connection follows one job: the current status is sent on connect, then
every ``job-updated`` event until the job reaches a terminal status.
"""

from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.container import container
from core.logging import get_logger
from models.jobs import JobStatus
from services.exceptions import JobNotFoundError, QueueUnavailableError

logger = get_logger(__name__)

router = APIRouter(tags=["websocket"])

# Application close codes (4000-4999 range)
CLOSE_JOB_NOT_FOUND = 4404
CLOSE_QUEUE_UNAVAILABLE = 4503


def _is_terminal(event: Dict[str, Any]) -> bool:
    try:
        return JobStatus(event.get("status")).is_terminal
    except ValueError:
        return False


@router.websocket("/ws/jobs/{job_id}")
async def job_updates(websocket: WebSocket, job_id: str):
    queue = container.queue()
    await websocket.accept()
    logger.debug("Job subscriber connected", job_id=job_id)

    try:
        # Subscribe before reading status so no transition falls in between
        async with queue.events.subscribe(job_id) as events:
            try:
                job = await queue.get_status(job_id)
            except JobNotFoundError as e:
                await websocket.send_json({"id": job_id, "status": None, "error": str(e)})
                await websocket.close(code=CLOSE_JOB_NOT_FOUND)
                return

            await websocket.send_json(job.to_event())
            if job.status.is_terminal:
                await websocket.close()
                return

            async for event in events:
                await websocket.send_json(event)
                if _is_terminal(event):
                    break

        await websocket.close()
    except QueueUnavailableError as e:
        logger.warning("Job updates unavailable", job_id=job_id, error=str(e))
        await websocket.send_json({"id": job_id, "status": None, "error": str(e)})
        await websocket.close(code=CLOSE_QUEUE_UNAVAILABLE)
    except WebSocketDisconnect:
        logger.debug("Job subscriber disconnected", job_id=job_id)
