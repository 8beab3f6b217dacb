# routers/router.py
"""
FastAPI Router for the job status read path and service health
"""

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Request,
    status
)

from core.exceptions import DeadLetterDelivery, JobStatusNotFound, TransportError
from core.logger import logger
from core.rate_limiter import limit_param, limiter
from core.redis_client import redis_health_check
from integrations.sqs_client import SQSQueueClient
from schemas.api_models import HealthResponse, JobStatusResponse
from services.job_status_service import JobStatusReader


# ============================================================================
# ROUTER CONFIGURATION
# ============================================================================

router = APIRouter(
    prefix="/api/v1",
    tags=["Image Jobs"],
    responses={
        429: {"description": "Too Many Requests"},
        500: {"description": "Internal Server Error"}
    }
)


def get_status_reader() -> JobStatusReader:
    return JobStatusReader()


def get_queue_client() -> SQSQueueClient:
    return SQSQueueClient()


# ============================================================================
# HEALTH CHECK ENDPOINTS
# ============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Service Health Check",
    description="Validates status cache and queue connectivity"
)
async def check_health(
    request: Request,
    queue: SQSQueueClient = Depends(get_queue_client),
) -> HealthResponse:
    """
    Checks:
    - Redis reachability (status cache)
    - SQS reachability and backlog
    - Dead-letter queue backlog (jobs the queue gave up on)
    """
    health_status = HealthResponse(
        status="healthy",
        message="Image job pipeline is operational"
    )

    if redis_health_check():
        health_status.redis_status = "connected"
    else:
        health_status.redis_status = "error: unreachable"
        health_status.status = "degraded"

    try:
        health_status.queue_depth = queue.queue_depth()
        health_status.sqs_status = "connected"
    except TransportError as e:
        logger.error(f"SQS health check failed: {e}")
        health_status.sqs_status = f"error: {str(e)[:100]}"
        health_status.status = "degraded"

    if queue.dead_letter_queue_url:
        try:
            queue.check_dead_letter_queue()
            health_status.dead_letter_status = "empty"
        except DeadLetterDelivery as e:
            logger.warning(f"Dead-letter queue not empty: {e}")
            health_status.dead_letter_status = str(e)
            health_status.status = "degraded"
        except TransportError as e:
            logger.error(f"Dead-letter queue health check failed: {e}")
            health_status.dead_letter_status = f"error: {str(e)[:100]}"
            health_status.status = "degraded"
    else:
        health_status.dead_letter_status = "disabled"

    return health_status


# ============================================================================
# JOB STATUS ENDPOINTS
# ============================================================================

@router.get(
    "/jobs/{job_id}/status",
    response_model=JobStatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Job Status",
    description="Current status of an image generation job"
)
@limiter.limit(limit_param)
async def get_job_status(
    request: Request,
    job_id: str,
    reader: JobStatusReader = Depends(get_status_reader),
) -> JobStatusResponse:
    """
    Read-only; pollers never write the status cache.

    404 means the job is unknown or its record expired, which is not the
    same thing as a failed job.
    """
    try:
        record = reader.get_status(job_id)
    except JobStatusNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found"
        )
    except TransportError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job status temporarily unavailable"
        )

    return JobStatusResponse.from_record(record)
