from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.config import settings
from core.logger import logger
from core.redis_client import redis_client_instance


def _start_embedded_worker(app: FastAPI) -> None:
    """
    Local development only: run one consumer loop inside the API process.
    Production runs worker.py as its own service.
    """
    from integrations.generation_client import GenerationClient
    from integrations.sqs_client import SQSQueueClient
    from services.job_processor import JobProcessor
    from services.job_status_service import JobStatusStore

    processor = JobProcessor(
        queue=SQSQueueClient(),
        status_store=JobStatusStore(),
        generator=GenerationClient(),
        name="embedded-job-processor",
    )
    processor.start_in_thread()
    app.state.job_processor = processor


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Starts the embedded consumer loop when RUN_EMBEDDED_WORKER is set and
    releases the Redis pool on shutdown.
    """
    app.state.job_processor = None
    if settings.RUN_EMBEDDED_WORKER:
        _start_embedded_worker(app)
        logger.info("Lifespan startup: embedded job processor running.")
    logger.info("Lifespan startup: Ready to serve requests.")
    yield

    processor = app.state.job_processor
    if processor is not None:
        processor.stop()
        # the loop finishes its current job; a long poll can take WaitTimeSeconds
        processor.wait_stopped(timeout=settings.SQS_WAIT_TIME_SECS + 5)
    redis_client_instance.close()
    logger.info("Lifespan shutdown.")
