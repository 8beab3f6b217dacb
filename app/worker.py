"""
Standalone consumer process.

    cd app && python worker.py

Starts WORKER_CONCURRENCY independent JobProcessor loops, each in its own
thread with its own state; they share only the pooled SQS/Redis clients.
SIGINT/SIGTERM ask every loop to stop after its current message.
"""
import signal
import sys
import threading
from typing import List

from core.aws_client import get_sqs_client, validate_aws_credentials
from core.config import settings
from core.logger import logger
from core.redis_client import get_redis, redis_client_instance
from integrations.generation_client import GenerationClient
from integrations.sqs_client import SQSQueueClient
from services.job_processor import JobProcessor
from services.job_status_service import JobStatusStore


def build_processors(count: int) -> List[JobProcessor]:
    queue = SQSQueueClient(get_sqs_client())
    status_store = JobStatusStore(get_redis())
    return [
        JobProcessor(
            queue=queue,
            status_store=status_store,
            generator=GenerationClient(),
            name=f"job-processor-{index}",
        )
        for index in range(count)
    ]


def main() -> int:
    validate_aws_credentials()
    processors = build_processors(max(1, settings.WORKER_CONCURRENCY))

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down after in-flight jobs")
        for processor in processors:
            processor.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    threads: List[threading.Thread] = [
        thread for thread in (p.start_in_thread() for p in processors) if thread is not None
    ]
    logger.info(
        f"Worker started with {len(threads)} consumer loops on {settings.SQS_QUEUE_URL}"
    )

    # join with a timeout so the main thread keeps receiving signals
    while any(t.is_alive() for t in threads):
        for thread in threads:
            thread.join(timeout=1.0)

    for processor in processors:
        close = getattr(processor.generator, "close", None)
        if close:
            close()
    redis_client_instance.close()
    logger.info("Worker exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
