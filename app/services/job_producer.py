# services/job_producer.py
"""
Producer side of the pipeline, called by the upload/trigger handler once per
new processing request.

Only enqueues. The status record is created by the processor on first
receipt, so the processor stays the single writer of the status cache.
"""

from typing import Iterable, Optional
from uuid import uuid4

from core.logger import logger
from integrations.sqs_client import SQSQueueClient
from schemas.job_models import JobMessage, Priority
from schemas.sqs_models import BatchEnqueueResult


class JobProducer:

    def __init__(self, queue: Optional[SQSQueueClient] = None):
        self.queue = queue or SQSQueueClient()

    @staticmethod
    def build_job(
        user_id: str,
        source_image_ref: str,
        prompt: str,
        priority: Priority = Priority.NORMAL,
        job_id: Optional[str] = None,
    ) -> JobMessage:
        return JobMessage(
            job_id=job_id or str(uuid4()),
            user_id=user_id,
            source_image_ref=source_image_ref,
            prompt=prompt,
            priority=priority,
        )

    def submit(self, job: JobMessage) -> str:
        """
        Enqueue a newly created job.

        Returns:
            str: SQS message id

        Raises:
            TransportError: the queue is unreachable; nothing was enqueued
        """
        if job.retry_count:
            logger.warning(
                f"New job {job.job_id} submitted with retryCount={job.retry_count}; resetting to 0"
            )
            job = job.model_copy(update={"retry_count": 0})
        return self.queue.enqueue(job)

    def submit_many(self, jobs: Iterable[JobMessage]) -> BatchEnqueueResult:
        """Enqueue several jobs; failures are reported per job."""
        return self.queue.enqueue_batch(
            job.model_copy(update={"retry_count": 0}) for job in jobs
        )
