# core/exceptions.py
"""
Error taxonomy of the job pipeline.

- TransportError: queue or cache unreachable. Handled by the consumer loop
  (sleep, poll again), never counted against a job.
- ProcessingError: the generation call failed or timed out. Counted against
  the job's retry ceiling unless it is permanent.
- RetryExhausted: a job failed more than MAX_RETRIES times. Terminal.
- DeadLetterDelivery: a message went past the queue's own maxReceiveCount.
  Only observable operationally (DLQ depth), never raised in the loop.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class TransportError(PipelineError):
    """Queue or status cache could not be reached."""

    def __init__(self, message: str, service: str = "unknown"):
        super().__init__(message)
        self.service = service


class ProcessingError(PipelineError):
    """
    Generation call failed.

    `kind` is "transient" (timeouts, 5xx, throttling) or "permanent"
    (the service rejected the input). The message is safe to show to users.
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"

    def __init__(self, message: str, kind: str = TRANSIENT, status_code: Optional[int] = None):
        super().__init__(message)
        if kind not in (self.TRANSIENT, self.PERMANENT):
            raise ValueError(f"Unknown processing error kind: {kind}")
        self.kind = kind
        self.status_code = status_code

    @property
    def is_permanent(self) -> bool:
        return self.kind == self.PERMANENT


class RetryExhausted(PipelineError):
    """Job failed more times than the retry ceiling allows."""

    def __init__(self, job_id: str, attempts: int, last_error: str):
        super().__init__(
            f"Job {job_id} exceeded maximum retry attempts ({attempts} attempts): {last_error}"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error


class DeadLetterDelivery(PipelineError):
    """Message exceeded the queue's maxReceiveCount without acknowledgment."""


class JobStatusNotFound(PipelineError):
    """No status record for the job, or the record expired."""

    def __init__(self, job_id: str):
        super().__init__(f"No status found for job {job_id}")
        self.job_id = job_id


class InvalidJobMessage(PipelineError):
    """Queue body could not be decoded into a job message."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id
