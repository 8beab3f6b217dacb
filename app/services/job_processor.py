# services/job_processor.py
"""
Job Processor / Consumer Loop

Per received message:

    Received -> StatusSet(processing) -> Invoking -> Success | Failure

- Success: status `completed` with the result reference, then the message
  is deleted.
- Failure: retry_count + 1. While it stays within MAX_RETRIES a copy with
  the new count is enqueued and only then the original is deleted. Past the
  ceiling the job is marked `failed`, copied to the failed-job archive and
  the message deleted.

One message at a time per loop instance. Throughput comes from running
several independent instances (threads or processes); the queue's
visibility timeout keeps them off each other's messages.

Transport errors (SQS or Redis) leave the current message unacknowledged so
the visibility timeout redelivers it, and make the loop back off before the
next poll. Job-level errors never leave handle_message().
"""

import threading
import time
from enum import Enum
from typing import Optional, Protocol

from pydantic import ValidationError

from core.config import settings
from core.exceptions import (
    InvalidJobMessage,
    ProcessingError,
    RetryExhausted,
    TransportError,
)
from core.logger import logger
from integrations.sqs_client import SQSQueueClient
from schemas.job_models import GenerationResult, JobMessage, JobStatus, utc_now
from schemas.sqs_models import QueueMessage
from services.job_status_service import JobStatusStore
from utils.log_job_event import log_job_event


class GenerationAdapter(Protocol):
    """Anything that can turn a source image + prompt into a result."""

    def process(self, source_image_ref: str, prompt: str) -> GenerationResult:
        ...


class MessageOutcome(str, Enum):
    COMPLETED = "completed"
    RETRIED = "retried"
    FAILED = "failed"
    DISCARDED = "discarded"


class JobProcessor:
    """
    Long-running consumer loop for image generation jobs.

    start() blocks and polls until stop() is called from another thread (or
    a signal handler). stop() never interrupts a job in flight: the current
    message is finished first.
    """

    def __init__(
        self,
        queue: SQSQueueClient,
        status_store: JobStatusStore,
        generator: GenerationAdapter,
        max_retries: Optional[int] = None,
        wait_seconds: Optional[int] = None,
        error_backoff_secs: Optional[float] = None,
        fail_fast_on_permanent: Optional[bool] = None,
        max_receive_count: Optional[int] = None,
        name: str = "job-processor",
    ):
        self.queue = queue
        self.status_store = status_store
        self.generator = generator
        self.max_retries = settings.MAX_RETRIES if max_retries is None else max_retries
        self.wait_seconds = settings.SQS_WAIT_TIME_SECS if wait_seconds is None else wait_seconds
        self.error_backoff_secs = (
            settings.POLL_ERROR_BACKOFF_SECS if error_backoff_secs is None else error_backoff_secs
        )
        self.fail_fast_on_permanent = (
            settings.FAIL_FAST_ON_PERMANENT_ERRORS if fail_fast_on_permanent is None
            else fail_fast_on_permanent
        )
        self.max_receive_count = (
            settings.SQS_MAX_RECEIVE_COUNT if max_receive_count is None else max_receive_count
        )
        self.name = name

        self._state_lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._running = threading.Event()
        self._finished = threading.Event()
        self._finished.set()

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    def _claim_start(self) -> bool:
        """
        Mark the loop as running before any thread is spawned, so a stop()
        issued right after start_in_thread() is never missed. A processor is
        single-use: once stop() has been called it never starts again.
        """
        with self._state_lock:
            if self._stop_requested.is_set():
                logger.warning(f"{self.name} was stopped; not starting")
                return False
            if self._running.is_set():
                logger.warning(f"{self.name} already running")
                return False
            self._finished.clear()
            self._running.set()
            return True

    def start(self) -> None:
        """Run the polling loop in the calling thread until stop()."""
        if self._claim_start():
            self._run()

    def start_in_thread(self) -> Optional[threading.Thread]:
        """Returns None when the processor was already running or stopped."""
        if not self._claim_start():
            return None
        thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        thread.start()
        return thread

    def _run(self) -> None:
        logger.info(f"Starting {self.name}")
        try:
            while not self._stop_requested.is_set():
                try:
                    self.run_once()
                except TransportError as e:
                    logger.error(
                        f"{self.name}: {e.service} unavailable, retrying poll in "
                        f"{self.error_backoff_secs}s: {e}"
                    )
                    self._stop_requested.wait(self.error_backoff_secs)
                except Exception as e:
                    logger.exception(f"{self.name}: unexpected error in processor loop: {e}")
                    self._stop_requested.wait(self.error_backoff_secs)
        finally:
            self._running.clear()
            self._finished.set()
            logger.info(f"{self.name} stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the message currently in flight."""
        logger.info(f"Stopping {self.name}")
        self._stop_requested.set()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    # ========================================================================
    # POLLING
    # ========================================================================

    def run_once(self) -> bool:
        """
        One poll/handle cycle.

        Returns:
            bool: True if a message was received and handled

        Raises:
            TransportError: queue or status cache unreachable
        """
        messages = self.queue.receive(max_messages=1, wait_seconds=self.wait_seconds)
        if not messages:
            return False

        for message in messages:
            try:
                self.handle_message(message)
            except TransportError:
                raise
            except Exception as e:
                """
                Bug or unexpected collaborator failure: leave the message for
                redelivery; the queue's redrive policy dead-letters it if it
                keeps failing.
                """
                logger.exception(
                    f"Unhandled error processing message {message.message_id}: {e}"
                )
        return True

    # ========================================================================
    # STATE MACHINE
    # ========================================================================

    def handle_message(self, message: QueueMessage) -> MessageOutcome:
        """
        Drive one received message to an outcome.

        Raises:
            TransportError: the message was left unacknowledged for redelivery
        """
        if message.receive_count > self.max_receive_count:
            logger.warning(
                f"Message {message.message_id} delivered {message.receive_count} times; "
                f"queue redrive limit is {self.max_receive_count}"
            )

        try:
            job = self.parse_job(message)
        except InvalidJobMessage as e:
            return self._discard(message, e)

        logger.info(
            "Processing image job",
            extra={
                "job_id": job.job_id,
                "user_id": job.user_id,
                "retry_count": job.retry_count,
                "message_id": message.message_id,
            }
        )

        self.status_store.set_status(
            job.job_id,
            JobStatus.PROCESSING,
            metadata={
                "startedAt": utc_now().isoformat(),
                "retryCount": job.retry_count,
                "priority": job.priority.value,
            },
        )

        started = time.monotonic()
        try:
            result = self._invoke(job)
        except ProcessingError as e:
            return self._handle_failure(message, job, e)

        duration_ms = int((time.monotonic() - started) * 1000)
        self.status_store.set_status(
            job.job_id,
            JobStatus.COMPLETED,
            result_ref=result.result_ref,
            metadata={
                "completedAt": utc_now().isoformat(),
                "retryCount": job.retry_count,
                "processingDurationMs": result.processing_duration_ms,
            },
        )
        self.queue.acknowledge(message.receipt_handle)

        log_job_event(
            "completed",
            job.job_id,
            user_id=job.user_id,
            retry_count=job.retry_count,
            duration_ms=duration_ms,
            result_ref=result.result_ref,
            message_id=message.message_id,
        )
        return MessageOutcome.COMPLETED

    @staticmethod
    def parse_job(message: QueueMessage) -> JobMessage:
        if message.body is None:
            raise InvalidJobMessage("Message body is not a JSON object")
        try:
            return JobMessage.model_validate(message.body)
        except ValidationError as e:
            job_id = message.body.get("jobId")
            raise InvalidJobMessage(
                f"Invalid job message: {e.error_count()} validation errors",
                job_id=job_id if isinstance(job_id, str) and job_id else None,
            ) from e

    def _invoke(self, job: JobMessage) -> GenerationResult:
        try:
            return self.generator.process(job.source_image_ref, job.prompt)
        except ProcessingError:
            raise
        except Exception as e:
            logger.exception(f"Generation adapter raised unexpected error for job {job.job_id}")
            raise ProcessingError("Image generation failed") from e

    def _handle_failure(
        self, message: QueueMessage, job: JobMessage, error: ProcessingError
    ) -> MessageOutcome:
        retry_count = job.retry_count + 1

        logger.error(
            f"Image processing failed: {error}",
            extra={"job_id": job.job_id, "retry_count": retry_count, "kind": error.kind}
        )

        if error.is_permanent and self.fail_fast_on_permanent:
            return self._fail(message, job, str(error), attempts=retry_count)

        if retry_count <= self.max_retries:
            """
            Replacement first, delete second. If the enqueue raises, the
            original stays in flight and comes back after the visibility
            timeout, so the job is never lost between the two calls.
            """
            self.queue.enqueue(job.next_attempt())
            self.queue.acknowledge(message.receipt_handle)
            log_job_event(
                "retried",
                job.job_id,
                user_id=job.user_id,
                retry_count=retry_count,
                error=str(error),
                message_id=message.message_id,
            )
            return MessageOutcome.RETRIED

        exhausted = RetryExhausted(job.job_id, retry_count, str(error))
        logger.error(str(exhausted))
        return self._fail(
            message,
            job,
            f"Image generation failed after {retry_count} attempts: {error}",
            attempts=retry_count,
        )

    def _fail(
        self, message: QueueMessage, job: JobMessage, error_message: str, attempts: int
    ) -> MessageOutcome:
        self.status_store.set_status(
            job.job_id,
            JobStatus.FAILED,
            error_message=error_message,
            metadata={"failedAt": utc_now().isoformat(), "retryCount": attempts},
        )
        self._archive_failed(message, message.body or {}, error_message)
        self.queue.acknowledge(message.receipt_handle)

        log_job_event(
            "failed",
            job.job_id,
            user_id=job.user_id,
            retry_count=attempts,
            error=error_message,
            message_id=message.message_id,
        )
        return MessageOutcome.FAILED

    def _discard(self, message: QueueMessage, error: InvalidJobMessage) -> MessageOutcome:
        """Malformed messages are never retried."""
        logger.error(
            f"Invalid message format: {error}",
            extra={"message_id": message.message_id, "body": message.raw_body[:500]}
        )

        if error.job_id:
            self.status_store.set_status(
                error.job_id,
                JobStatus.FAILED,
                error_message="Invalid job request",
                metadata={"failedAt": utc_now().isoformat()},
            )

        body = message.body if message.body is not None else {"rawBody": message.raw_body}
        self._archive_failed(message, body, str(error))
        self.queue.acknowledge(message.receipt_handle)

        log_job_event("discarded", error.job_id, error=str(error), message_id=message.message_id)
        return MessageOutcome.DISCARDED

    def _archive_failed(self, message: QueueMessage, body: dict, reason: str) -> None:
        """
        Copy the job to the failed-job archive, not the redrive DLQ: that
        one only receives messages SQS itself gave up on. The failed status
        is already written, so an archive outage must not block the delete.
        """
        try:
            self.queue.archive_failed_job(body, reason)
        except TransportError as e:
            logger.error(
                f"Could not archive failed message {message.message_id}: {e}",
                extra={"job_id": body.get("jobId")}
            )
