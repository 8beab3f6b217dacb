# app/integrations/sqs_client.py
"""
Thin wrapper over the image processing SQS queue.

At-least-once semantics: a received message is hidden for the visibility
window and reappears unless acknowledged. That redelivery is how crashed
processing gets retried, so everything downstream must tolerate duplicates.
"""
import json
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings
from core.exceptions import DeadLetterDelivery, TransportError
from core.logger import logger
from schemas.job_models import JobMessage
from schemas.sqs_models import BatchEnqueueResult, BatchEntryFailure, BatchEntrySuccess, QueueMessage

# Error codes SQS returns for a receipt handle that is expired or already used
_STALE_RECEIPT_CODES = {
    "ReceiptHandleIsInvalid",
    "InvalidParameterValue",
    "AWS.SimpleQueueService.MessageNotInflight",
    "MessageNotInflight",
}

SQS_MAX_RECEIVE_BATCH = 10
SQS_MAX_WAIT_SECONDS = 20


def chunked(items: Sequence[Any], size: int) -> Iterator[List[Any]]:
    """Split items into lists of at most `size` elements."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class SQSQueueClient:
    """
    enqueue / enqueue_batch / receive / acknowledge over one queue URL.

    Two optional side queues: the redrive dead-letter queue (fed by SQS
    itself after maxReceiveCount, only monitored here) and the failed-job
    archive the processor writes terminal failures to.
    """

    def __init__(
        self,
        sqs=None,
        queue_url: Optional[str] = None,
        dead_letter_queue_url: Optional[str] = None,
        failed_job_queue_url: Optional[str] = None,
        visibility_timeout: Optional[int] = None,
        batch_limit: Optional[int] = None,
    ):
        if sqs is None:
            from core.aws_client import get_sqs_client
            sqs = get_sqs_client()
        self._sqs = sqs
        self.queue_url = queue_url or settings.SQS_QUEUE_URL
        self.dead_letter_queue_url = (
            dead_letter_queue_url if dead_letter_queue_url is not None
            else settings.SQS_DEAD_LETTER_QUEUE_URL
        )
        self.failed_job_queue_url = (
            failed_job_queue_url if failed_job_queue_url is not None
            else settings.SQS_FAILED_JOB_QUEUE_URL
        )
        self.visibility_timeout = visibility_timeout or settings.SQS_VISIBILITY_TIMEOUT_SECS
        self.batch_limit = min(batch_limit or settings.SQS_BATCH_LIMIT, 10)

    # ========================================================================
    # PUBLISH
    # ========================================================================

    @staticmethod
    def _message_attributes(message: JobMessage) -> Dict[str, Dict[str, str]]:
        return {
            "jobId": {"DataType": "String", "StringValue": message.job_id},
            "userId": {"DataType": "String", "StringValue": message.user_id},
            "priority": {"DataType": "String", "StringValue": message.priority.value},
            "retryCount": {"DataType": "Number", "StringValue": str(message.retry_count)},
        }

    @staticmethod
    def _serialize(message: JobMessage) -> str:
        return json.dumps(message.to_body(), separators=(",", ":"), ensure_ascii=False)

    def enqueue(self, message: JobMessage) -> str:
        """
        Publish one job message.

        Returns:
            str: SQS MessageId

        Raises:
            TransportError: the queue could not be reached or rejected the call
        """
        try:
            resp = self._sqs.send_message(
                QueueUrl=self.queue_url,
                MessageBody=self._serialize(message),
                MessageAttributes=self._message_attributes(message),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"SQS publish failed: {e}",
                extra={"job_id": message.job_id, "user_id": message.user_id}
            )
            raise TransportError(f"Failed to enqueue job {message.job_id}", service="sqs") from e

        msg_id = resp.get("MessageId", "")
        logger.info(
            "SQS publish ok job_id=%s msg_id=%s retry_count=%s",
            message.job_id, msg_id, message.retry_count
        )
        return msg_id

    def enqueue_batch(self, messages: Iterable[JobMessage]) -> BatchEnqueueResult:
        """
        Publish many job messages, at most `batch_limit` per SendMessageBatch.

        Every chunk is attempted independently. Failures are reported per
        item; a chunk that fails as a whole (transport error) marks each of
        its items failed and the remaining chunks are still sent.
        """
        messages = list(messages)
        result = BatchEnqueueResult()
        if not messages:
            return result

        for offset, chunk in enumerate(chunked(messages, self.batch_limit)):
            base = offset * self.batch_limit
            entries = [
                {
                    "Id": str(index),
                    "MessageBody": self._serialize(message),
                    "MessageAttributes": self._message_attributes(message),
                }
                for index, message in enumerate(chunk)
            ]
            try:
                resp = self._sqs.send_message_batch(QueueUrl=self.queue_url, Entries=entries)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"SQS batch publish failed for {len(chunk)} messages: {e}")
                for index, message in enumerate(chunk):
                    result.failed.append(BatchEntryFailure(
                        position=base + index,
                        job_id=message.job_id,
                        code="TransportError",
                        reason=str(e)[:200],
                    ))
                continue

            for entry in resp.get("Successful", []):
                index = int(entry["Id"])
                result.successful.append(BatchEntrySuccess(
                    position=base + index,
                    job_id=chunk[index].job_id,
                    message_id=entry.get("MessageId", ""),
                ))

            for entry in resp.get("Failed", []):
                index = int(entry["Id"])
                result.failed.append(BatchEntryFailure(
                    position=base + index,
                    job_id=chunk[index].job_id,
                    code=entry.get("Code", "Unknown"),
                    reason=entry.get("Message", ""),
                    sender_fault=bool(entry.get("SenderFault", False)),
                ))

        if result.failed:
            logger.warning(
                f"SQS batch publish partially failed: {len(result.failed)}/{len(messages)} messages",
                extra={"failed_job_ids": [f.job_id for f in result.failed]}
            )
        else:
            logger.info(f"SQS batch publish ok: {len(messages)} messages")
        return result

    # ========================================================================
    # CONSUME
    # ========================================================================

    def receive(self, max_messages: int = 1, wait_seconds: Optional[int] = None) -> List[QueueMessage]:
        """
        Long-poll for messages.

        Returns an empty list when the wait elapses without messages. Each
        returned message stays invisible to other consumers for the
        visibility window unless acknowledged.

        Raises:
            TransportError: the queue could not be reached
        """
        if wait_seconds is None:
            wait_seconds = settings.SQS_WAIT_TIME_SECS
        max_messages = max(1, min(max_messages, SQS_MAX_RECEIVE_BATCH))
        wait_seconds = max(0, min(wait_seconds, SQS_MAX_WAIT_SECONDS))

        try:
            resp = self._sqs.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
                VisibilityTimeout=self.visibility_timeout,
                MessageAttributeNames=["All"],
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SQS receive failed: {e}")
            raise TransportError("Failed to receive messages", service="sqs") from e

        messages = [self._to_queue_message(raw) for raw in resp.get("Messages", [])]
        if messages:
            logger.debug(f"Received {len(messages)} messages from SQS")
        return messages

    @staticmethod
    def _to_queue_message(raw: Dict[str, Any]) -> QueueMessage:
        raw_body = raw.get("Body", "") or ""
        try:
            body = json.loads(raw_body)
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = None

        attributes = raw.get("Attributes") or {}
        try:
            receive_count = int(attributes.get("ApproximateReceiveCount", 1))
        except (TypeError, ValueError):
            receive_count = 1

        return QueueMessage(
            message_id=raw.get("MessageId", ""),
            receipt_handle=raw.get("ReceiptHandle", ""),
            body=body,
            raw_body=raw_body,
            receive_count=receive_count,
        )

    def acknowledge(self, receipt_handle: str) -> bool:
        """
        Delete a received message.

        Idempotent: an expired or already used receipt handle is logged and
        reported as False, never raised.

        Raises:
            TransportError: the queue could not be reached
        """
        try:
            self._sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _STALE_RECEIPT_CODES:
                logger.warning(
                    f"SQS delete skipped, receipt handle no longer valid ({code})",
                    extra={"receipt_handle": receipt_handle[:32]}
                )
                return False
            logger.error(f"SQS delete failed: {e}")
            raise TransportError("Failed to acknowledge message", service="sqs") from e
        except BotoCoreError as e:
            logger.error(f"SQS delete failed: {e}")
            raise TransportError("Failed to acknowledge message", service="sqs") from e

        logger.debug("Message deleted from SQS", extra={"receipt_handle": receipt_handle[:32]})
        return True

    # ========================================================================
    # DEAD LETTER / MONITORING
    # ========================================================================

    def archive_failed_job(self, body: Dict[str, Any], reason: str) -> Optional[str]:
        """
        Copy a job the processor marked failed to the failed-job archive.

        Separate from the redrive DLQ; only the DLQ feeds the health check.

        Returns the archive MessageId, or None when no archive is configured.
        """
        if not self.failed_job_queue_url:
            return None

        try:
            resp = self._sqs.send_message(
                QueueUrl=self.failed_job_queue_url,
                MessageBody=json.dumps(body, separators=(",", ":"), ensure_ascii=False, default=str),
                MessageAttributes={
                    "failureReason": {"DataType": "String", "StringValue": reason[:256] or "unknown"},
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SQS failed-job archive publish failed: {e}", extra={"job_id": body.get("jobId")})
            raise TransportError("Failed to publish to failed-job archive", service="sqs") from e

        msg_id = resp.get("MessageId", "")
        logger.warning("Job archived as failed job_id=%s reason=%s", body.get("jobId"), reason)
        return msg_id

    def queue_depth(self, dead_letter: bool = False) -> int:
        """Approximate number of visible messages on the queue or its DLQ."""
        queue_url = self.dead_letter_queue_url if dead_letter else self.queue_url
        if not queue_url:
            return 0
        try:
            resp = self._sqs.get_queue_attributes(
                QueueUrl=queue_url,
                AttributeNames=["ApproximateNumberOfMessages"],
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SQS get_queue_attributes failed: {e}")
            raise TransportError("Failed to read queue attributes", service="sqs") from e
        return int(resp.get("Attributes", {}).get("ApproximateNumberOfMessages", 0))

    def check_dead_letter_queue(self) -> None:
        """
        Raise DeadLetterDelivery when the DLQ holds messages, i.e. jobs the
        queue gave up on after maxReceiveCount unacknowledged deliveries.
        """
        depth = self.queue_depth(dead_letter=True)
        if depth > 0:
            raise DeadLetterDelivery(f"{depth} messages waiting in the dead-letter queue")
