"""
Shared fixtures: in-memory stand-ins for the boto3 SQS client, Redis and the
generation service, so the pipeline can be exercised end to end without AWS.
"""

import itertools
from typing import Any, Dict, List, Optional

import pytest
import redis
from botocore.exceptions import ClientError

from integrations.sqs_client import SQSQueueClient
from schemas.job_models import GenerationResult, JobMessage
from services.job_status_service import JobStatusStore

QUEUE_URL = "https://sqs.test/000000000000/image-processing"
DLQ_URL = "https://sqs.test/000000000000/image-processing-dlq"
FAILED_URL = "https://sqs.test/000000000000/image-processing-failed"


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeSQS:
    """Enough of the boto3 SQS client for SQSQueueClient."""

    def __init__(self):
        self.queues: Dict[str, List[Dict[str, Any]]] = {QUEUE_URL: [], DLQ_URL: [], FAILED_URL: []}
        self.in_flight: Dict[str, Dict[str, Any]] = {}  # receipt handle -> message
        self.failures: Dict[str, Exception] = {}
        self.batch_item_failures: Dict[str, str] = {}  # entry Id -> error code
        self.calls: List[str] = []
        self._ids = itertools.count(1)

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        error = self.failures.pop(operation, None)
        if error is not None:
            raise error

    def send_message(self, QueueUrl, MessageBody, MessageAttributes=None, **kwargs):
        self._maybe_fail("send_message")
        message_id = f"msg-{next(self._ids)}"
        self.queues[QueueUrl].append({
            "MessageId": message_id,
            "Body": MessageBody,
            "MessageAttributes": MessageAttributes or {},
            "ReceiveCount": 0,
        })
        return {"MessageId": message_id}

    def send_message_batch(self, QueueUrl, Entries):
        self._maybe_fail("send_message_batch")
        assert len(Entries) <= 10
        successful, failed = [], []
        for entry in Entries:
            code = self.batch_item_failures.get(entry["Id"])
            if code:
                failed.append({"Id": entry["Id"], "Code": code, "Message": "rejected", "SenderFault": True})
                continue
            message_id = f"msg-{next(self._ids)}"
            self.queues[QueueUrl].append({
                "MessageId": message_id,
                "Body": entry["MessageBody"],
                "MessageAttributes": entry.get("MessageAttributes", {}),
                "ReceiveCount": 0,
            })
            successful.append({"Id": entry["Id"], "MessageId": message_id})
        return {"Successful": successful, "Failed": failed}

    def receive_message(self, QueueUrl, MaxNumberOfMessages=1, WaitTimeSeconds=0, **kwargs):
        self._maybe_fail("receive_message")
        visible = self.queues[QueueUrl]
        taken, self.queues[QueueUrl] = visible[:MaxNumberOfMessages], visible[MaxNumberOfMessages:]
        messages = []
        for message in taken:
            message["ReceiveCount"] += 1
            handle = f"rh-{next(self._ids)}"
            message["QueueUrl"] = QueueUrl
            self.in_flight[handle] = message
            messages.append({
                "MessageId": message["MessageId"],
                "ReceiptHandle": handle,
                "Body": message["Body"],
                "Attributes": {"ApproximateReceiveCount": str(message["ReceiveCount"])},
            })
        return {"Messages": messages} if messages else {}

    def delete_message(self, QueueUrl, ReceiptHandle):
        self._maybe_fail("delete_message")
        if ReceiptHandle not in self.in_flight:
            raise client_error("ReceiptHandleIsInvalid", "DeleteMessage")
        del self.in_flight[ReceiptHandle]
        return {}

    def get_queue_attributes(self, QueueUrl, AttributeNames):
        self._maybe_fail("get_queue_attributes")
        return {"Attributes": {"ApproximateNumberOfMessages": str(len(self.queues[QueueUrl]))}}

    # test helpers

    def expire_visibility(self) -> None:
        """Unacknowledged messages become visible again."""
        for handle, message in list(self.in_flight.items()):
            self.queues[message["QueueUrl"]].append(message)
            del self.in_flight[handle]

    def add_raw(self, body: str, queue_url: str = QUEUE_URL) -> None:
        self.queues[queue_url].append({
            "MessageId": f"msg-{next(self._ids)}",
            "Body": body,
            "MessageAttributes": {},
            "ReceiveCount": 0,
        })

    def bodies(self, queue_url: str = QUEUE_URL) -> List[str]:
        return [m["Body"] for m in self.queues[queue_url]]


class FakeRedis:
    """setex/get/delete/ping with manual expiry."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("connection refused")

    def setex(self, name, time, value):
        self._check()
        self.data[name] = value
        self.ttls[name] = time
        return True

    def get(self, name):
        self._check()
        return self.data.get(name)

    def delete(self, *names):
        self._check()
        removed = 0
        for name in names:
            removed += int(self.data.pop(name, None) is not None)
            self.ttls.pop(name, None)
        return removed

    def ping(self):
        self._check()
        return True

    def expire_all(self):
        self.data.clear()
        self.ttls.clear()


class ScriptedGenerator:
    """Returns or raises the scripted outcomes in order; repeats the last one."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: List[tuple] = []

    def process(self, source_image_ref: str, prompt: str) -> GenerationResult:
        self.calls.append((source_image_ref, prompt))
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_sqs() -> FakeSQS:
    return FakeSQS()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def queue(fake_sqs) -> SQSQueueClient:
    return SQSQueueClient(
        fake_sqs,
        queue_url=QUEUE_URL,
        dead_letter_queue_url=DLQ_URL,
        failed_job_queue_url=FAILED_URL,
    )


@pytest.fixture
def status_store(fake_redis) -> JobStatusStore:
    return JobStatusStore(fake_redis, key_prefix="job_status:", ttl_seconds=3600)


@pytest.fixture
def make_job():
    def _make(job_id: str = "J1", retry_count: int = 0, **overrides: Optional[Any]) -> JobMessage:
        fields = {
            "jobId": job_id,
            "userId": "user-1",
            "originalImageRef": f"uploads/user-1/{job_id}.jpg",
            "prompt": "Portrait on a beach at golden hour",
            "retryCount": retry_count,
            "createdAt": "2026-10-19T10:00:00Z",
        }
        fields.update(overrides)
        return JobMessage.model_validate(fields)
    return _make
