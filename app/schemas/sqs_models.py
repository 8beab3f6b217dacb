# app/schemas/sqs_models.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class QueueMessage(BaseModel):
    """One received SQS message. `body` is None when it was not valid JSON."""
    message_id: str
    receipt_handle: str
    body: Optional[Dict[str, Any]] = None
    raw_body: str = ""
    receive_count: int = 1


class BatchEntrySuccess(BaseModel):
    position: int  # index in the submitted sequence
    job_id: str
    message_id: str


class BatchEntryFailure(BaseModel):
    position: int
    job_id: str
    code: str
    reason: str
    sender_fault: bool = False


class BatchEnqueueResult(BaseModel):
    """Per-item outcome of enqueue_batch; never all-or-nothing."""
    successful: List[BatchEntrySuccess] = Field(default_factory=list)
    failed: List[BatchEntryFailure] = Field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def succeeded_job_ids(self) -> List[str]:
        return [entry.job_id for entry in self.successful]
