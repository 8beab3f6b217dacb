# schemas/job_models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from core.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    """Advisory job priority. SQS standard queues do not honour it."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class JobStatus(str, Enum):
    """
    Lifecycle of one attempt: queued -> processing -> completed|failed

    QUEUED is reserved. Nothing in this service writes it: the producer only
    enqueues and the processor starts at PROCESSING, so an unseen job reads
    as not found. It stays in the enum (and in the read API as `pending`) so
    records seeded by an upstream submitter still decode.
    """
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# ============================================================================
# QUEUE BODY
# ============================================================================

class JobMessage(BaseModel):
    """
    Unit of work on the queue.

    Wire format (camelCase JSON):
        {"jobId", "userId", "originalImageRef", "prompt",
         "priority"?, "retryCount"?, "createdAt"}

    `job_id` is producer-assigned and never changes across retries; it is
    the join key between the queue and the status cache.
    """
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    job_id: str = Field(..., alias="jobId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    source_image_ref: str = Field(
        ...,
        alias="originalImageRef",
        validation_alias=AliasChoices("originalImageRef", "originalImageS3Key", "source_image_ref"),
        min_length=1,
    )
    prompt: str = Field(..., min_length=1, max_length=settings.PROMPT_MAX_LENGTH)
    priority: Priority = Priority.NORMAL
    retry_count: int = Field(0, alias="retryCount", ge=0)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")

    def next_attempt(self) -> "JobMessage":
        """Copy of this job for the next retry, same job_id, count + 1."""
        return self.model_copy(update={"retry_count": self.retry_count + 1})

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# STATUS CACHE
# ============================================================================

class JobStatusRecord(BaseModel):
    """
    Externally observable job state stored under job_status:{jobId}.

    `result_ref` only accompanies `completed`, `error_message` only `failed`.
    """
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: JobStatus
    result_ref: Optional[str] = Field(None, alias="resultRef")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_status_fields(self) -> "JobStatusRecord":
        if self.result_ref is not None and self.status != JobStatus.COMPLETED:
            raise ValueError("resultRef is only allowed on completed jobs")
        if self.error_message is not None and self.status != JobStatus.FAILED:
            raise ValueError("errorMessage is only allowed on failed jobs")
        return self


# ============================================================================
# GENERATION SERVICE
# ============================================================================

class GenerationResult(BaseModel):
    """Successful response of the image generation service."""
    result_ref: str = Field(..., min_length=1)
    processing_duration_ms: int = Field(0, ge=0)
