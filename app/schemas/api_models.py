# schemas/api_models.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.job_models import JobStatus, JobStatusRecord


# Internal `queued` is reported to clients as `pending`
PUBLIC_STATUS = {
    JobStatus.QUEUED: "pending",
    JobStatus.PROCESSING: "processing",
    JobStatus.COMPLETED: "completed",
    JobStatus.FAILED: "failed",
}


class JobStatusResponse(BaseModel):
    """Status read API payload returned to polling clients."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: Literal["pending", "processing", "completed", "failed"]
    result_ref: Optional[str] = Field(None, alias="resultRef")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_record(cls, record: JobStatusRecord) -> "JobStatusResponse":
        return cls(
            job_id=record.job_id,
            status=PUBLIC_STATUS[record.status],
            result_ref=record.result_ref,
            error_message=record.error_message,
            updated_at=record.updated_at,
        )


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Overall status: healthy or degraded")
    message: str
    redis_status: Optional[str] = None
    sqs_status: Optional[str] = None
    dead_letter_status: Optional[str] = None
    queue_depth: Optional[int] = None
