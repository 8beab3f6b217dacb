# services/job_status_service.py
"""
Job Status Cache

Storage structure in Redis:
- job_status:{jobId} -> JSON JobStatusRecord, TTL JOB_STATUS_TTL_SECS

Single writer, many readers. The job processor owns JobStatusStore and is
the only component that writes; the status API and any other poller get a
JobStatusReader, which has no write methods. Writes are unconditional
(last writer wins): only the consumer currently holding a job's message
writes that job's record, and the rare duplicate delivery writes the same
sequence of states.
"""

import json
from typing import Any, Dict, Optional

import redis
from pydantic import ValidationError

from core.config import settings
from core.exceptions import JobStatusNotFound, TransportError
from core.logger import logger
from schemas.job_models import JobStatus, JobStatusRecord, utc_now


class JobStatusReader:
    """Read-only access to the status cache, for status pollers."""

    def __init__(self, redis_client: Optional[redis.Redis] = None, key_prefix: Optional[str] = None):
        if redis_client is None:
            from core.redis_client import get_redis
            redis_client = get_redis()
        self.redis = redis_client
        self.key_prefix = key_prefix or settings.JOB_STATUS_KEY_PREFIX

    def _key(self, job_id: str) -> str:
        return f"{self.key_prefix}{job_id}"

    def get_status(self, job_id: str) -> JobStatusRecord:
        """
        Current status record of a job.

        Raises:
            JobStatusNotFound: no record, or its TTL expired
            TransportError: Redis unreachable
        """
        try:
            data = self.redis.get(self._key(job_id))
        except redis.RedisError as e:
            logger.error(f"Failed to read job status: {e}", extra={"job_id": job_id})
            raise TransportError("Job status cache unavailable", service="redis") from e

        if not data:
            raise JobStatusNotFound(job_id)

        try:
            return JobStatusRecord.model_validate(json.loads(data))
        except (ValueError, ValidationError) as e:
            logger.error(f"Corrupt job status record: {e}", extra={"job_id": job_id})
            raise JobStatusNotFound(job_id) from e


class JobStatusStore(JobStatusReader):
    """Writer side of the status cache. Owned by the job processor."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        key_prefix: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ):
        super().__init__(redis_client, key_prefix)
        self.ttl_seconds = ttl_seconds or settings.JOB_STATUS_TTL_SECS

    def set_status(
        self,
        job_id: str,
        status: JobStatus,
        metadata: Optional[Dict[str, Any]] = None,
        result_ref: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> JobStatusRecord:
        """
        Upsert the status record and reset its TTL.

        Raises:
            TransportError: Redis unreachable
        """
        record = JobStatusRecord(
            job_id=job_id,
            status=status,
            result_ref=result_ref,
            error_message=error_message,
            updated_at=utc_now(),
            metadata=metadata or {},
        )
        payload = record.model_dump_json(by_alias=True)

        try:
            self.redis.setex(name=self._key(job_id), time=self.ttl_seconds, value=payload)
        except redis.RedisError as e:
            logger.error(
                f"Failed to write job status: {e}",
                extra={"job_id": job_id, "status": status.value}
            )
            raise TransportError("Job status cache unavailable", service="redis") from e

        logger.debug(
            "Job status updated",
            extra={"job_id": job_id, "status": status.value, "ttl_seconds": self.ttl_seconds}
        )
        return record

    def delete_status(self, job_id: str) -> None:
        try:
            self.redis.delete(self._key(job_id))
        except redis.RedisError as e:
            logger.error(f"Failed to delete job status: {e}", extra={"job_id": job_id})
            raise TransportError("Job status cache unavailable", service="redis") from e
