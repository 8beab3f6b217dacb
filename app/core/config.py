# core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """
    Centralized pipeline configuration.
    Grouped logically for readability; every value has a default so the
    worker and the API can be imported without a populated environment.
    """

    # ------------------------------------------------------------
    # Project / Runtime
    # ------------------------------------------------------------
    PROJECT_NAME: str = "PhotoGen Job Pipeline"
    DEBUG: bool = False
    ENABLE_CORS: bool = True

    # HTTP / API
    FRONTEND_ENDPOINT: str = ""
    BACKEND_ENDPOINT: str = ""
    RATE_LIMIT_MIN: str = "120"

    # ------------------------------------------------------------
    # AWS Core
    # ------------------------------------------------------------
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SESSION_TOKEN: Optional[str] = None
    AWS_ENDPOINT_URL: Optional[str] = Field(
        default=None,
        description="Override endpoint (e.g. LocalStack) for SQS calls"
    )

    # ------------------------------------------------------------
    # Messaging (SQS)
    # ------------------------------------------------------------
    SQS_QUEUE_URL: str = "https://sqs.us-east-1.amazonaws.com/000000000000/image-processing-queue"
    SQS_DEAD_LETTER_QUEUE_URL: Optional[str] = Field(
        default=None,
        description="Redrive DLQ of the job queue; watched by the health check only"
    )
    SQS_FAILED_JOB_QUEUE_URL: Optional[str] = Field(
        default=None,
        description="Archive queue for jobs the processor marked failed (optional)"
    )
    SQS_REGION: str = "us-east-1"

    """
    Visibility window of a received message. Must exceed the generation
    timeout plus status writes, otherwise a slow job is redelivered while
    still in flight.
    """
    SQS_VISIBILITY_TIMEOUT_SECS: int = 1200
    SQS_WAIT_TIME_SECS: int = Field(
        default=20,
        description="Long-poll wait per receive call (SQS maximum is 20)"
    )
    SQS_BATCH_LIMIT: int = Field(
        default=10,
        description="Maximum entries per SendMessageBatch call"
    )
    SQS_MAX_RECEIVE_COUNT: int = Field(
        default=3,
        description="maxReceiveCount of the queue redrive policy (service-side DLQ backstop)"
    )

    # ------------------------------------------------------------
    # Redis Configuration
    # ------------------------------------------------------------

    """
    Redis connection settings for the job status cache
    """
    REDIS_HOST: str = Field(
        default="localhost",
        description="Redis server hostname (ElastiCache endpoint in production)"
    )
    REDIS_PORT: int = Field(
        default=6379,
        description="Redis server port"
    )
    REDIS_DB: int = Field(
        default=0,
        description="Redis database number (0-15)"
    )
    REDIS_PASSWORD: Optional[str] = Field(
        default=None,
        description="Redis password (optional)"
    )
    REDIS_SSL: bool = Field(
        default=False,
        description="Use TLS/SSL for Redis connection (required for ElastiCache with encryption)"
    )
    REDIS_SOCKET_TIMEOUT: int = Field(
        default=5,
        description="Socket timeout in seconds"
    )
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(
        default=10,
        description="Socket connect timeout in seconds"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=50,
        description="Maximum connections in the pool"
    )

    # ------------------------------------------------------------
    # Job Status Cache
    # ------------------------------------------------------------
    JOB_STATUS_TTL_SECS: int = Field(
        default=3600,
        description="Retention of a status record after its last write (3600 = 1 hour)"
    )
    JOB_STATUS_KEY_PREFIX: str = "job_status:"

    # ------------------------------------------------------------
    # Image Generation Service
    # ------------------------------------------------------------
    GENERATION_SERVICE_URL: str = "http://localhost:8080/v1/generate"
    GENERATION_API_KEY: Optional[str] = None
    GENERATION_TIMEOUT_SECS: float = Field(
        default=120.0,
        description="Upper bound for a single generation call, connect + read"
    )
    PROMPT_MAX_LENGTH: int = 2000

    # ------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------
    MAX_RETRIES: int = Field(
        default=3,
        description="Application-level retries before a job is marked failed"
    )
    POLL_ERROR_BACKOFF_SECS: float = Field(
        default=5.0,
        description="Sleep after a queue/cache transport error before polling again"
    )
    WORKER_CONCURRENCY: int = Field(
        default=1,
        description="Independent consumer loops started by worker.py"
    )
    RUN_EMBEDDED_WORKER: bool = Field(
        default=False,
        description="Start a consumer loop inside the API process (local development)"
    )
    FAIL_FAST_ON_PERMANENT_ERRORS: bool = Field(
        default=False,
        description="Opt-in: mark jobs failed immediately on non-retryable generation errors"
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
