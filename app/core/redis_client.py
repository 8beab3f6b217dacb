# core/redis_client.py
"""
Redis client factory with connection pooling and error handling.

Redis holds the job status cache: job_status:{jobId} -> JSON record with TTL.
The worker writes it, the status API and any number of pollers read it.

The pool is created on first use so that importing the API or the worker
does not require a reachable Redis.
"""

import threading

import redis
from redis.connection import ConnectionPool
from typing import Optional
from core.config import settings
from core.logger import logger


class RedisClient:
    """
    Singleton Redis client with connection pooling.

    Thread-safe connection pool shared by every consumer loop in a process:
    - Automatic reconnection on failure
    - TLS/SSL for ElastiCache encryption
    - Connection timeout configuration
    - Health checking
    """

    _instance: Optional['RedisClient'] = None
    _pool: Optional[ConnectionPool] = None
    _client: Optional[redis.Redis] = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _initialize_pool(self):
        """
        Create connection pool with production-ready settings.
        """
        logger.info(
            "Initializing Redis connection pool",
            extra={
                "host": settings.REDIS_HOST,
                "port": settings.REDIS_PORT,
                "ssl": settings.REDIS_SSL,
                "max_connections": settings.REDIS_MAX_CONNECTIONS
            }
        )

        pool_kwargs = {
            "host": settings.REDIS_HOST,
            "port": settings.REDIS_PORT,
            "db": settings.REDIS_DB,
            "decode_responses": True,
            "socket_timeout": settings.REDIS_SOCKET_TIMEOUT,
            "socket_connect_timeout": settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            "max_connections": settings.REDIS_MAX_CONNECTIONS,
            "retry_on_timeout": True,
            "health_check_interval": 30
        }

        """
        ElastiCache with in-transit encryption needs an SSL connection class
        """
        if settings.REDIS_SSL:
            pool_kwargs["connection_class"] = redis.SSLConnection
            pool_kwargs["ssl_cert_reqs"] = None

        if settings.REDIS_PASSWORD:
            pool_kwargs["password"] = settings.REDIS_PASSWORD

        self._pool = ConnectionPool(**pool_kwargs)
        self._client = redis.Redis(connection_pool=self._pool)
        logger.info("Redis connection pool initialized")

    def get_client(self) -> redis.Redis:
        """
        Get Redis client instance.

        Returns:
            redis.Redis: Thread-safe Redis client

        The first call builds the pool; connections are opened lazily by
        redis-py, so a down Redis surfaces as redis.ConnectionError on the
        first command rather than here.
        """
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._initialize_pool()

        return self._client

    def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            bool: True if Redis is reachable, False otherwise
        """
        try:
            return bool(self.get_client().ping())
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    def close(self):
        """
        Close connection pool (called on shutdown).
        """
        if self._pool:
            self._pool.disconnect()
            self._pool = None
            self._client = None
            logger.info("Redis connection pool closed")


redis_client_instance = RedisClient()


def get_redis() -> redis.Redis:
    """
    Get the shared Redis client.

    Returns:
        redis.Redis: pooled Redis client
    """
    return redis_client_instance.get_client()


def redis_health_check() -> bool:
    """
    Check Redis health for /health endpoint.

    Returns:
        bool: True if Redis is healthy
    """
    return redis_client_instance.health_check()
