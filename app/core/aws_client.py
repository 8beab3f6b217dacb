# core/aws_client.py
"""
Centralized AWS client factory to ensure proper credential handling.
Only SQS is used by the pipeline; object storage is owned by the upload
service.
"""
import os
import threading
from typing import Optional

import boto3
from botocore.config import Config

from core.config import settings
from core.logger import logger


_sqs_client = None
_sqs_lock = threading.Lock()


def _resolve_credentials():
    """Read credentials from settings (which loads from .env) or environment."""
    aws_access_key_id = getattr(settings, 'AWS_ACCESS_KEY_ID', None) or os.getenv('AWS_ACCESS_KEY_ID')
    aws_secret_access_key = getattr(settings, 'AWS_SECRET_ACCESS_KEY', None) or os.getenv('AWS_SECRET_ACCESS_KEY')
    aws_session_token = getattr(settings, 'AWS_SESSION_TOKEN', None) or os.getenv('AWS_SESSION_TOKEN')
    return aws_access_key_id, aws_secret_access_key, aws_session_token


def create_sqs_client(endpoint_url: Optional[str] = None):
    """
    Build a new SQS client.

    The read timeout must outlive a long poll (WaitTimeSeconds), otherwise
    botocore aborts an empty receive as a timeout. botocore's own retries
    stay enabled for throttling; the consumer loop handles the rest.
    """
    try:
        config = Config(
            read_timeout=settings.SQS_WAIT_TIME_SECS + 10,
            connect_timeout=10,
            retries={'max_attempts': 3, 'mode': 'standard'}
        )

        aws_access_key_id, aws_secret_access_key, aws_session_token = _resolve_credentials()

        client = boto3.client(
            "sqs",
            region_name=settings.SQS_REGION,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            aws_session_token=aws_session_token,  # Optional for temporary credentials
            endpoint_url=endpoint_url or settings.AWS_ENDPOINT_URL,
            config=config
        )
        logger.info("SQS client initialized with credentials")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize SQS client: {str(e)}")
        raise


def get_sqs_client():
    """
    Shared SQS client. boto3 clients are thread-safe, so every consumer
    loop in the process reuses the same one.
    """
    global _sqs_client
    if _sqs_client is None:
        with _sqs_lock:
            if _sqs_client is None:
                _sqs_client = create_sqs_client()
    return _sqs_client


def validate_aws_credentials():
    """Validate that AWS credentials are properly configured."""
    aws_access_key_id, aws_secret_access_key, _ = _resolve_credentials()

    if not aws_access_key_id or not aws_secret_access_key:
        logger.warning("Missing AWS credentials in both settings and environment variables")
        logger.info("AWS credentials not found. Falling back to the default boto3 chain "
                    "(instance profile / task role / ~/.aws)")
        return False

    logger.info("AWS credentials found and validated")
    return True
