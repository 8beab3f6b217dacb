# integrations/generation_client.py
"""
HTTP adapter for the external image generation service.

    POST {GENERATION_SERVICE_URL}
    {"sourceImageRef": "...", "prompt": "..."}
    -> 200 {"resultRef": "...", "durationMs": 1234}

Every failure leaves this module as a ProcessingError with a generic,
user-safe message. Transport details only go to the log.
"""

import time
from typing import Any, Dict, Optional

import requests

from core.config import settings
from core.exceptions import ProcessingError
from core.logger import logger
from schemas.job_models import GenerationResult

# Status codes worth another attempt; every other 4xx means the input is bad
_RETRYABLE_STATUS = {408, 425, 429}


class GenerationClient:
    """Bounded-timeout client for the generation service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = base_url or settings.GENERATION_SERVICE_URL
        self.api_key = api_key if api_key is not None else settings.GENERATION_API_KEY
        self.timeout = timeout or settings.GENERATION_TIMEOUT_SECS
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def process(self, source_image_ref: str, prompt: str) -> GenerationResult:
        """
        Generate an image from `source_image_ref` guided by `prompt`.

        Returns:
            GenerationResult: reference to the generated image and duration

        Raises:
            ProcessingError: transient (timeout, connection, 5xx, throttling,
                unusable response) or permanent (input rejected)
        """
        started = time.monotonic()
        payload = {"sourceImageRef": source_image_ref, "prompt": prompt}

        try:
            resp = self.session.post(
                self.url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.warning(f"Generation call timed out after {self.timeout}s: {e}")
            raise ProcessingError("Image generation timed out") from e
        except requests.RequestException as e:
            logger.warning(f"Generation service unreachable: {e}")
            raise ProcessingError("Image generation service unavailable") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)

        if resp.status_code >= 500:
            logger.warning(f"Generation service error {resp.status_code}: {resp.text[:200]}")
            raise ProcessingError("Image generation service error", status_code=resp.status_code)

        if resp.status_code in _RETRYABLE_STATUS:
            logger.warning(f"Generation service throttled or timed out ({resp.status_code})")
            raise ProcessingError("Image generation service busy", status_code=resp.status_code)

        if resp.status_code >= 400:
            logger.warning(f"Generation request rejected {resp.status_code}: {resp.text[:200]}")
            raise ProcessingError(
                "Image generation request was rejected",
                kind=ProcessingError.PERMANENT,
                status_code=resp.status_code,
            )

        return self._parse_result(resp, elapsed_ms)

    @staticmethod
    def _parse_result(resp: requests.Response, elapsed_ms: int) -> GenerationResult:
        try:
            data: Dict[str, Any] = resp.json()
        except ValueError as e:
            logger.warning(f"Generation service returned non-JSON body: {resp.text[:200]}")
            raise ProcessingError("Image generation returned an invalid response") from e

        result_ref = data.get("resultRef") if isinstance(data, dict) else None
        if not result_ref:
            logger.warning(f"Generation response without resultRef: {str(data)[:200]}")
            raise ProcessingError("Image generation returned no image")

        duration = data.get("durationMs")
        if not isinstance(duration, (int, float)) or duration < 0:
            duration = elapsed_ms

        return GenerationResult(result_ref=str(result_ref), processing_duration_ms=int(duration))

    def close(self) -> None:
        self.session.close()
