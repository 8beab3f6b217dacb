import json
from datetime import datetime, timezone
from typing import Optional

from core.logger import logger


def log_job_event(
    event: str,
    job_id: Optional[str],
    user_id: Optional[str] = None,
    retry_count: int = 0,
    duration_ms: Optional[int] = None,
    result_ref: Optional[str] = None,
    error: Optional[str] = None,
    message_id: Optional[str] = None,
) -> dict:
    """
    One JSON line per job outcome, for log-based dashboards.

    event is one of: completed, retried, failed, discarded
    """
    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": f"job_{event}",
        "job_id": job_id,
        "user_id": user_id,
        "message_id": message_id,
        "retry_count": retry_count,
        "duration_ms": duration_ms,
        "result_ref": result_ref,
        "error": error[:500] if error else None,  # Truncate long errors
    }

    if event in ("failed", "discarded"):
        logger.error(json.dumps(log_data))
    elif event == "retried":
        logger.warning(json.dumps(log_data))
    else:
        logger.info(json.dumps(log_data))

    return log_data
