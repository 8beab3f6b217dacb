# scripts/enqueue_job.py
"""
Operator CLI for the job pipeline.

    python -m scripts.enqueue_job submit --user u-1 --image uploads/u-1/a.jpg --prompt "beach at sunset"
    python -m scripts.enqueue_job status <job_id>

Run from the app/ directory so core/, services/ etc. are importable.
"""

import argparse
import json
import sys
from typing import List, Optional

from core.exceptions import JobStatusNotFound, TransportError
from core.logger import logger
from schemas.job_models import Priority
from services.job_producer import JobProducer
from services.job_status_service import JobStatusReader


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Submit image jobs or inspect their status")
    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Enqueue a new image generation job")
    submit.add_argument("--user", required=True, help="User id owning the job")
    submit.add_argument("--image", required=True, help="Source image reference")
    submit.add_argument("--prompt", required=True, help="Generation prompt")
    submit.add_argument(
        "--priority",
        choices=[p.value for p in Priority],
        default=Priority.NORMAL.value,
    )
    submit.add_argument("--job-id", default=None, help="Explicit job id (default: random UUID)")

    status = sub.add_parser("status", help="Print the cached status of a job")
    status.add_argument("job_id")

    return parser


def main(argv: Optional[List[str]] = None, producer: Optional[JobProducer] = None,
         reader: Optional[JobStatusReader] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "submit":
        producer = producer or JobProducer()
        job = producer.build_job(
            user_id=args.user,
            source_image_ref=args.image,
            prompt=args.prompt,
            priority=Priority(args.priority),
            job_id=args.job_id,
        )
        try:
            message_id = producer.submit(job)
        except TransportError as e:
            logger.error(f"Submit failed: {e}")
            return 1
        print(json.dumps({"jobId": job.job_id, "messageId": message_id}))
        return 0

    reader = reader or JobStatusReader()
    try:
        record = reader.get_status(args.job_id)
    except JobStatusNotFound:
        print(json.dumps({"jobId": args.job_id, "status": "not_found"}))
        return 2
    except TransportError as e:
        logger.error(f"Status lookup failed: {e}")
        return 1
    print(record.model_dump_json(by_alias=True, exclude_none=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
