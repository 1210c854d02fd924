"""Worker entry point.

Starts a Celery worker that consumes a single named queue with that
queue's concurrency::

    python -m app.worker video-processing
    python -m app.worker certificate
"""

import argparse
import logging
import sys

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.logging import setup_logging
from app.core.tracing import setup_tracing
from app.modules.job.schemas import QueueName
from app.modules.job.tasks import get_queue_definition

logger = logging.getLogger(__name__)


def build_worker_argv(queue_name: str, loglevel: str = "INFO") -> list[str]:
    """Arguments for ``celery worker`` bound to one queue."""
    definition = get_queue_definition(queue_name)
    return [
        "worker",
        f"--queues={definition.name.value}",
        f"--concurrency={definition.concurrency}",
        "--prefetch-multiplier=1",
        f"--hostname={definition.name.value}@%h",
        f"--loglevel={loglevel}",
    ]


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run a background worker for one queue")
    parser.add_argument("queue", choices=[q.value for q in QueueName])
    parser.add_argument("--loglevel", default="DEBUG" if settings.DEBUG else "INFO")
    args = parser.parse_args(argv)

    setup_logging(level=args.loglevel, json_format=not settings.DEBUG)
    setup_tracing(
        service_name=f"{settings.PROJECT_NAME}-worker",
        service_version=settings.VERSION,
        environment="development" if settings.DEBUG else "production",
    )

    # Handlers register themselves on import
    import app.modules.certificate.tasks  # noqa: F401
    import app.modules.video.tasks  # noqa: F401

    worker_argv = build_worker_argv(args.queue, args.loglevel)
    logger.info("Starting worker", extra={"queue": args.queue, "argv": worker_argv})
    celery_app.worker_main(worker_argv)


if __name__ == "__main__":
    main(sys.argv[1:])
