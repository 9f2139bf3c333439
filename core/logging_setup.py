"""
Core Module - Logging Setup.

============================================================
RESPONSIBILITY
============================================================
Configures process-wide logging once at startup.

- One stdout handler on the root logger
- JSON or text line format
- Third-party loggers quietened to WARNING

Every record carries the job it was logged under: the job
runtime opens a `job_log_context` around each handler, and
stage code running in worker threads inherits it.

Modules log through `logging.getLogger(__name__)`.

============================================================
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, Optional


NOISY_LOGGERS = (
    "aiohttp",
    "asyncio",
    "boto3",
    "botocore",
    "s3transfer",
    "urllib3",
    "sqlalchemy.engine",
)

JOB_FIELDS = ("job_id", "task", "archive_id")

_job_context: ContextVar[Dict[str, str]] = ContextVar("job_context", default={})


@contextmanager
def job_log_context(job_id: str, task: str, archive_id: Optional[int] = None) -> Iterator[None]:
    """Tag every record logged inside the block with the running job."""
    token = _job_context.set({
        "job_id": job_id,
        "task": task,
        "archive_id": "" if archive_id is None else str(archive_id),
    })
    try:
        yield
    finally:
        _job_context.reset(token)


class JobContextFilter(logging.Filter):
    """Copies the current job fields onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        current = _job_context.get()
        for name in JOB_FIELDS:
            setattr(record, name, current.get(name, ""))
        return True


def setup_logging(level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Logger of the pipeline runtime
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "job_id": "%(job_id)s",
                "task": "%(task)s",
                "archive_id": "%(archive_id)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | "
            "%(task)s %(job_id)s archive=%(archive_id)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(JobContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    return logging.getLogger("orchestrator")


__all__ = ["setup_logging", "job_log_context", "JobContextFilter"]
