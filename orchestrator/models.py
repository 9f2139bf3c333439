"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Data models of the job runtime.

- Job status lifecycle
- Job record (payload, ETA, attempts, timing, error)

============================================================
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pipeline.tasks import TaskPayload


# ============================================================
# JOB STATUS
# ============================================================

class JobStatus(Enum):
    """
    Job lifecycle.

    SCHEDULED ──► QUEUED ──► RUNNING ──► SUCCEEDED
                                   └──► FAILED
    """

    SCHEDULED = "scheduled"
    """Waiting for its ETA."""

    QUEUED = "queued"
    """Ready, waiting for a worker."""

    RUNNING = "running"
    """Handler in progress."""

    SUCCEEDED = "succeeded"
    """Handler returned."""

    FAILED = "failed"
    """Handler raised."""

    @property
    def is_finished(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


# ============================================================
# JOB
# ============================================================

@dataclass
class Job:
    """One unit of work for a worker."""

    name: str
    """Task name."""

    payload: TaskPayload
    """Typed task payload."""

    eta: Optional[datetime] = None
    """Earliest start time, None for immediately."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    """Job identifier."""

    attempts: int = 0
    """Number of times a worker picked the job."""

    status: JobStatus = JobStatus.QUEUED
    """Current status."""

    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    result: Optional[Dict[str, Any]] = None
    """What the handler returned."""

    error: Optional[Dict[str, Any]] = None
    """Classified error of a failed run."""

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "payload": repr(self.payload),
            "eta": self.eta.isoformat() if self.eta else None,
            "attempts": self.attempts,
            "status": self.status.value,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }


__all__ = ["JobStatus", "Job"]
