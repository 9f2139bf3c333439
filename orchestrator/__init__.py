"""
Orchestrator Package - Job Runtime.

============================================================
PACKAGE OVERVIEW
============================================================
Named-task job runtime that drives archives through the
ingestion pipeline.

============================================================
CORE PRINCIPLES
============================================================
1. The orchestrator has NO business logic
2. A task name maps to exactly one payload type and handler
3. Payloads are type-checked when enqueued
4. Every failure goes through one global error handler

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                   JobOrchestrator                   |
    |-----------------------------------------------------|
    |  TaskRegistry    |  name -> (payload type, handler) |
    |  JobMetrics      |  in-flight / processed / failed  |
    |  JobErrorHandler |  validation -> archive invalid   |
    |  CLI             |  Command-line interface          |
    +-----------------------------------------------------+

============================================================
"""

from orchestrator.core import JobOrchestrator, OrchestratorClosedError
from orchestrator.errors import JobErrorHandler
from orchestrator.metrics import JobMetrics
from orchestrator.models import Job, JobStatus
from orchestrator.registry import (
    DuplicateTaskError,
    TaskRegistration,
    TaskRegistry,
    UnknownTaskError,
)

__all__ = [
    "JobOrchestrator",
    "OrchestratorClosedError",
    "JobErrorHandler",
    "JobMetrics",
    "Job",
    "JobStatus",
    "DuplicateTaskError",
    "TaskRegistration",
    "TaskRegistry",
    "UnknownTaskError",
]
