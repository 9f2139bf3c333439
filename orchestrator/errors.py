"""
Orchestrator - Global Error Handler.

============================================================
RESPONSIBILITY
============================================================
Routes every failed job by its error kind.

- VALIDATION: archive driven to `invalid` with the error code
- TRANSIENT: logged, job failed, no automatic re-enqueue
- FATAL: logged with traceback

An archive that already reached a terminal status keeps it.

============================================================
"""

import logging
from typing import Optional

from archives.state_machine import ArchiveStateMachine, InvalidArchiveTransitionError
from core.exceptions import ErrorKind, PipelineError, ValidationError
from orchestrator.models import Job
from storage.database import SessionFactory


logger = logging.getLogger(__name__)


class JobErrorHandler:
    """Global error handler of the job orchestrator."""

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        """
        Initialize error handler.

        Args:
            session_factory: Relational store sessions. Without one,
                validation errors are only logged.
        """
        self._session_factory = session_factory

    def handle(self, job: Job, error: PipelineError) -> None:
        if error.kind == ErrorKind.VALIDATION:
            self._invalidate(job, error)
        elif error.kind == ErrorKind.TRANSIENT:
            logger.warning(f"Job {job.name} [{job.id}] failed (transient): {error.message}")
        else:
            logger.error(
                f"Job {job.name} [{job.id}] failed (fatal): {error.message}",
                exc_info=error.cause or error,
            )

    def _invalidate(self, job: Job, error: ValidationError) -> None:
        logger.warning(
            f"Job {job.name} [{job.id}] rejected archive {error.archive_id}: "
            f"{error.code} {error.message}"
        )
        if self._session_factory is None:
            return

        machine = ArchiveStateMachine(error.archive_id, self._session_factory)
        try:
            machine.mark_invalid(error.code, error.message)
        except InvalidArchiveTransitionError as e:
            logger.warning(f"Archive {error.archive_id} not invalidated: {e}")


__all__ = ["JobErrorHandler"]
