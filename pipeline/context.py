"""
Pipeline - Pipeline Context.

============================================================
PURPOSE
============================================================
Everything a stage needs, passed explicitly to every stage:
stores, network clients, configuration, clock and the job
enqueue interface.

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

from aggregation.writer import BatchedWriter
from archives.state_machine import ArchiveStateMachine
from core.clock import ClockProtocol, SystemClock
from core.config import PipelineConfig
from external.analysis import AnalysisClient
from external.geocoding import GeocodingClient
from external.notifications import NotificationClient
from pipeline.graph import is_allowed_step
from pipeline.tasks import TaskPayload
from storage.blobs import BlobStore
from storage.database import SessionFactory
from storage.timeseries import TimeSeriesStore


logger = logging.getLogger(__name__)


class JobEnqueuer(Protocol):
    """Anything that accepts jobs (the orchestrator, or a test double)."""

    def enqueue(
        self,
        payload: TaskPayload,
        eta: Optional[datetime] = None,
        delay: Optional[float] = None,
    ) -> Any:
        ...


@dataclass
class PipelineContext:
    """Dependencies shared by every stage."""

    config: PipelineConfig
    session_factory: SessionFactory
    timeseries: TimeSeriesStore
    blobs: BlobStore
    analysis: AnalysisClient
    notifications: NotificationClient
    geocoder: GeocodingClient
    clock: ClockProtocol = field(default_factory=SystemClock)
    enqueuer: Optional[JobEnqueuer] = None

    def bind(self, enqueuer: JobEnqueuer) -> None:
        """Attach the job enqueue interface."""
        self.enqueuer = enqueuer

    def enqueue_next(
        self,
        current_task: str,
        payload: TaskPayload,
        delay: Optional[float] = None,
        eta: Optional[datetime] = None,
    ) -> Any:
        """
        Enqueue a next step of the current task.

        Raises:
            ValueError: If the pipeline graph does not allow the step
            RuntimeError: If no enqueuer is bound
        """
        if not is_allowed_step(current_task, payload.TASK):
            raise ValueError(f"{payload.TASK} is not a next step of {current_task}")
        if self.enqueuer is None:
            raise RuntimeError("PipelineContext has no enqueuer bound")
        return self.enqueuer.enqueue(payload, eta=eta, delay=delay)

    def state_machine(self, archive_id: int) -> ArchiveStateMachine:
        return ArchiveStateMachine(archive_id, self.session_factory)

    def new_writer(self) -> BatchedWriter:
        return BatchedWriter(self.timeseries, batch_size=self.config.archive.stat_batch_size)

    async def close(self) -> None:
        """Close the network clients."""
        await self.analysis.close()
        await self.notifications.close()
        await self.geocoder.close()
        logger.info("Pipeline clients closed")


__all__ = ["JobEnqueuer", "PipelineContext"]
