"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Named-task job runtime of the ingestion pipeline.

- Immediate and delayed (fire-at-time) enqueue
- Worker pool bounded by the configured concurrency
- Metrics hooks around every job
- Global error handler for every failed job
- Graceful shutdown on SIGINT / SIGTERM

============================================================
ARCHITECTURAL POSITION
============================================================
- This orchestrator has NO business logic
- Stages chain themselves by enqueueing their successor
- Jobs live in memory only; a restart loses queued jobs

============================================================
SCHEDULING
============================================================
    enqueue ──(eta <= now)──► queue ──► worker
            └─(eta > now)───► heap ──(scheduler tick)──► queue

A job that finds the queue full waits in the heap with its
ETA set to the enqueue time.

============================================================
"""

import asyncio
import heapq
import itertools
import logging
import signal
import sys
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from core.clock import ClockProtocol, SystemClock
from core.config import OrchestratorConfig
from core.exceptions import FatalError, classify_exception
from core.logging_setup import job_log_context
from orchestrator.errors import JobErrorHandler
from orchestrator.metrics import JobMetrics
from orchestrator.models import Job, JobStatus
from orchestrator.registry import TaskRegistry
from pipeline.tasks import TaskPayload


logger = logging.getLogger(__name__)


ShutdownCallback = Callable[[], Awaitable[Any]]


class OrchestratorClosedError(FatalError):
    """Enqueue after the orchestrator shut down."""


class JobOrchestrator:
    """
    Job runtime.

    Usage:
        orchestrator = JobOrchestrator(registry, config.orchestrator, error_handler)
        context.bind(orchestrator)
        orchestrator.enqueue(DownloadArchivePayload(...))
        await orchestrator.run_forever()
    """

    def __init__(
        self,
        registry: TaskRegistry,
        config: Optional[OrchestratorConfig] = None,
        error_handler: Optional[JobErrorHandler] = None,
        clock: Optional[ClockProtocol] = None,
        metrics: Optional[JobMetrics] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Registered tasks
            config: Worker pool settings
            error_handler: Global error handler (default logs only)
            clock: Time source for ETAs
            metrics: Job metrics (default: new instance)
        """
        self._registry = registry
        self._config = config or OrchestratorConfig()
        self._error_handler = error_handler or JobErrorHandler()
        self._clock = clock or SystemClock()
        self._metrics = metrics or JobMetrics()

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(0, self._config.queue_size))
        self._scheduled: List[Tuple[float, int, Job]] = []
        self._sequence = itertools.count()

        self._workers: List[asyncio.Task] = []
        self._scheduler_task: Optional[asyncio.Task] = None
        self._shutdown_callbacks: List[ShutdownCallback] = []
        self._stopped: Optional[asyncio.Event] = None

        self._running = False
        self._draining = False
        self._closed = False
        self._signals_installed = False

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def metrics(self) -> JobMetrics:
        return self._metrics

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queued_count(self) -> int:
        return self._queue.qsize()

    @property
    def scheduled_jobs(self) -> List[Job]:
        """Jobs waiting for their ETA, earliest first."""
        return [job for _, _, job in sorted(self._scheduled, key=lambda entry: entry[:2])]

    def add_shutdown_callback(self, callback: ShutdownCallback) -> None:
        """Register a coroutine function awaited at the end of shutdown."""
        self._shutdown_callbacks.append(callback)

    # --------------------------------------------------------
    # ENQUEUE
    # --------------------------------------------------------

    def enqueue(
        self,
        payload: TaskPayload,
        eta: Optional[datetime] = None,
        delay: Optional[float] = None,
    ) -> Job:
        """
        Submit a job.

        Args:
            payload: Task payload; its type selects the task
            eta: Earliest start time
            delay: Seconds from now until the earliest start

        Returns:
            The enqueued job

        Raises:
            TaskPayloadError: If no task accepts the payload type
            OrchestratorClosedError: After shutdown
        """
        if self._closed:
            raise OrchestratorClosedError(f"Orchestrator closed, job rejected: {payload!r}")
        if eta is not None and delay is not None:
            raise ValueError("Pass either eta or delay, not both")

        registration = self._registry.validate(payload)

        now = self._clock.now()
        if delay is not None:
            eta = self._clock.after(delay)
        if eta is not None and eta.tzinfo is None:
            eta = eta.replace(tzinfo=timezone.utc)

        job = Job(name=registration.name, payload=payload, eta=eta, enqueued_at=now)

        if self._draining:
            # Follow-ups of draining jobs are kept but never dispatched
            logger.warning(f"Shutdown in progress, job {job.name} [{job.id}] parked")
            self._schedule(job)
        elif eta is not None and eta > now:
            self._schedule(job)
            logger.debug(f"Scheduled {job.name} [{job.id}] at {eta.isoformat()}")
        else:
            self._dispatch(job)

        return job

    def _schedule(self, job: Job) -> None:
        job.status = JobStatus.SCHEDULED
        when = job.eta.timestamp() if job.eta is not None else self._clock.timestamp()
        heapq.heappush(self._scheduled, (when, next(self._sequence), job))

    def _dispatch(self, job: Job) -> None:
        try:
            self._queue.put_nowait(job)
            job.status = JobStatus.QUEUED
        except asyncio.QueueFull:
            logger.warning(f"Job queue full, {job.name} [{job.id}] waits for a free slot")
            job.eta = self._clock.now()
            self._schedule(job)

    def release_due_jobs(self) -> int:
        """
        Move every job whose ETA has passed onto the queue.

        Returns:
            Number of jobs released
        """
        if self._draining:
            return 0

        now = self._clock.timestamp()
        released = 0
        while self._scheduled and self._scheduled[0][0] <= now and not self._queue.full():
            _, _, job = heapq.heappop(self._scheduled)
            self._queue.put_nowait(job)
            job.status = JobStatus.QUEUED
            released += 1
        return released

    def _has_due_jobs(self) -> bool:
        return bool(self._scheduled) and self._scheduled[0][0] <= self._clock.timestamp()

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self) -> None:
        """Start the worker pool and the scheduler."""
        if self._running:
            logger.warning("Orchestrator already running")
            return

        concurrency = max(1, self._config.concurrency)
        logger.info(
            f"=== ORCHESTRATOR STARTUP === workers={concurrency} "
            f"tasks={len(self._registry)}"
        )

        self._stopped = asyncio.Event()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"job-worker-{index}")
            for index in range(concurrency)
        ]
        self._scheduler_task = asyncio.create_task(self._scheduler_loop(), name="job-scheduler")
        self._running = True

    async def run_forever(self) -> None:
        """Run until a shutdown signal arrives."""
        if not self._running:
            await self.start()

        self._install_signal_handlers()
        try:
            await self._stopped.wait()
        finally:
            self._restore_signal_handlers()

    async def run_until_idle(self) -> None:
        """
        Process jobs until nothing is queued and no scheduled job is due.

        Jobs scheduled in the future stay scheduled.
        """
        if not self._running:
            await self.start()

        while True:
            self.release_due_jobs()
            await self._queue.join()
            if not self._has_due_jobs():
                return

    async def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting jobs and drain in-flight ones.

        Args:
            timeout: Seconds allowed to drain (default from config)

        Returns:
            True if every queued job finished within the timeout
        """
        if not self._running:
            return True

        timeout = self._config.shutdown_timeout_seconds if timeout is None else timeout
        logger.info(f"=== ORCHESTRATOR SHUTDOWN === draining up to {timeout}s")
        self._draining = True

        if self._scheduler_task is not None:
            self._scheduler_task.cancel()
            await asyncio.gather(self._scheduler_task, return_exceptions=True)
            self._scheduler_task = None

        drained = True
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            drained = False
            logger.warning(f"Drain timed out with {self._queue.qsize()} jobs queued")

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self._scheduled:
            logger.warning(f"Dropping {len(self._scheduled)} scheduled jobs")

        for callback in self._shutdown_callbacks:
            try:
                await callback()
            except Exception as e:
                logger.error(f"Shutdown callback failed: {e}", exc_info=True)

        self._running = False
        self._closed = True
        logger.info(f"=== ORCHESTRATOR STOPPED === {self._metrics.snapshot()}")
        self._stopped.set()
        return drained

    # --------------------------------------------------------
    # WORKERS
    # --------------------------------------------------------

    async def _scheduler_loop(self) -> None:
        tick = self._config.scheduler_tick_seconds
        while True:
            released = self.release_due_jobs()
            if released:
                logger.debug(f"Released {released} scheduled jobs")
            await asyncio.sleep(tick)

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._execute(job)
            finally:
                self._queue.task_done()

    async def _execute(self, job: Job) -> None:
        registration = self._registry.get(job.name)

        job.status = JobStatus.RUNNING
        job.attempts += 1
        job.started_at = self._clock.now()
        self._metrics.before_job(job.name)
        started = time.monotonic()
        success = False

        with job_log_context(job.id, job.name, getattr(job.payload, "archive_id", None)):
            try:
                job.result = await asyncio.wait_for(
                    registration.handler(job.payload),
                    timeout=self._config.job_timeout_seconds,
                )
                job.status = JobStatus.SUCCEEDED
                success = True
            except asyncio.CancelledError:
                job.status = JobStatus.FAILED
                raise
            except Exception as e:
                error = classify_exception(e)
                job.status = JobStatus.FAILED
                job.error = error.to_dict()
                self._handle_error(job, error)
            finally:
                job.finished_at = self._clock.now()
                self._metrics.after_job(job.name, success, time.monotonic() - started)

    def _handle_error(self, job: Job, error: Any) -> None:
        try:
            self._error_handler.handle(job, error)
        except Exception as e:
            logger.error(f"Error handler failed for job {job.name} [{job.id}]: {e}", exc_info=True)

    # --------------------------------------------------------
    # SIGNALS
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        if sys.platform == "win32" or self._signals_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s=sig: asyncio.create_task(self._async_signal_handler(s)),
            )
        self._signals_installed = True

    def _restore_signal_handlers(self) -> None:
        if not self._signals_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        self._signals_installed = False

    async def _async_signal_handler(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}")
        await self.shutdown()


__all__ = ["OrchestratorClosedError", "JobOrchestrator"]
