"""
Pipeline - Analysis Submit & Polling Bridge.

============================================================
PURPOSE
============================================================
Hands a parsed archive to the external analysis service and
waits for it by polling, re-enqueueing itself until the task
reaches a terminal status.

POLLING:
    submit ──(initial delay, 120 s)──► check
    check: FINISHED    ──► extract_posts
           FAILED      ──► archive invalid (FAIL_TO_PARSE_ARCHIVE)
           INTERRUPTED ──► stop, nothing enqueued
           other       ──(poll interval, 600 s)──► check

There is no retry limit.

============================================================
"""

import asyncio
import logging
import os
import tempfile
from typing import Any, Dict

from archives.errors import ArchiveErrorCode
from core.exceptions import ExternalServiceError, ValidationError
from external.analysis import TASK_FAILED, TASK_FINISHED, TASK_INTERRUPTED
from pipeline.stage import Stage
from pipeline.tasks import (
    TASK_CHECK_ANALYSIS,
    TASK_SUBMIT_ARCHIVE,
    CheckAnalysisPayload,
    ExtractPostsPayload,
    SubmitArchivePayload,
)
from storage.database import transaction_scope
from storage.repositories.accounts import ArchiveRepository


logger = logging.getLogger(__name__)


class SubmitArchiveStage(Stage):
    """Upload a stored archive to the analysis service."""

    TASK = TASK_SUBMIT_ARCHIVE
    PAYLOAD = SubmitArchivePayload

    async def run(self, payload: SubmitArchivePayload) -> Dict[str, Any]:
        archive_id = payload.archive_id
        try:
            await self.context.analysis.register_data_owner(payload.account_number)
        except ExternalServiceError as e:
            # Known owners are refused too
            logger.warning(f"Data owner {payload.account_number} not registered: {e}")

        with transaction_scope(self.context.session_factory) as session:
            blob_key = ArchiveRepository(session).get_or_raise(archive_id).blob_key

        workdir = self.context.config.archive.workdir
        os.makedirs(workdir, exist_ok=True)
        fd, path = tempfile.mkstemp(prefix="submit-", suffix=".zip", dir=workdir)
        os.close(fd)
        try:
            await asyncio.to_thread(self._download, blob_key, path)
            task_id = await self.context.analysis.submit(payload.account_number, path)
        finally:
            os.remove(path)

        with transaction_scope(self.context.session_factory) as session:
            ArchiveRepository(session).update_fields(archive_id, analysis_task_id=task_id)

        delay = self.context.config.polling.initial_delay_seconds
        self.enqueue_next(
            CheckAnalysisPayload(payload.account_number, archive_id, task_id=task_id),
            delay=delay,
        )
        logger.info(f"Archive {archive_id} submitted as analysis task {task_id}, first check in {delay}s")
        return {"task_id": task_id}

    def _download(self, key: str, path: str) -> None:
        with open(path, "wb") as fh:
            self.context.blobs.download(key, fh)


class CheckAnalysisStage(Stage):
    """Poll the analysis task of an archive."""

    TASK = TASK_CHECK_ANALYSIS
    PAYLOAD = CheckAnalysisPayload

    async def run(self, payload: CheckAnalysisPayload) -> Dict[str, Any]:
        status = await self.context.analysis.status(payload.task_id)
        logger.info(f"Analysis task {payload.task_id} of archive {payload.archive_id}: {status}")

        if status == TASK_FINISHED:
            self.enqueue_next(ExtractPostsPayload(payload.account_number, payload.archive_id))
        elif status == TASK_FAILED:
            raise ValidationError(
                payload.archive_id,
                ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE,
                f"analysis task {payload.task_id} failed",
            )
        elif status == TASK_INTERRUPTED:
            logger.warning(f"Analysis task {payload.task_id} interrupted, polling stopped")
        else:
            # Same payload again after the poll interval
            self.enqueue_next(payload, delay=self.context.config.polling.poll_interval_seconds)

        return {"status": status}


__all__ = ["SubmitArchiveStage", "CheckAnalysisStage"]
