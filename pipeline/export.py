"""
Pipeline - Data Export.

============================================================
PURPOSE
============================================================
Packs everything the system holds for an account into one zip
the owner can download.

LAYOUT:
    fb_archives/archive-{created}-{id}.zip    processed archives
    spring_archives/spring_posts.json         derived posts
    spring_archives/spring_reactions.json     derived reactions
    spring_archives/spring_stats_{section}_{period}.json
    spring_archives/spring_db_{table}.json    relational records

The zip is stored at `{account}/spring/archives/archive-{export_id}.zip`.

============================================================
"""

import asyncio
import json
import logging
import os
import tempfile
import zipfile
from typing import Any, Dict, List

from aggregation.models import UsageStat
from core.constants import (
    GRANULARITIES,
    SECTION_POST,
    SECTION_REACTION,
    SECTIONS,
    export_blob_key,
    raw_record_key,
    stat_key,
)
from pipeline.context import PipelineContext
from pipeline.stage import Stage
from pipeline.tasks import TASK_PREPARE_EXPORT, PrepareExportPayload
from storage.database import transaction_scope
from storage.models.archive import ArchiveStatus
from storage.repositories.accounts import ArchiveRepository
from storage.repositories.records import OWNED_MODELS, RecordRepository


logger = logging.getLogger(__name__)


ARCHIVES_FOLDER = "fb_archives"
DERIVED_FOLDER = "spring_archives"


def _series(context: PipelineContext, key: str) -> List[bytes]:
    return [item.data for item in context.timeseries.query_range(key, 0, context.clock.unix())]


def _write_json(bundle: zipfile.ZipFile, name: str, value: Any) -> None:
    bundle.writestr(f"{DERIVED_FOLDER}/{name}", json.dumps(value, default=str))


def build_export(context: PipelineContext, account_number: str, path: str) -> Dict[str, int]:
    """
    Write the export zip of an account to a local path.

    Returns:
        Number of entries written per part
    """
    counts: Dict[str, int] = {}

    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
        with transaction_scope(context.session_factory) as session:
            archives = [
                (a.id, a.blob_key, a.created_at)
                for a in ArchiveRepository(session).list_by_account(account_number, ArchiveStatus.PROCESSED)
                if a.blob_key
            ]

        for archive_id, blob_key, created_at in archives:
            member_name = f"{ARCHIVES_FOLDER}/archive-{int(created_at.timestamp())}-{archive_id}.zip"
            with bundle.open(member_name, "w") as member:
                context.blobs.download(blob_key, member)
        counts["archives"] = len(archives)

        for section, name in ((SECTION_POST, "spring_posts.json"), (SECTION_REACTION, "spring_reactions.json")):
            records = [json.loads(data) for data in _series(context, raw_record_key(account_number, section))]
            _write_json(bundle, name, records)
            counts[section] = len(records)

        for section in SECTIONS:
            for period in GRANULARITIES:
                stats = [
                    UsageStat.from_bytes(data).to_dict()
                    for data in _series(context, stat_key(account_number, section, period))
                ]
                _write_json(bundle, f"spring_stats_{section}_{period}.json", stats)
                counts[f"{section}-{period}"] = len(stats)

        with transaction_scope(context.session_factory) as session:
            repository = RecordRepository(session)
            for model in OWNED_MODELS:
                rows = repository.export_rows(model, account_number)
                _write_json(bundle, f"spring_db_{model.__tablename__}.json", rows)
                counts[model.__tablename__] = len(rows)

    return counts


def prepare_data_export(context: PipelineContext, account_number: str, export_id: str) -> str:
    """
    Build and store the export zip of an account.

    Returns:
        Blob key of the export
    """
    workdir = context.config.archive.workdir
    os.makedirs(workdir, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix=f"export-{account_number}-", suffix=".zip", dir=workdir)
    os.close(fd)

    key = export_blob_key(account_number, export_id)
    try:
        counts = build_export(context, account_number, path)
        with open(path, "rb") as fh:
            context.blobs.upload(key, fh, metadata={"export_id": export_id})
    finally:
        os.remove(path)

    logger.info(f"Prepared export {export_id} of {account_number} at {key}: {counts}")
    return key


def presigned_export_url(context: PipelineContext, account_number: str, export_id: str) -> str:
    """Temporary download URL of a prepared export."""
    return context.blobs.presigned_download_url(
        export_blob_key(account_number, export_id),
        context.config.blobs.presign_ttl_seconds,
    )


class PrepareExportStage(Stage):
    TASK = TASK_PREPARE_EXPORT
    PAYLOAD = PrepareExportPayload

    async def run(self, payload: PrepareExportPayload) -> Dict[str, Any]:
        key = await asyncio.to_thread(prepare_data_export, self.context, payload.account_number, payload.export_id)
        return {"blob_key": key}


__all__ = [
    "build_export",
    "prepare_data_export",
    "presigned_export_url",
    "PrepareExportStage",
]
