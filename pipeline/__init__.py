"""
Pipeline Package.

Task payloads, the stage graph, the pipeline context and one
stage per task kind.
"""

from typing import List

from pipeline.context import JobEnqueuer, PipelineContext
from pipeline.deletion import DeleteAccountStage, delete_account_data, request_account_deletion
from pipeline.download import (
    AcceptUploadStage,
    DownloadArchiveStage,
    acknowledge_upload,
    request_archive_upload,
    submit_archive_url,
)
from pipeline.export import PrepareExportStage, prepare_data_export, presigned_export_url
from pipeline.graph import PIPELINE_GRAPH
from pipeline.notification import NotificationStage
from pipeline.parse import ParseArchiveStage
from pipeline.polling import CheckAnalysisStage, SubmitArchiveStage
from pipeline.posts import ExtractPostsStage
from pipeline.reactions import ExtractReactionsStage
from pipeline.sentiment import ExtractSentimentStage
from pipeline.stage import Stage
from pipeline.timerange import TimeMetadataStage


STAGE_TYPES = (
    DownloadArchiveStage,
    AcceptUploadStage,
    ParseArchiveStage,
    SubmitArchiveStage,
    CheckAnalysisStage,
    ExtractPostsStage,
    ExtractReactionsStage,
    ExtractSentimentStage,
    TimeMetadataStage,
    NotificationStage,
    DeleteAccountStage,
    PrepareExportStage,
)


def build_stages(context: PipelineContext) -> List[Stage]:
    """One stage instance per task kind, sharing the context."""
    return [stage_type(context) for stage_type in STAGE_TYPES]


__all__ = [
    "JobEnqueuer",
    "PipelineContext",
    "PIPELINE_GRAPH",
    "Stage",
    "STAGE_TYPES",
    "build_stages",
    "submit_archive_url",
    "request_archive_upload",
    "acknowledge_upload",
    "delete_account_data",
    "request_account_deletion",
    "prepare_data_export",
    "presigned_export_url",
]
