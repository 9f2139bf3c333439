"""
Pipeline - Task Payloads.

============================================================
PURPOSE
============================================================
One frozen payload dataclass per task kind. Each payload
carries its task name and validates itself on construction;
the orchestrator checks the payload type again at enqueue time.

============================================================
"""

from dataclasses import dataclass
from typing import ClassVar, Dict, Type

from core.exceptions import TaskPayloadError


# ============================================================
# TASK NAMES
# ============================================================

TASK_DOWNLOAD_ARCHIVE = "download_archive"
TASK_ACCEPT_UPLOAD = "accept_upload"
TASK_PARSE_ARCHIVE = "parse_archive"
TASK_SUBMIT_ARCHIVE = "submit_archive"
TASK_CHECK_ANALYSIS = "check_analysis"
TASK_EXTRACT_POSTS = "extract_posts"
TASK_EXTRACT_REACTIONS = "extract_reactions"
TASK_EXTRACT_SENTIMENT = "extract_sentiment"
TASK_EXTRACT_TIME_METADATA = "extract_time_metadata"
TASK_NOTIFY = "notify"
TASK_DELETE_ACCOUNT = "delete_account_data"
TASK_PREPARE_EXPORT = "prepare_data_export"


# ============================================================
# BASE PAYLOADS
# ============================================================

@dataclass(frozen=True)
class TaskPayload:
    """Base of every payload."""

    TASK: ClassVar[str] = ""

    account_number: str

    def __post_init__(self) -> None:
        if not isinstance(self.account_number, str) or not self.account_number:
            self._reject("account_number must be a non-empty string")

    def _reject(self, reason: str) -> None:
        raise TaskPayloadError(f"Invalid {type(self).__name__}: {reason}", task_name=self.TASK)


@dataclass(frozen=True)
class ArchivePayload(TaskPayload):
    """Payload of a stage working on one archive."""

    archive_id: int

    def __post_init__(self) -> None:
        super().__post_init__()
        if isinstance(self.archive_id, bool) or not isinstance(self.archive_id, int) or self.archive_id <= 0:
            self._reject("archive_id must be a positive integer")


# ============================================================
# ARCHIVE STAGES
# ============================================================

@dataclass(frozen=True)
class DownloadArchivePayload(ArchivePayload):
    """Fetch an archive from a share link."""

    TASK: ClassVar[str] = TASK_DOWNLOAD_ARCHIVE

    url: str = ""
    cookie: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.url.startswith(("http://", "https://")):
            self._reject(f"url must be http(s): {self.url!r}")


@dataclass(frozen=True)
class AcceptUploadPayload(ArchivePayload):
    """Adopt an archive uploaded straight to the blob store."""

    TASK: ClassVar[str] = TASK_ACCEPT_UPLOAD

    blob_key: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.blob_key:
            self._reject("blob_key is required")


@dataclass(frozen=True)
class ParseArchivePayload(ArchivePayload):
    TASK: ClassVar[str] = TASK_PARSE_ARCHIVE


@dataclass(frozen=True)
class SubmitArchivePayload(ArchivePayload):
    TASK: ClassVar[str] = TASK_SUBMIT_ARCHIVE


@dataclass(frozen=True)
class CheckAnalysisPayload(ArchivePayload):
    """Poll the analysis task of an archive."""

    TASK: ClassVar[str] = TASK_CHECK_ANALYSIS

    task_id: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.task_id:
            self._reject("task_id is required")


@dataclass(frozen=True)
class ExtractPostsPayload(ArchivePayload):
    TASK: ClassVar[str] = TASK_EXTRACT_POSTS


@dataclass(frozen=True)
class ExtractReactionsPayload(ArchivePayload):
    TASK: ClassVar[str] = TASK_EXTRACT_REACTIONS


@dataclass(frozen=True)
class ExtractSentimentPayload(ArchivePayload):
    TASK: ClassVar[str] = TASK_EXTRACT_SENTIMENT


# ============================================================
# ACCOUNT TASKS
# ============================================================

@dataclass(frozen=True)
class TimeMetadataPayload(TaskPayload):
    TASK: ClassVar[str] = TASK_EXTRACT_TIME_METADATA


@dataclass(frozen=True)
class NotificationPayload(TaskPayload):
    TASK: ClassVar[str] = TASK_NOTIFY

    event_kind: str = "archive_processed"

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.event_kind:
            self._reject("event_kind is required")


@dataclass(frozen=True)
class DeleteAccountPayload(TaskPayload):
    TASK: ClassVar[str] = TASK_DELETE_ACCOUNT


@dataclass(frozen=True)
class PrepareExportPayload(TaskPayload):
    TASK: ClassVar[str] = TASK_PREPARE_EXPORT

    export_id: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.export_id:
            self._reject("export_id is required")


PAYLOAD_TYPES: Dict[str, Type[TaskPayload]] = {
    payload_type.TASK: payload_type
    for payload_type in (
        DownloadArchivePayload,
        AcceptUploadPayload,
        ParseArchivePayload,
        SubmitArchivePayload,
        CheckAnalysisPayload,
        ExtractPostsPayload,
        ExtractReactionsPayload,
        ExtractSentimentPayload,
        TimeMetadataPayload,
        NotificationPayload,
        DeleteAccountPayload,
        PrepareExportPayload,
    )
}


__all__ = [
    "TASK_DOWNLOAD_ARCHIVE",
    "TASK_ACCEPT_UPLOAD",
    "TASK_PARSE_ARCHIVE",
    "TASK_SUBMIT_ARCHIVE",
    "TASK_CHECK_ANALYSIS",
    "TASK_EXTRACT_POSTS",
    "TASK_EXTRACT_REACTIONS",
    "TASK_EXTRACT_SENTIMENT",
    "TASK_EXTRACT_TIME_METADATA",
    "TASK_NOTIFY",
    "TASK_DELETE_ACCOUNT",
    "TASK_PREPARE_EXPORT",
    "TaskPayload",
    "ArchivePayload",
    "DownloadArchivePayload",
    "AcceptUploadPayload",
    "ParseArchivePayload",
    "SubmitArchivePayload",
    "CheckAnalysisPayload",
    "ExtractPostsPayload",
    "ExtractReactionsPayload",
    "ExtractSentimentPayload",
    "TimeMetadataPayload",
    "NotificationPayload",
    "DeleteAccountPayload",
    "PrepareExportPayload",
    "PAYLOAD_TYPES",
]
