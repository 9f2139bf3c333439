"""
Archives - Error Code Registry.

============================================================
PURPOSE
============================================================
Structured error codes recorded on an archive when it is
driven to `invalid`.

ERROR CATEGORIES:
1. Creation - archive record or upload could not be created
2. Download - bytes could not be fetched or are not an archive
3. Structure - archive shape or entity files are malformed
4. Extraction - derived statistics could not be produced

Every code here is terminal: the archive is not retried, the
user resubmits.

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    CREATION = "CREATION"
    """Archive creation failed."""

    DOWNLOAD = "DOWNLOAD"
    """Archive bytes could not be fetched."""

    STRUCTURE = "STRUCTURE"
    """Archive content is malformed."""

    EXTRACTION = "EXTRACTION"
    """Statistics extraction failed."""


class ArchiveErrorCode(str, Enum):
    """Codes stored in ArchiveRecord.error."""

    FAIL_TO_CREATE_ARCHIVE = "FAIL_TO_CREATE_ARCHIVE"
    FAIL_TO_DOWNLOAD_ARCHIVE = "FAIL_TO_DOWNLOAD_ARCHIVE"
    INVALID_ARCHIVE = "INVALID_ARCHIVE"
    FAIL_TO_PARSE_ARCHIVE = "FAIL_TO_PARSE_ARCHIVE"
    FAIL_TO_EXTRACT_POST = "FAIL_TO_EXTRACT_POST"
    FAIL_TO_EXTRACT_REACTION = "FAIL_TO_EXTRACT_REACTION"
    FAIL_TO_EXTRACT_SENTIMENT = "FAIL_TO_EXTRACT_SENTIMENT"


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass(frozen=True)
class ErrorCodeInfo:
    """Information about an error code."""

    code: ArchiveErrorCode
    """Error code."""

    category: ErrorCategory
    """Error category."""

    message: str
    """Human-readable message stored with the code."""


ERROR_CODES: Dict[ArchiveErrorCode, ErrorCodeInfo] = {
    ArchiveErrorCode.FAIL_TO_CREATE_ARCHIVE: ErrorCodeInfo(
        code=ArchiveErrorCode.FAIL_TO_CREATE_ARCHIVE,
        category=ErrorCategory.CREATION,
        message="fail to create archive",
    ),
    ArchiveErrorCode.FAIL_TO_DOWNLOAD_ARCHIVE: ErrorCodeInfo(
        code=ArchiveErrorCode.FAIL_TO_DOWNLOAD_ARCHIVE,
        category=ErrorCategory.DOWNLOAD,
        message="fail to download archive",
    ),
    ArchiveErrorCode.INVALID_ARCHIVE: ErrorCodeInfo(
        code=ArchiveErrorCode.INVALID_ARCHIVE,
        category=ErrorCategory.STRUCTURE,
        message="archive is missing required folders",
    ),
    ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE: ErrorCodeInfo(
        code=ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE,
        category=ErrorCategory.STRUCTURE,
        message="fail to parse archive",
    ),
    ArchiveErrorCode.FAIL_TO_EXTRACT_POST: ErrorCodeInfo(
        code=ArchiveErrorCode.FAIL_TO_EXTRACT_POST,
        category=ErrorCategory.EXTRACTION,
        message="fail to extract post",
    ),
    ArchiveErrorCode.FAIL_TO_EXTRACT_REACTION: ErrorCodeInfo(
        code=ArchiveErrorCode.FAIL_TO_EXTRACT_REACTION,
        category=ErrorCategory.EXTRACTION,
        message="fail to extract reaction",
    ),
    ArchiveErrorCode.FAIL_TO_EXTRACT_SENTIMENT: ErrorCodeInfo(
        code=ArchiveErrorCode.FAIL_TO_EXTRACT_SENTIMENT,
        category=ErrorCategory.EXTRACTION,
        message="fail to extract sentiment",
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Registry entry of a code.

    Unknown codes fall back to FAIL_TO_PARSE_ARCHIVE.
    """
    try:
        return ERROR_CODES[ArchiveErrorCode(code)]
    except ValueError:
        return ERROR_CODES[ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE]


def error_payload(code: str, message: str = "") -> Dict[str, Any]:
    """JSON document stored in ArchiveRecord.error."""
    info = get_error_info(code)
    return {
        "code": str(getattr(code, "value", code)),
        "message": message or info.message,
    }


__all__ = [
    "ErrorCategory",
    "ArchiveErrorCode",
    "ErrorCodeInfo",
    "ERROR_CODES",
    "get_error_info",
    "error_payload",
]
