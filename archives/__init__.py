"""
Archives Package.

Everything about one user-submitted export.

Modules:
- state_machine: ArchiveStateMachine and its transition rules
- errors: ArchiveErrorCode and the ERROR_CODES registry
- links: Share-link resolution for URL submissions
- decoder: Zip shape validation and typed entity batches
- schema: JSON Schemas, mojibake repair, typed entries
"""

from archives.decoder import ArchiveDecoder, InvalidArchiveShapeError, validate_archive_shape
from archives.errors import ERROR_CODES, ArchiveErrorCode
from archives.links import resolve_download_url
from archives.state_machine import ArchiveStateMachine, InvalidArchiveTransitionError

__all__ = [
    "ArchiveDecoder",
    "InvalidArchiveShapeError",
    "validate_archive_shape",
    "ERROR_CODES",
    "ArchiveErrorCode",
    "resolve_download_url",
    "ArchiveStateMachine",
    "InvalidArchiveTransitionError",
]
