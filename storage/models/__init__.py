"""
Storage Models Package.

This package contains all ORM models of the ingestion pipeline.

============================================================
MODEL ORGANIZATION
============================================================

Accounts & archives (archive.py)
- AccountRecord
- ArchiveRecord
- ArchiveStatus

Parsed archive records (records.py)
- FriendRecord
- PostRecord, PostMediaRecord, PlaceRecord, TagRecord
- ReactionRecord
- CommentRecord, CommentMediaRecord

Time-series store (timeseries.py)
- TimeSeriesEntry

============================================================
"""

from storage.models.base import Base, JSONType, TimestampMixin
from storage.models.archive import (
    TERMINAL_STATUSES,
    AccountRecord,
    ArchiveRecord,
    ArchiveStatus,
)
from storage.models.records import (
    CommentMediaRecord,
    CommentRecord,
    FriendRecord,
    PlaceRecord,
    PostMediaRecord,
    PostRecord,
    ReactionRecord,
    TagRecord,
)
from storage.models.timeseries import TimeSeriesEntry

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "TERMINAL_STATUSES",
    "AccountRecord",
    "ArchiveRecord",
    "ArchiveStatus",
    "FriendRecord",
    "PostRecord",
    "PostMediaRecord",
    "PlaceRecord",
    "TagRecord",
    "ReactionRecord",
    "CommentRecord",
    "CommentMediaRecord",
    "TimeSeriesEntry",
]
