"""
Account & Archive ORM Models.

============================================================
PURPOSE
============================================================
Relational source of truth for accounts and the lifecycle of
every archive they submit.

============================================================
MODELS
============================================================
- AccountRecord: one user account and its derived metadata
- ArchiveRecord: one submitted export, tracked through ArchiveStatus

============================================================
INVARIANTS
============================================================
- At most one archive per account outside the terminal
  statuses (processed, invalid), enforced by a partial unique index
- Archives are never deleted except by full account deletion

============================================================
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, JSONType, TimestampMixin


class ArchiveStatus(str, Enum):
    """Processing status of an archive."""

    CREATED = "created"
    SUBMITTED = "submitted"
    STORED = "stored"
    PROCESSING = "processing"
    PROCESSED = "processed"
    INVALID = "invalid"

    @property
    def is_terminal(self) -> bool:
        return self in (ArchiveStatus.PROCESSED, ArchiveStatus.INVALID)


TERMINAL_STATUSES = (ArchiveStatus.PROCESSED.value, ArchiveStatus.INVALID.value)

_ACTIVE_ARCHIVE_CLAUSE = text("status NOT IN ('processed', 'invalid')")


class AccountRecord(Base, TimestampMixin):
    """
    A user account.

    The metadata map carries derived fields written by the
    pipeline: first_activity_timestamp, last_activity_timestamp,
    last_post_timestamp, last_reaction_timestamp, original_location.
    """

    __tablename__ = "accounts"

    account_number: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="Public account number"
    )

    account_metadata: Mapped[Dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
        comment="Free-form account metadata"
    )

    deleting: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Set while the account deletion pipeline runs"
    )

    def __repr__(self) -> str:
        return f"<AccountRecord(account_number={self.account_number}, deleting={self.deleting})>"


class ArchiveRecord(Base, TimestampMixin):
    """One user-submitted export."""

    __tablename__ = "archives"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    account_number: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
        comment="Owning account"
    )

    archive_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="facebook",
    )

    source_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Download URL when submitted by link"
    )

    blob_key: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Object storage key, set once stored"
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ArchiveStatus.CREATED.value,
        index=True,
    )

    content_hash: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        comment="SHA3-512 hex digest of the archive bytes"
    )

    analysis_task_id: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        comment="Task reference of the external analysis service"
    )

    error: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Structured error: code and message"
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Earliest activity covered by the archive"
    )

    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Latest activity covered by the archive"
    )

    size_bytes: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )

    __table_args__ = (
        Index(
            "uq_archives_active_per_account",
            "account_number",
            unique=True,
            postgresql_where=_ACTIVE_ARCHIVE_CLAUSE,
            sqlite_where=_ACTIVE_ARCHIVE_CLAUSE,
        ),
    )

    @property
    def archive_status(self) -> ArchiveStatus:
        return ArchiveStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<ArchiveRecord(id={self.id}, account={self.account_number}, "
            f"status={self.status})>"
        )
