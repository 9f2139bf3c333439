"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Declarative base and the mixins shared by the account,
archive and parsed-record models.

============================================================
COMPONENTS
============================================================
- Base: declarative base, with a plain-dict row view for exports
- TimestampMixin: created_at / updated_at columns
- OwnedRecordMixin: UUID key and owning account of a parsed record
- JSONType: JSON column that becomes JSONB on PostgreSQL

============================================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }

    def to_row(self) -> Dict[str, Any]:
        """Column values keyed by attribute name, relationships excluded."""
        return {column.key: getattr(self, column.key) for column in self.__table__.columns}


class TimestampMixin:
    """created_at / updated_at columns, timezone-aware."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last update timestamp (UTC)"
    )


class OwnedRecordMixin:
    """
    Key columns of a record decoded from an archive.

    data_owner_id is the account number; every per-account query
    and the deletion pipeline filter on it.
    """

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    data_owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
