"""
Storage - Time-Series Key-Value Store.

============================================================
RESPONSIBILITY
============================================================
Append/overwrite-by-key store of opaque byte values indexed by
(key, timestamp).

- put: write one value
- batch_put: write up to 25 values in one round trip
- query_range: values of a key in a time window, newest first
- query_exact: value at one timestamp
- delete_all_for_key: drop a whole key

============================================================
DESIGN PRINCIPLES
============================================================
- No cross-key transactions are promised to callers
- Writes overwrite silently, so re-running an extraction is safe
- Database errors surface as repository exceptions

============================================================
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from core.constants import MAX_BATCH_SIZE
from storage.database import SessionFactory, transaction_scope
from storage.models.timeseries import TimeSeriesEntry
from storage.repositories.exceptions import QueryError, RepositoryConnectionError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSeriesItem:
    """One value of the time-series store."""

    key: str
    timestamp: int
    data: bytes


class TimeSeriesStore:
    """
    SQLAlchemy backed time-series store.

    Each operation runs in its own transaction.
    """

    STORE_NAME = "TimeSeriesStore"

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    # =========================================================
    # WRITES
    # =========================================================

    def put(self, key: str, timestamp: int, data: bytes) -> None:
        """Write one value, overwriting any value at (key, timestamp)."""
        self.batch_put([TimeSeriesItem(key=key, timestamp=timestamp, data=data)])

    def batch_put(self, items: Sequence[TimeSeriesItem]) -> None:
        """
        Write up to MAX_BATCH_SIZE values.

        Raises:
            ValueError: If the batch is larger than MAX_BATCH_SIZE
        """
        if len(items) > MAX_BATCH_SIZE:
            raise ValueError(
                f"batch_put accepts at most {MAX_BATCH_SIZE} items, got {len(items)}"
            )
        if not items:
            return

        with transaction_scope(self._session_factory) as session:
            try:
                for item in items:
                    session.merge(
                        TimeSeriesEntry(key=item.key, timestamp=item.timestamp, data=item.data)
                    )
                session.flush()
            except SQLAlchemyError as e:
                self._raise(e, "batch_put")

        logger.debug(f"Wrote {len(items)} time-series items")

    # =========================================================
    # READS
    # =========================================================

    def query_range(
        self,
        key: str,
        from_timestamp: int,
        to_timestamp: int,
        limit: int = 0,
    ) -> List[TimeSeriesItem]:
        """
        Values of a key with from_timestamp <= timestamp <= to_timestamp.

        Args:
            key: Series key
            from_timestamp: Inclusive lower bound
            to_timestamp: Inclusive upper bound
            limit: Maximum number of items (0 = no limit)

        Returns:
            Items ordered newest first
        """
        stmt = (
            select(TimeSeriesEntry)
            .where(TimeSeriesEntry.key == key)
            .where(TimeSeriesEntry.timestamp >= from_timestamp)
            .where(TimeSeriesEntry.timestamp <= to_timestamp)
            .order_by(TimeSeriesEntry.timestamp.desc())
        )
        if limit > 0:
            stmt = stmt.limit(limit)

        with transaction_scope(self._session_factory) as session:
            try:
                rows = session.execute(stmt).scalars().all()
            except SQLAlchemyError as e:
                self._raise(e, "query_range")
            return [TimeSeriesItem(r.key, r.timestamp, r.data) for r in rows]

    def query_exact(self, key: str, timestamp: int) -> Optional[bytes]:
        """Value at (key, timestamp), or None."""
        with transaction_scope(self._session_factory) as session:
            try:
                entry = session.get(TimeSeriesEntry, (key, timestamp))
            except SQLAlchemyError as e:
                self._raise(e, "query_exact")
            return entry.data if entry else None

    def count(self, key: str) -> int:
        """Number of values stored under a key."""
        stmt = select(func.count()).select_from(TimeSeriesEntry).where(TimeSeriesEntry.key == key)
        with transaction_scope(self._session_factory) as session:
            return session.execute(stmt).scalar() or 0

    def count_prefix(self, prefix: str) -> int:
        """Number of values stored under every key starting with prefix."""
        stmt = (
            select(func.count())
            .select_from(TimeSeriesEntry)
            .where(TimeSeriesEntry.key.startswith(prefix, autoescape=True))
        )
        with transaction_scope(self._session_factory) as session:
            return session.execute(stmt).scalar() or 0

    # =========================================================
    # DELETES
    # =========================================================

    def delete_all_for_key(self, key: str) -> int:
        """
        Remove every value of a key.

        Returns:
            Number of removed values
        """
        with transaction_scope(self._session_factory) as session:
            try:
                result = session.execute(
                    delete(TimeSeriesEntry).where(TimeSeriesEntry.key == key)
                )
            except SQLAlchemyError as e:
                self._raise(e, "delete_all_for_key")
            removed = result.rowcount or 0

        logger.info(f"Removed {removed} time-series items for key {key}")
        return removed

    # =========================================================
    # INTERNAL
    # =========================================================

    def _raise(self, error: SQLAlchemyError, operation: str) -> None:
        logger.error(f"Time-series {operation} failed: {error}")
        if isinstance(error, OperationalError):
            raise RepositoryConnectionError(self.STORE_NAME, operation, str(error)) from error
        raise QueryError(self.STORE_NAME, operation, str(error)) from error
