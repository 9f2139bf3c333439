"""
Time-Series ORM Model.

============================================================
PURPOSE
============================================================
Backing table of the time-series key-value store. One row per
(key, timestamp); writes overwrite by that pair.

Keys follow the layouts in core.constants:
- {account}/{section}-{period}-stat
- {account}/post, {account}/reaction

============================================================
"""

from sqlalchemy import BigInteger, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base


class TimeSeriesEntry(Base):
    """One value of a time-series key."""

    __tablename__ = "timeseries_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    def __repr__(self) -> str:
        return f"<TimeSeriesEntry(key={self.key}, timestamp={self.timestamp})>"
