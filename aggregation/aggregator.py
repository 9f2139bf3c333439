"""
Aggregation - Statistics Aggregator.

============================================================
RESPONSIBILITY
============================================================
Single-pass conversion of a timestamp-ascending record stream
into UsageStats for one section at week, year and decade
granularity simultaneously.

============================================================
ALGORITHM (per granularity)
============================================================
1. Compute the record's period key
2. If an open period has a different key, flush it:
   - diff against the previous finalized total only when the
     previous period is contiguous, otherwise 1
   - emit through the batched writer
   - roll previous = current and open the new period
3. Accumulate the record (type, sub-period, friend, place)

Sub-period buckets are appended, never looked up: a new bucket
is created only when its key differs from the last appended one.

============================================================
PRECONDITIONS
============================================================
- Input MUST be ordered by timestamp ascending; this is not
  re-validated here
- A record with the same timestamp as the previously accepted
  record of the same stream is skipped

============================================================
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from aggregation.models import AggregationItem, PeriodData, UsageGroups, UsageStat
from aggregation.writer import BatchedWriter
from core.constants import (
    GRANULARITIES,
    SECTION_POST,
    SECTION_REACTION,
    SECTION_SENTIMENT,
    SUB_PERIODS,
    stat_key,
)
from core.periods import abs_period, get_diff, previous_period_start, PERIOD_FUNCTIONS


logger = logging.getLogger(__name__)


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


# ============================================================
# ACCUMULATORS
# ============================================================

class PeriodAccumulator(ABC):
    """Running totals of one open period."""

    def __init__(self, sub_period: str):
        self.sub_period = sub_period

    @abstractmethod
    def add(self, item: AggregationItem) -> None:
        ...

    @abstractmethod
    def quantity(self) -> int:
        ...

    @abstractmethod
    def groups(self) -> Optional[UsageGroups]:
        ...


class CountAccumulator(PeriodAccumulator):
    """
    Counts records of a period.

    Breakdowns:
        type: kind -> count
        sub_period: ordered buckets (day / month / year start)
        friend: tagged friend -> kind -> count
        place: place name -> kind -> count
    """

    def __init__(self, sub_period: str):
        super().__init__(sub_period)
        self._total = 0
        self._type: Dict[str, int] = {}
        self._sub_periods: List[PeriodData] = []
        self._friends: Dict[str, PeriodData] = {}
        self._places: Dict[str, PeriodData] = {}

    def add(self, item: AggregationItem) -> None:
        self._total += 1
        self._type[item.kind] = self._type.get(item.kind, 0) + 1

        bucket = str(PERIOD_FUNCTIONS[self.sub_period](item.timestamp))
        if not self._sub_periods or self._sub_periods[-1].name != bucket:
            self._sub_periods.append(PeriodData(name=bucket))
        self._sub_periods[-1].increment(item.kind)

        for name in item.friends:
            self._friends.setdefault(name, PeriodData(name=name)).increment(item.kind)
        for name in item.places:
            self._places.setdefault(name, PeriodData(name=name)).increment(item.kind)

    def quantity(self) -> int:
        return self._total

    def groups(self) -> Optional[UsageGroups]:
        return UsageGroups(
            type=dict(self._type),
            sub_period=list(self._sub_periods),
            friend=list(self._friends.values()),
            place=list(self._places.values()),
        )


class AverageAccumulator(PeriodAccumulator):
    """Averages the values of a period (sentiment scores)."""

    def __init__(self, sub_period: str):
        super().__init__(sub_period)
        self._values: List[float] = []

    def add(self, item: AggregationItem) -> None:
        self._values.append(item.value)

    def quantity(self) -> int:
        if not self._values:
            return 0
        return round_half_away_from_zero(sum(self._values) / len(self._values))

    def groups(self) -> Optional[UsageGroups]:
        return None


AccumulatorFactory = Callable[[str], PeriodAccumulator]

SECTION_ACCUMULATORS: Dict[str, AccumulatorFactory] = {
    SECTION_POST: CountAccumulator,
    SECTION_REACTION: CountAccumulator,
    SECTION_SENTIMENT: AverageAccumulator,
}


# ============================================================
# PERIOD TRACKER
# ============================================================

class PeriodTracker:
    """Open period, previous period and flush logic of one granularity."""

    def __init__(
        self,
        section: str,
        period: str,
        accumulator_factory: AccumulatorFactory,
        emit: Callable[[UsageStat], None],
    ):
        self.section = section
        self.period = period
        self._accumulator_factory = accumulator_factory
        self._emit = emit

        self.current_key: Optional[int] = None
        self.previous_key: Optional[int] = None
        self.previous_total = 0
        self._accumulator: Optional[PeriodAccumulator] = None

    def add(self, item: AggregationItem) -> None:
        key = abs_period(self.period, item.timestamp)

        if self.current_key is not None and key != self.current_key:
            self.flush()

        if self.current_key is None:
            self.current_key = key
            self._accumulator = self._accumulator_factory(SUB_PERIODS[self.period])

        self._accumulator.add(item)

    def flush(self) -> Optional[UsageStat]:
        """Finalize the open period, if any, and emit it."""
        if self.current_key is None:
            return None

        total = self._accumulator.quantity()

        diff = 1.0
        if self.previous_key == previous_period_start(self.period, self.current_key):
            diff = get_diff(total, self.previous_total)

        stat = UsageStat(
            section_name=self.section,
            period=self.period,
            period_started_at=self.current_key,
            quantity=total,
            diff_from_previous=diff,
            groups=self._accumulator.groups(),
        )
        self._emit(stat)

        self.previous_key = self.current_key
        self.previous_total = total
        self.current_key = None
        self._accumulator = None
        return stat


# ============================================================
# AGGREGATOR
# ============================================================

class StatisticsAggregator:
    """
    Rolling statistics of one section stream.

    Usage:
        aggregator = StatisticsAggregator(SECTION_POST, writer, "acct")
        for post in posts_ordered_by_timestamp:
            aggregator.add(AggregationItem(post.timestamp, kind="update"))
        aggregator.close()
        writer.flush()
    """

    def __init__(
        self,
        section: str,
        writer: BatchedWriter,
        account_number: str,
        accumulator_factory: Optional[AccumulatorFactory] = None,
    ):
        if accumulator_factory is None:
            if section not in SECTION_ACCUMULATORS:
                raise ValueError(f"Unknown section: {section}")
            accumulator_factory = SECTION_ACCUMULATORS[section]

        self.section = section
        self.account_number = account_number
        self._writer = writer
        self._last_timestamp: Optional[int] = None

        self.trackers = [
            PeriodTracker(section, period, accumulator_factory, self._write)
            for period in GRANULARITIES
        ]

        self.emitted: List[UsageStat] = []
        self.accepted = 0
        self.skipped = 0

    def add(self, item: AggregationItem) -> bool:
        """
        Accumulate one record into every granularity.

        Returns:
            False when the record was skipped as a duplicate timestamp
        """
        if self._last_timestamp is not None and item.timestamp == self._last_timestamp:
            self.skipped += 1
            return False

        for tracker in self.trackers:
            tracker.add(item)

        self._last_timestamp = item.timestamp
        self.accepted += 1
        return True

    def close(self) -> List[UsageStat]:
        """Force-flush every open period; returns every stat emitted so far."""
        for tracker in self.trackers:
            tracker.flush()
        logger.debug(
            f"{self.section} aggregation closed for {self.account_number}: "
            f"{self.accepted} accepted, {self.skipped} skipped, {len(self.emitted)} stats"
        )
        return list(self.emitted)

    def _write(self, stat: UsageStat) -> None:
        self._writer.save(
            stat_key(self.account_number, stat.section_name, stat.period),
            stat.period_started_at,
            stat.to_bytes(),
        )
        self.emitted.append(stat)


__all__ = [
    "round_half_away_from_zero",
    "PeriodAccumulator",
    "CountAccumulator",
    "AverageAccumulator",
    "SECTION_ACCUMULATORS",
    "PeriodTracker",
    "StatisticsAggregator",
]
