"""
Aggregation Package.

Incremental, single-pass usage statistics.

Modules:
- models: AggregationItem, PeriodData, UsageGroups, UsageStat
- aggregator: StatisticsAggregator and its period trackers
- writer: BatchedWriter in front of the time-series store
"""

from aggregation.aggregator import StatisticsAggregator
from aggregation.models import AggregationItem, PeriodData, UsageGroups, UsageStat
from aggregation.writer import BatchedWriter

__all__ = [
    "AggregationItem",
    "PeriodData",
    "UsageGroups",
    "UsageStat",
    "StatisticsAggregator",
    "BatchedWriter",
]
