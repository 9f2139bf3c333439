"""
Aggregation - Models.

============================================================
PURPOSE
============================================================
Value types produced and consumed by the Statistics Aggregator.

- AggregationItem: one timestamped record fed into a section stream
- PeriodData: a named type -> count map (sub-period, friend, place)
- UsageGroups: breakdowns of a period
- UsageStat: the finalized, immutable statistic of one period

UsageStats are serialized as JSON bytes into the time-series store.

============================================================
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


# ============================================================
# INPUT
# ============================================================

@dataclass(frozen=True)
class AggregationItem:
    """One record of a section stream."""

    timestamp: int
    """Record timestamp, Unix seconds."""

    kind: str = ""
    """Type label counted in breakdowns (post type, reaction name)."""

    friends: Sequence[str] = ()
    """Names of tagged friends."""

    places: Sequence[str] = ()
    """Names of attached places."""

    value: float = 0.0
    """Numeric value for averaged sections (sentiment)."""


# ============================================================
# OUTPUT
# ============================================================

@dataclass
class PeriodData:
    """Named breakdown map."""

    name: str
    data: Dict[str, int] = field(default_factory=dict)

    def increment(self, key: str) -> None:
        self.data[key] = self.data.get(key, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "data": dict(self.data)}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PeriodData":
        return cls(name=raw.get("name", ""), data=dict(raw.get("data") or {}))


@dataclass
class UsageGroups:
    """Breakdowns of one period."""

    type: Dict[str, int] = field(default_factory=dict)
    sub_period: List[PeriodData] = field(default_factory=list)
    friend: List[PeriodData] = field(default_factory=list)
    place: List[PeriodData] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": dict(self.type),
            "sub_period": [p.to_dict() for p in self.sub_period],
            "friend": [p.to_dict() for p in self.friend],
            "place": [p.to_dict() for p in self.place],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "UsageGroups":
        return cls(
            type=dict(raw.get("type") or {}),
            sub_period=[PeriodData.from_dict(p) for p in raw.get("sub_period") or []],
            friend=[PeriodData.from_dict(p) for p in raw.get("friend") or []],
            place=[PeriodData.from_dict(p) for p in raw.get("place") or []],
        )


@dataclass(frozen=True)
class UsageStat:
    """
    Finalized statistic of one (section, period, period start).

    Identity is (owner, section_name, period, period_started_at);
    a later run overwrites by that key.
    """

    section_name: str
    period: str
    period_started_at: int
    quantity: int
    diff_from_previous: float
    groups: Optional[UsageGroups] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section_name": self.section_name,
            "period": self.period,
            "period_started_at": self.period_started_at,
            "quantity": self.quantity,
            "diff_from_previous": self.diff_from_previous,
            "groups": self.groups.to_dict() if self.groups else None,
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "UsageStat":
        groups = raw.get("groups")
        return cls(
            section_name=raw["section_name"],
            period=raw["period"],
            period_started_at=int(raw["period_started_at"]),
            quantity=int(raw["quantity"]),
            diff_from_previous=float(raw["diff_from_previous"]),
            groups=UsageGroups.from_dict(groups) if groups else None,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "UsageStat":
        return cls.from_dict(json.loads(data.decode("utf-8")))


__all__ = [
    "AggregationItem",
    "PeriodData",
    "UsageGroups",
    "UsageStat",
]
