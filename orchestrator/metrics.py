"""
Orchestrator - Job Metrics.

============================================================
RESPONSIBILITY
============================================================
Counters and gauges recorded around every job.

- In-flight gauge per task name
- Processed / failed counters per task name
- Max in-flight gauge (all tasks)
- Cumulative duration per task name

============================================================
THREAD SAFETY
============================================================
All updates take a re-entrant lock; handlers may report from
worker threads.

============================================================
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Dict


logger = logging.getLogger(__name__)


class JobMetrics:
    """Thread-safe job counters."""

    def __init__(self):
        self._lock = threading.RLock()
        self._in_flight: Dict[str, int] = defaultdict(int)
        self._processed: Dict[str, int] = defaultdict(int)
        self._failed: Dict[str, int] = defaultdict(int)
        self._duration: Dict[str, float] = defaultdict(float)
        self._max_in_flight = 0

    def before_job(self, name: str) -> None:
        with self._lock:
            self._in_flight[name] += 1
            total = sum(self._in_flight.values())
            if total > self._max_in_flight:
                self._max_in_flight = total

    def after_job(self, name: str, success: bool, duration_seconds: float = 0.0) -> None:
        with self._lock:
            self._in_flight[name] = max(0, self._in_flight[name] - 1)
            self._duration[name] += duration_seconds
            if success:
                self._processed[name] += 1
            else:
                self._failed[name] += 1

    def in_flight(self, name: str) -> int:
        with self._lock:
            return self._in_flight.get(name, 0)

    def processed(self, name: str) -> int:
        with self._lock:
            return self._processed.get(name, 0)

    def failed(self, name: str) -> int:
        with self._lock:
            return self._failed.get(name, 0)

    @property
    def max_in_flight(self) -> int:
        with self._lock:
            return self._max_in_flight

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            names = set(self._processed) | set(self._failed) | set(self._in_flight)
            return {
                "max_in_flight": self._max_in_flight,
                "tasks": {
                    name: {
                        "in_flight": self._in_flight.get(name, 0),
                        "processed": self._processed.get(name, 0),
                        "failed": self._failed.get(name, 0),
                        "duration_seconds": round(self._duration.get(name, 0.0), 3),
                    }
                    for name in sorted(names)
                },
            }


__all__ = ["JobMetrics"]
