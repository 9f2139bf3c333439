"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- periods: Period math (day/week/month/year/decade starts, diff)
- clock: Unified time abstraction
- config: Environment driven configuration
- exceptions: Closed pipeline error taxonomy
- constants: System-wide constants and key builders
- logging_setup: Process-wide logging configuration
"""

from core.clock import ClockProtocol, MockClock, SystemClock
from core.config import PipelineConfig, load_config
from core.exceptions import (
    FatalError,
    PipelineError,
    TransientError,
    ValidationError,
    classify_exception,
)
from core.logging_setup import job_log_context, setup_logging

__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "PipelineConfig",
    "load_config",
    "PipelineError",
    "ValidationError",
    "TransientError",
    "FatalError",
    "classify_exception",
    "setup_logging",
    "job_log_context",
]
