"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the closed error taxonomy for the ingestion pipeline.

- Every job failure is expressed as exactly one PipelineError kind
- Validation errors carry the archive they invalidate
- Transient and fatal errors are reported, never routed to an archive

============================================================
EXCEPTION HIERARCHY
============================================================
PipelineError (base, closed)
├── ValidationError      archive_id + error code, terminal
├── TransientError       network / store hiccup, job marked failed
│   └── ExternalServiceError
└── FatalError           programming or configuration fault
    ├── ConfigurationError
    ├── TaskPayloadError
    └── StateTransitionError

============================================================
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp
from sqlalchemy.exc import DBAPIError, OperationalError


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


class ErrorKind(Enum):
    """The three members of the closed error union."""

    VALIDATION = "validation"
    TRANSIENT = "transient"
    FATAL = "fatal"


# ============================================================
# BASE EXCEPTION
# ============================================================

class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Only ValidationError, TransientError and FatalError (and their
    subclasses) may be raised. Handlers that see anything else wrap
    it through classify_exception().
    """

    kind: ErrorKind = ErrorKind.FATAL
    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_retryable(self) -> bool:
        """Transient errors may succeed when resubmitted."""
        return self.kind == ErrorKind.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# VALIDATION
# ============================================================

class ValidationError(PipelineError):
    """
    Terminal failure tied to one archive.

    The orchestrator's error handler drives the archive to
    `invalid` and records the code.
    """

    kind = ErrorKind.VALIDATION
    default_severity = Severity.LOW

    def __init__(
        self,
        archive_id: int,
        code: str,
        message: Optional[str] = None,
        **kwargs,
    ):
        self.archive_id = archive_id
        self.code = str(getattr(code, "value", code))

        context = kwargs.pop("context", {})
        context["archive_id"] = archive_id
        context["code"] = self.code

        super().__init__(message or self.code, context=context, **kwargs)


# ============================================================
# TRANSIENT
# ============================================================

class TransientError(PipelineError):
    """Temporary failure of network or storage I/O."""

    kind = ErrorKind.TRANSIENT
    default_severity = Severity.MEDIUM


class ExternalServiceError(TransientError):
    """An external HTTP service answered with an error."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["service"] = service
        if status_code is not None:
            context["status_code"] = status_code

        self.service = service
        self.status_code = status_code
        super().__init__(message, context=context, **kwargs)


# ============================================================
# FATAL
# ============================================================

class FatalError(PipelineError):
    """Failure that resubmitting the same job cannot fix."""

    kind = ErrorKind.FATAL
    default_severity = Severity.HIGH


class ConfigurationError(FatalError):
    """Error in configuration."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key
        super().__init__(message, context=context, **kwargs)


class TaskPayloadError(FatalError):
    """A job payload failed validation at enqueue time."""

    def __init__(self, message: str, task_name: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if task_name:
            context["task_name"] = task_name
        self.task_name = task_name
        super().__init__(message, context=context, **kwargs)


class StateTransitionError(FatalError):
    """Invalid state transition attempted."""

    def __init__(
        self,
        message: str,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if from_state:
            context["from_state"] = from_state
        if to_state:
            context["to_state"] = to_state
        super().__init__(message, context=context, **kwargs)


# ============================================================
# EXCEPTION UTILITIES
# ============================================================

TRANSIENT_EXCEPTION_TYPES = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
    TimeoutError,
    OperationalError,
)


def classify_exception(exc: BaseException) -> PipelineError:
    """
    Map any exception onto the closed PipelineError union.

    PipelineErrors are returned unchanged. Network and database
    connectivity failures become TransientError; everything else
    becomes FatalError.
    """
    if isinstance(exc, PipelineError):
        return exc

    if isinstance(exc, TRANSIENT_EXCEPTION_TYPES):
        return TransientError(f"{type(exc).__name__}: {exc}", cause=exc)

    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return TransientError(f"{type(exc).__name__}: {exc}", cause=exc)

    return FatalError(f"{type(exc).__name__}: {exc}", cause=exc)


__all__ = [
    "Severity",
    "ErrorKind",
    "PipelineError",
    "ValidationError",
    "TransientError",
    "ExternalServiceError",
    "FatalError",
    "ConfigurationError",
    "TaskPayloadError",
    "StateTransitionError",
    "TRANSIENT_EXCEPTION_TYPES",
    "classify_exception",
]
