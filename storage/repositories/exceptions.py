"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Defines repository-specific exceptions for proper error handling
and propagation. All database errors must be caught and wrapped
in these exceptions.

Every repository exception is a member of the pipeline's closed
error union: connection failures are transient, everything
else is fatal.

============================================================
"""

from typing import Any, Optional

from core.exceptions import ErrorKind, FatalError


class RepositoryException(FatalError):
    """
    Base exception for all repository operations.

    All repository-specific exceptions inherit from this class.
    Business layers can catch this for generic error handling.
    """

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(
            f"[{repository_name}] {operation}: {message}",
            context=dict(self.details),
        )


class RecordNotFoundError(RepositoryException):
    """Raised when a requested record does not exist."""

    def __init__(
        self,
        repository_name: str,
        record_id: Any,
        id_field: str = "id"
    ) -> None:
        super().__init__(
            message=f"Record with {id_field}={record_id} not found",
            repository_name=repository_name,
            operation="get",
            details={id_field: str(record_id)}
        )
        self.record_id = record_id
        self.id_field = id_field


class DuplicateRecordError(RepositoryException):
    """Raised when a unique constraint rejects an insert."""

    def __init__(
        self,
        repository_name: str,
        constraint_field: str,
        value: Any
    ) -> None:
        super().__init__(
            message=f"Duplicate record: {constraint_field}={value} already exists",
            repository_name=repository_name,
            operation="create",
            details={"field": constraint_field, "value": str(value)}
        )
        self.constraint_field = constraint_field
        self.value = value


class ActiveArchiveExistsError(DuplicateRecordError):
    """
    Raised when an account already has an archive in progress.

    At most one archive per account may be outside the terminal
    statuses at a time.
    """

    def __init__(self, repository_name: str, account_number: str, archive_id: int) -> None:
        super().__init__(
            repository_name=repository_name,
            constraint_field="account_number",
            value=account_number,
        )
        self.account_number = account_number
        self.archive_id = archive_id


class RepositoryConnectionError(RepositoryException):
    """
    Raised when database connection fails.

    Use for connection timeouts, pool exhaustion, etc.
    """

    kind = ErrorKind.TRANSIENT

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Database connection failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class QueryError(RepositoryException):
    """Raised when a query execution fails."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )
