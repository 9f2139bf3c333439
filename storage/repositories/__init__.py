"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to the relational store.
All database access MUST go through repository classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. One repository per domain (or tightly related set)
2. Session Injection: sessions are injected, not created internally
3. Explicit Methods: clear method names, affected-row counts on writes
4. Idempotent ingestion: insert-or-ignore on natural keys
5. Exception Handling: all DB errors wrapped in repository exceptions

============================================================
REPOSITORIES
============================================================
- AccountRepository: accounts, metadata, deleting flag
- ArchiveRepository: archives and their status
- RecordRepository: friends, posts, reactions, comments

============================================================
USAGE
============================================================

    from storage.database import transaction_scope
    from storage.repositories import ArchiveRepository

    with transaction_scope(session_factory) as session:
        archive = ArchiveRepository(session).get_or_raise(archive_id)

============================================================
"""

from storage.repositories.accounts import AccountRepository, ArchiveRepository
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import (
    ActiveArchiveExistsError,
    DuplicateRecordError,
    QueryError,
    RecordNotFoundError,
    RepositoryConnectionError,
    RepositoryException,
)
from storage.repositories.records import RecordRepository

__all__ = [
    "BaseRepository",
    "AccountRepository",
    "ArchiveRepository",
    "RecordRepository",
    "RepositoryException",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "ActiveArchiveExistsError",
    "RepositoryConnectionError",
    "QueryError",
]
