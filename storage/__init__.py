"""
Storage Package.

This package manages all data persistence of the pipeline.

Modules:
- database: Engine, sessions and transaction scope
- models/: ORM models (accounts, archives, records, time-series)
- repositories/: Data access layer
- timeseries: Time-series key-value store
- blobs: Object storage (S3 and local filesystem)
"""

from storage.blobs import BlobStore, BlobStoreError, LocalBlobStore, S3BlobStore, create_blob_store
from storage.database import (
    SessionFactory,
    create_all_tables,
    create_database_engine,
    get_session_factory,
    transaction_scope,
)
from storage.timeseries import TimeSeriesItem, TimeSeriesStore

__all__ = [
    "BlobStore",
    "BlobStoreError",
    "LocalBlobStore",
    "S3BlobStore",
    "create_blob_store",
    "SessionFactory",
    "create_all_tables",
    "create_database_engine",
    "get_session_factory",
    "transaction_scope",
    "TimeSeriesItem",
    "TimeSeriesStore",
]
