"""
Shared fixtures for the pipeline tests.

============================================================
PURPOSE
============================================================
- File-backed SQLite relational store with every table created
- Local blob store under the test's tmp_path
- Async doubles of the external service clients
- Recording job enqueuer
- Archive zip builder

============================================================
"""

import hashlib
import io
import json
import zipfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from archives.state_machine import ArchiveStateMachine
from core.clock import MockClock
from core.config import PipelineConfig
from core.constants import ARCHIVE_TYPE_FACEBOOK, archive_blob_key, archive_data_prefix
from external.analysis import TASK_FINISHED
from pipeline.context import PipelineContext
from pipeline.parse import ParseArchiveStage
from storage.blobs import LocalBlobStore
from storage.database import (
    create_all_tables,
    create_database_engine,
    get_session_factory,
    transaction_scope,
)
from storage.repositories.accounts import AccountRepository, ArchiveRepository
from storage.timeseries import TimeSeriesStore


ACCOUNT = "acct-0001"


# ============================================================
# DOUBLES
# ============================================================

class RecordingEnqueuer:
    """Keeps every enqueued job instead of running it."""

    def __init__(self):
        self.jobs: List[Dict[str, Any]] = []

    def enqueue(self, payload, eta=None, delay=None):
        self.jobs.append({"payload": payload, "eta": eta, "delay": delay})
        return payload

    @property
    def payloads(self) -> List[Any]:
        return [job["payload"] for job in self.jobs]

    @property
    def tasks(self) -> List[str]:
        return [job["payload"].TASK for job in self.jobs]


def make_analysis_client() -> MagicMock:
    client = MagicMock(name="AnalysisClient")
    client.register_data_owner = AsyncMock()
    client.submit = AsyncMock(return_value="task-1")
    client.status = AsyncMock(return_value=TASK_FINISHED)
    client.first_record = AsyncMock(return_value=None)
    client.last_record = AsyncMock(return_value=None)
    client.sentiment_for_week = AsyncMock(return_value=0.0)
    client.close = AsyncMock()
    return client


def make_notification_client() -> MagicMock:
    client = MagicMock(name="NotificationClient")
    client.notify = AsyncMock(return_value=True)
    client.close = AsyncMock()
    return client


def make_geocoding_client() -> MagicMock:
    client = MagicMock(name="GeocodingClient")
    client.reverse_geocode = AsyncMock(return_value="fr")
    client.close = AsyncMock()
    return client


# ============================================================
# ARCHIVE BUILDER
# ============================================================

def build_archive_bytes(
    files: Dict[str, Any],
    directories: Optional[List[str]] = None,
) -> bytes:
    """
    Zip bytes of an archive.

    Args:
        files: Entry name -> JSON document (dict/list) or raw bytes
        directories: Directory entries to add (default: the three
            required folders)
    """
    if directories is None:
        directories = ["photos_and_videos/", "posts/", "friends/"]

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for directory in directories:
            archive.writestr(directory, b"")
        for name, content in files.items():
            if isinstance(content, bytes):
                archive.writestr(name, content)
            else:
                archive.writestr(name, json.dumps(content))
    return buffer.getvalue()


# Sunday 2021-01-03 00:00:00 UTC
T_WEEK1 = 1609632000

SAMPLE_ARCHIVE_FILES: Dict[str, Any] = {
    "friends/friends.json": {
        "friends": [
            {"timestamp": 1500000000, "name": "Alice"},
            {"timestamp": 1500000100, "name": "Bob"},
        ],
    },
    "posts/your_posts_1.json": [
        {"timestamp": T_WEEK1 + 3600, "data": [{"post": "hello"}]},
        {
            "timestamp": T_WEEK1 + 7200,
            "attachments": [{"data": [{"media": {"uri": "photos_and_videos/a.jpg"}}]}],
            "tags": ["Alice", "Carol"],
        },
        {
            "timestamp": T_WEEK1 + 86400,
            "data": [{"post": "at the cafe"}],
            "attachments": [{"data": [{"place": {
                "name": "Cafe",
                "coordinate": {"latitude": 48.85, "longitude": 2.35},
            }}]}],
        },
        {
            "timestamp": T_WEEK1 + 8 * 86400,
            "attachments": [{"data": [{"external_context": {"url": "https://example.com"}}]}],
        },
    ],
    "likes_and_reactions/posts_and_comments.json": {
        "reactions": [
            {
                "timestamp": T_WEEK1 + 100,
                "title": "Alice liked a post",
                "data": [{"reaction": {"reaction": "LIKE", "actor": "Me"}}],
            },
            {
                "timestamp": T_WEEK1 + 200,
                "title": "Bob loved a post",
                "data": [{"reaction": {"reaction": "LOVE", "actor": "Me"}}],
            },
        ],
    },
    "comments/comments.json": {
        "comments": [
            {
                "timestamp": T_WEEK1 + 300,
                "title": "Me commented",
                "data": [{"comment": {"timestamp": T_WEEK1 + 300, "comment": "nice", "author": "Me"}}],
            },
        ],
    },
    "photos_and_videos/a.jpg": b"\xff\xd8\xff jpeg bytes",
}


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def engine(tmp_path):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'pipeline.db'}")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def timeseries(session_factory):
    return TimeSeriesStore(session_factory)


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"))


@pytest.fixture
def clock():
    return MockClock(datetime(2024, 6, 1, tzinfo=timezone.utc))


@pytest.fixture
def pipeline_config(tmp_path):
    config = PipelineConfig()
    config.archive.workdir = str(tmp_path / "work")
    config.blobs.local_root = str(tmp_path / "blobs")
    config.orchestrator.concurrency = 2
    config.orchestrator.scheduler_tick_seconds = 0.01
    config.orchestrator.shutdown_timeout_seconds = 5.0
    return config


@pytest.fixture
def enqueuer():
    return RecordingEnqueuer()


@pytest.fixture
def context(pipeline_config, session_factory, timeseries, blobs, clock, enqueuer):
    return PipelineContext(
        config=pipeline_config,
        session_factory=session_factory,
        timeseries=timeseries,
        blobs=blobs,
        analysis=make_analysis_client(),
        notifications=make_notification_client(),
        geocoder=make_geocoding_client(),
        clock=clock,
        enqueuer=enqueuer,
    )


@pytest.fixture
def sample_archive() -> bytes:
    return build_archive_bytes(SAMPLE_ARCHIVE_FILES)


@pytest.fixture
def archive_id(session_factory) -> int:
    """A `created` archive of ACCOUNT."""
    with transaction_scope(session_factory) as session:
        AccountRepository(session).get_or_create(ACCOUNT)
        archive = ArchiveRepository(session).create(
            ACCOUNT, source_url="https://www.dropbox.com/s/abc/archive.zip"
        )
        return archive.id


@pytest.fixture
def load_archive(session_factory):
    """Reads an archive row in a fresh transaction."""
    def _load(archive_id: int):
        with transaction_scope(session_factory) as session:
            return ArchiveRepository(session).get_or_raise(archive_id)
    return _load


@pytest.fixture
def stored_archive(session_factory, blobs, archive_id, sample_archive) -> int:
    """The sample archive uploaded to the blob store, archive `stored`."""
    key = archive_blob_key(ACCOUNT, ARCHIVE_TYPE_FACEBOOK, archive_id, "archive.zip")
    blobs.upload(key, io.BytesIO(sample_archive))

    machine = ArchiveStateMachine(archive_id, session_factory)
    machine.mark_submitted()
    machine.mark_stored(hashlib.sha3_512(sample_archive).hexdigest(), key, size_bytes=len(sample_archive))
    return archive_id


@pytest.fixture
def parsed_archive(context, session_factory, stored_archive, sample_archive, tmp_path) -> int:
    """The sample archive parsed into records, archive `processing`."""
    ArchiveStateMachine(stored_archive, session_factory).mark_processing()

    path = tmp_path / "parsed.zip"
    path.write_bytes(sample_archive)
    ParseArchiveStage(context).parse_file(
        ACCOUNT,
        stored_archive,
        str(path),
        archive_data_prefix(ACCOUNT, ARCHIVE_TYPE_FACEBOOK, stored_archive),
    )
    return stored_archive
