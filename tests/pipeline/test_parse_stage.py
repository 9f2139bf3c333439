"""
Tests for the parse stage.

============================================================
PURPOSE
============================================================
1. Every entity kind is stored
2. Tags of unknown friends are dropped
3. Media files are uploaded under the archive data prefix
4. Re-parsing flags conflicts instead of duplicating
5. Friends/posts failures reject the archive, others do not
6. A stored blob that cannot be fetched rejects the archive

============================================================
"""

import os
from datetime import timezone

import pytest
from sqlalchemy import select

from archives.errors import ArchiveErrorCode
from conftest import ACCOUNT, SAMPLE_ARCHIVE_FILES, T_WEEK1, build_archive_bytes
from core.constants import ARCHIVE_TYPE_FACEBOOK, archive_data_prefix
from core.exceptions import ValidationError
from pipeline.parse import ParseArchiveStage
from pipeline.tasks import ParseArchivePayload, SubmitArchivePayload
from storage.database import transaction_scope
from storage.models.archive import ArchiveStatus
from storage.models.records import (
    CommentRecord,
    FriendRecord,
    PlaceRecord,
    PostMediaRecord,
    PostRecord,
    ReactionRecord,
    TagRecord,
)
from storage.repositories.records import RecordRepository


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def stage(context):
    return ParseArchiveStage(context)


@pytest.fixture
def write_zip(tmp_path):
    def _write(content: bytes) -> str:
        path = tmp_path / "input.zip"
        path.write_bytes(content)
        return str(path)
    return _write


@pytest.fixture
def count(session_factory):
    def _count(model) -> int:
        with transaction_scope(session_factory) as session:
            return RecordRepository(session).count_for_owner(model, ACCOUNT)
    return _count


def _utc_timestamp(value) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _prefix(archive_id: int) -> str:
    return archive_data_prefix(ACCOUNT, ARCHIVE_TYPE_FACEBOOK, archive_id)


# ============================================================
# STAGE
# ============================================================

class TestParseArchiveStage:
    """Tests for ParseArchiveStage.run."""

    @pytest.mark.asyncio
    async def test_parses_sample_archive(self, stage, stored_archive, enqueuer, blobs, count, load_archive):
        result = await stage(ParseArchivePayload(ACCOUNT, stored_archive))

        assert result["records"] == {"friends": 2, "posts": 4, "reactions": 2, "comments": 1}
        assert result["uploaded"] == 1
        assert result["failures"] == {}
        assert result["conflicts"] == 0

        assert count(FriendRecord) == 2
        assert count(PostRecord) == 4
        assert count(ReactionRecord) == 2
        assert count(CommentRecord) == 1
        assert count(PostMediaRecord) == 1
        assert count(PlaceRecord) == 1

        assert blobs.list_prefix(_prefix(stored_archive)) == [
            f"{_prefix(stored_archive)}/photos_and_videos/a.jpg"
        ]

        archive = load_archive(stored_archive)
        assert archive.archive_status == ArchiveStatus.PROCESSING
        assert _utc_timestamp(archive.started_at) == T_WEEK1 + 3600
        assert _utc_timestamp(archive.ended_at) == T_WEEK1 + 8 * 86400

        assert enqueuer.payloads == [SubmitArchivePayload(ACCOUNT, stored_archive)]

    @pytest.mark.asyncio
    async def test_unknown_friend_tags_dropped(self, stage, stored_archive, session_factory):
        await stage(ParseArchivePayload(ACCOUNT, stored_archive))

        with transaction_scope(session_factory) as session:
            names = session.execute(select(TagRecord.friend_name)).scalars().all()
        assert names == ["Alice"]

    @pytest.mark.asyncio
    async def test_missing_blob_fails_parse(self, stage, stored_archive, blobs, enqueuer, pipeline_config):
        blobs.delete_by_prefix(f"{ACCOUNT}/")

        with pytest.raises(ValidationError) as exc_info:
            await stage(ParseArchivePayload(ACCOUNT, stored_archive))

        assert exc_info.value.code == ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE.value
        assert "No such blob" in exc_info.value.message
        assert enqueuer.payloads == []
        assert os.listdir(pipeline_config.archive.workdir) == []


# ============================================================
# PARSE FILE
# ============================================================

class TestParseFile:
    """Tests for ParseArchiveStage.parse_file."""

    def test_reparse_flags_conflicts(self, stage, archive_id, write_zip, sample_archive, count):
        path = write_zip(sample_archive)
        stage.parse_file(ACCOUNT, archive_id, path, _prefix(archive_id))

        report = stage.parse_file(ACCOUNT, archive_id, path, _prefix(archive_id))

        # Two posts with attachments collide with themselves
        assert report.conflicts == 2
        assert count(PostRecord) == 4
        assert count(PlaceRecord) == 1
        assert count(TagRecord) == 1
        assert count(PostMediaRecord) == 1

    def test_missing_folder_is_invalid_archive(self, stage, archive_id, write_zip):
        # Without the media entry no photos_and_videos/ folder remains
        path = write_zip(build_archive_bytes(
            {k: v for k, v in SAMPLE_ARCHIVE_FILES.items() if not k.startswith("photos_and_videos/")},
            directories=["posts/", "friends/"],
        ))

        with pytest.raises(ValidationError) as exc_info:
            stage.parse_file(ACCOUNT, archive_id, path, _prefix(archive_id))

        assert exc_info.value.code == ArchiveErrorCode.INVALID_ARCHIVE.value

    def test_not_a_zip(self, stage, archive_id, write_zip):
        with pytest.raises(ValidationError) as exc_info:
            stage.parse_file(ACCOUNT, archive_id, write_zip(b"not a zip"), _prefix(archive_id))

        assert exc_info.value.code == "INVALID_ARCHIVE"

    def test_broken_posts_reject_archive(self, stage, archive_id, write_zip):
        files = dict(SAMPLE_ARCHIVE_FILES)
        files["posts/your_posts_1.json"] = [{"title": "no timestamp"}]

        with pytest.raises(ValidationError) as exc_info:
            stage.parse_file(ACCOUNT, archive_id, write_zip(build_archive_bytes(files)), _prefix(archive_id))

        assert exc_info.value.code == "FAIL_TO_PARSE_ARCHIVE"

    def test_broken_reactions_are_counted(self, stage, archive_id, write_zip, count):
        files = dict(SAMPLE_ARCHIVE_FILES)
        files["likes_and_reactions/posts_and_comments.json"] = {"reactions": "nope"}

        report = stage.parse_file(ACCOUNT, archive_id, write_zip(build_archive_bytes(files)), _prefix(archive_id))

        assert report.failures == {"reactions": 1}
        assert "reactions" not in report.records
        assert count(PostRecord) == 4
        assert count(ReactionRecord) == 0

    def test_mojibake_repaired_on_store(self, stage, archive_id, write_zip, session_factory):
        files = dict(SAMPLE_ARCHIVE_FILES)
        files["friends/friends.json"] = {"friends": [{"timestamp": 1, "name": "RenÃ©"}]}

        stage.parse_file(ACCOUNT, archive_id, write_zip(build_archive_bytes(files)), _prefix(archive_id))

        with transaction_scope(session_factory) as session:
            assert list(RecordRepository(session).friend_ids(ACCOUNT)) == ["René"]
