"""
Pipeline - Parse Stage.

============================================================
PURPOSE
============================================================
Decodes a stored archive into relational records and uploads
its media and files.

ORDER:
    friends -> posts -> reactions -> comments -> media -> files

============================================================
PARTIAL FAILURE
============================================================
Every entity file is written in its own transaction. A failing
file is logged and counted and the stage moves on, except for
friends and posts: without them nothing downstream is
meaningful, so the archive is rejected with
FAIL_TO_PARSE_ARCHIVE. So is any failure to fetch the stored
blob or to read the archive record.

============================================================
"""

import asyncio
import logging
import os
import posixpath
import tempfile
import uuid
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from archives.decoder import (
    COMMENTS_PATTERN,
    FILES_PATTERN,
    FRIENDS_PATTERN,
    MEDIA_PATTERN,
    POSTS_PATTERN,
    REACTIONS_PATTERN,
    ArchiveDecoder,
    EntityPattern,
    InvalidArchiveShapeError,
)
from archives.errors import ArchiveErrorCode
from archives.schema import CommentEntry, MediaEntry, PostEntry, ReactionEntry
from core.constants import archive_data_prefix
from core.exceptions import ValidationError
from core.periods import timestamp_to_date_string, timestamp_to_weekday
from pipeline.stage import Stage, failing_as
from pipeline.tasks import TASK_PARSE_ARCHIVE, ParseArchivePayload, SubmitArchivePayload
from storage.database import transaction_scope
from storage.repositories.accounts import ArchiveRepository
from storage.repositories.records import RecordRepository


logger = logging.getLogger(__name__)


REQUIRED_KINDS = (FRIENDS_PATTERN.name, POSTS_PATTERN.name)


@dataclass
class ParseReport:
    """Outcome of parsing one archive."""

    archive_id: int
    records: Dict[str, int] = field(default_factory=dict)
    """Records written per entity kind."""

    uploaded: int = 0
    """Media and other files uploaded."""

    failures: Dict[str, int] = field(default_factory=dict)
    """Failed entity files (or uploads) per kind."""

    conflicts: int = 0
    """Posts and comments colliding with an existing timestamp."""

    def add_records(self, kind: str, count: int) -> None:
        self.records[kind] = self.records.get(kind, 0) + count

    def add_failure(self, kind: str) -> None:
        self.failures[kind] = self.failures.get(kind, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "archive_id": self.archive_id,
            "records": dict(self.records),
            "uploaded": self.uploaded,
            "failures": dict(self.failures),
            "conflicts": self.conflicts,
        }


# ============================================================
# ROW BUILDERS
# ============================================================

def _dated(owner: str, timestamp: int) -> Dict[str, Any]:
    return {
        "id": uuid.uuid4(),
        "data_owner_id": owner,
        "timestamp": timestamp,
        "date": timestamp_to_date_string(timestamp),
        "weekday": timestamp_to_weekday(timestamp),
    }


def post_row(owner: str, entry: PostEntry) -> Dict[str, Any]:
    row = _dated(owner, entry.timestamp)
    context = entry.external_context
    row.update({
        "post": entry.post or None,
        "title": entry.title or None,
        "update_timestamp": entry.update_timestamp,
        "external_context_url": context.url if context and context.url else None,
        "external_context_name": context.name if context and context.name else None,
        "external_context_source": context.source if context and context.source else None,
        "event_name": entry.event.name if entry.event else None,
        "event_start_timestamp": entry.event.start_timestamp if entry.event else None,
        "event_end_timestamp": entry.event.end_timestamp if entry.event else None,
        "media_attached": bool(entry.media),
    })
    return row


def comment_row(owner: str, entry: CommentEntry) -> Dict[str, Any]:
    row = _dated(owner, entry.timestamp)
    context = entry.external_context
    row.update({
        "author": entry.author or None,
        "comment": entry.comment or None,
        "title": entry.title or None,
        "external_context_url": context.url if context and context.url else None,
        "external_context_name": context.name if context and context.name else None,
        "external_context_source": context.source if context and context.source else None,
        "media_attached": bool(entry.media),
    })
    return row


def reaction_row(owner: str, entry: ReactionEntry) -> Dict[str, Any]:
    row = _dated(owner, entry.timestamp)
    row.update({
        "title": entry.title or None,
        "actor": entry.actor or None,
        "reaction": entry.reaction,
    })
    return row


def media_row(owner: str, parent_column: str, parent_id: uuid.UUID, media: MediaEntry) -> Dict[str, Any]:
    extension = posixpath.splitext(media.uri)[1].lower()
    return {
        parent_column: parent_id,
        "data_owner_id": owner,
        "timestamp": media.creation_timestamp,
        "media_index": media.index,
        "media_uri": media.uri,
        "thumbnail_uri": media.thumbnail_uri,
        "filename_extension": extension or None,
    }


# ============================================================
# ENTITY WRITERS
# ============================================================

def write_friends(repository: RecordRepository, owner: str, entries: List[Any]) -> int:
    return repository.insert_friends(owner, ((f.name, f.timestamp) for f in entries))


def write_posts(repository: RecordRepository, owner: str, entries: List[PostEntry], report: ParseReport) -> int:
    """
    Insert posts.

    Plain posts go in bulk, ignoring timestamps already present.
    Posts with attachments are upserted one by one; a collision
    flags the stored post and its places and tags are not added
    a second time.
    """
    simple = [post_row(owner, e) for e in entries if not e.has_attachments]
    repository.bulk_insert_posts(simple)

    friends = repository.friend_ids(owner)
    for entry in entries:
        if not entry.has_attachments:
            continue

        post_id, conflicted = repository.upsert_post(post_row(owner, entry))
        repository.upsert_post_media([media_row(owner, "post_id", post_id, m) for m in entry.media])

        if conflicted:
            report.conflicts += 1
            continue

        repository.insert_places([
            {
                "post_id": post_id,
                "data_owner_id": owner,
                "name": place.name or None,
                "address": place.address or None,
                "latitude": place.latitude,
                "longitude": place.longitude,
            }
            for place in entry.places
        ])
        # Unknown friend names are dropped
        repository.insert_tags([
            {
                "post_id": post_id,
                "data_owner_id": owner,
                "friend_id": friends[name],
                "friend_name": name,
            }
            for name in entry.tags
            if name in friends
        ])

    return len(entries)


def write_reactions(repository: RecordRepository, owner: str, entries: List[ReactionEntry]) -> int:
    return repository.bulk_insert_reactions([reaction_row(owner, e) for e in entries])


def write_comments(
    repository: RecordRepository,
    owner: str,
    entries: List[CommentEntry],
    report: ParseReport,
) -> int:
    repository.bulk_insert_comments([comment_row(owner, e) for e in entries if not e.has_attachments])

    for entry in entries:
        if not entry.has_attachments:
            continue
        comment_id, conflicted = repository.upsert_comment(comment_row(owner, entry))
        repository.upsert_comment_media([media_row(owner, "comment_id", comment_id, m) for m in entry.media])
        if conflicted:
            report.conflicts += 1

    return len(entries)


# ============================================================
# STAGE
# ============================================================

class ParseArchiveStage(Stage):
    """Decode a stored archive into records."""

    TASK = TASK_PARSE_ARCHIVE
    PAYLOAD = ParseArchivePayload

    async def run(self, payload: ParseArchivePayload) -> Dict[str, Any]:
        archive_id = payload.archive_id
        machine = self.context.state_machine(archive_id)
        machine.mark_processing()

        with failing_as(archive_id, ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE):
            with transaction_scope(self.context.session_factory) as session:
                archive = ArchiveRepository(session).get_or_raise(archive_id)
                blob_key = archive.blob_key
                archive_type = archive.archive_type

            if not blob_key:
                raise ValidationError(archive_id, ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE, "archive has no stored blob")

            workdir = self.context.config.archive.workdir
            os.makedirs(workdir, exist_ok=True)
            fd, path = tempfile.mkstemp(prefix="parse-", suffix=".zip", dir=workdir)
            os.close(fd)
            try:
                await asyncio.to_thread(self._download, blob_key, path)
                report = await asyncio.to_thread(
                    self.parse_file,
                    payload.account_number,
                    archive_id,
                    path,
                    archive_data_prefix(payload.account_number, archive_type, archive_id),
                )
            finally:
                os.remove(path)

            self._record_time_range(payload.account_number, archive_id)

        logger.info(
            f"Parsed archive {archive_id}: records={report.records} "
            f"uploaded={report.uploaded} failures={report.failures} conflicts={report.conflicts}"
        )
        self.enqueue_next(SubmitArchivePayload(payload.account_number, archive_id))
        return report.to_dict()

    def _download(self, key: str, path: str) -> None:
        with open(path, "wb") as fh:
            self.context.blobs.download(key, fh)

    def parse_file(self, owner: str, archive_id: int, path: str, data_prefix: str) -> ParseReport:
        """
        Parse a local archive file.

        Raises:
            ValidationError: If the file is not a valid archive or
                its friends or posts cannot be stored
        """
        report = ParseReport(archive_id=archive_id)

        try:
            decoder = ArchiveDecoder(path)
        except zipfile.BadZipFile as e:
            raise ValidationError(archive_id, ArchiveErrorCode.INVALID_ARCHIVE, str(e)) from e

        with decoder:
            try:
                decoder.validate_shape()
            except InvalidArchiveShapeError as e:
                raise ValidationError(archive_id, ArchiveErrorCode.INVALID_ARCHIVE, str(e)) from e

            for pattern in (FRIENDS_PATTERN, POSTS_PATTERN, REACTIONS_PATTERN, COMMENTS_PATTERN):
                self._parse_structured(decoder, pattern, owner, archive_id, report)

            for pattern in (MEDIA_PATTERN, FILES_PATTERN):
                self._upload_files(decoder, pattern, data_prefix, report)

        return report

    def _parse_structured(
        self,
        decoder: ArchiveDecoder,
        pattern: EntityPattern,
        owner: str,
        archive_id: int,
        report: ParseReport,
    ) -> None:
        batches = decoder.decode(pattern)
        while True:
            try:
                batch = next(batches)
            except StopIteration:
                return
            except Exception as e:
                # A file that cannot be decoded ends the kind
                self._fail(pattern.name, f"decode failed: {e}", archive_id, report)
                return

            try:
                with transaction_scope(self.context.session_factory) as session:
                    repository = RecordRepository(session)
                    count = self._write(repository, pattern.name, owner, batch.entries, report)
                report.add_records(pattern.name, count)
                logger.debug(f"Stored {count} {pattern.name} from {batch.source}")
            except Exception as e:
                self._fail(pattern.name, f"{batch.source}: {e}", archive_id, report)

    def _write(
        self,
        repository: RecordRepository,
        kind: str,
        owner: str,
        entries: List[Any],
        report: ParseReport,
    ) -> int:
        if kind == FRIENDS_PATTERN.name:
            return write_friends(repository, owner, entries)
        if kind == POSTS_PATTERN.name:
            return write_posts(repository, owner, entries, report)
        if kind == REACTIONS_PATTERN.name:
            return write_reactions(repository, owner, entries)
        if kind == COMMENTS_PATTERN.name:
            return write_comments(repository, owner, entries, report)
        raise ValueError(f"Unknown entity kind: {kind}")

    def _fail(self, kind: str, reason: str, archive_id: int, report: ParseReport) -> None:
        report.add_failure(kind)
        logger.error(f"Archive {archive_id}: failed to parse {kind}: {reason}")
        if kind in REQUIRED_KINDS:
            raise ValidationError(
                archive_id,
                ArchiveErrorCode.FAIL_TO_PARSE_ARCHIVE,
                f"failed to parse {kind}: {reason}",
            )

    def _upload_files(
        self,
        decoder: ArchiveDecoder,
        pattern: EntityPattern,
        data_prefix: str,
        report: ParseReport,
    ) -> None:
        for name in decoder.raw_files(pattern):
            key = f"{data_prefix}/{name}"
            try:
                with decoder.open_member(name) as member:
                    self.context.blobs.upload(key, member)
                report.uploaded += 1
            except Exception as e:
                report.add_failure(pattern.name)
                logger.error(f"Failed to upload {name} to {key}: {e}")

    def _record_time_range(self, owner: str, archive_id: int) -> None:
        with transaction_scope(self.context.session_factory) as session:
            span = RecordRepository(session).post_time_range(owner)
            if span is None:
                return
            first, last = span
            ArchiveRepository(session).update_fields(
                archive_id,
                started_at=datetime.fromtimestamp(first, tz=timezone.utc),
                ended_at=datetime.fromtimestamp(last, tz=timezone.utc),
            )


__all__ = [
    "ParseReport",
    "ParseArchiveStage",
    "post_row",
    "comment_row",
    "reaction_row",
    "media_row",
]
