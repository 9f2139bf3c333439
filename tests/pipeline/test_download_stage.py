"""
Tests for archive submission, download and upload acceptance.

============================================================
PURPOSE
============================================================
1. Share links are resolved before the fetch
2. A valid archive is stored and its fingerprint recorded
3. Bad links, bad content and bad shapes fail the archive
4. Submission creates the archive and enqueues the download
5. Presigned uploads are adopted
6. Any download failure rejects the archive
7. fetch_archive against a live server, including the Google
   Drive confirm replay

============================================================
"""

import hashlib
import io
import os
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from archives.errors import ArchiveErrorCode
from conftest import ACCOUNT, build_archive_bytes
from core.constants import ARCHIVE_TYPE_FACEBOOK, archive_blob_key
from core.exceptions import ExternalServiceError, ValidationError
from pipeline.download import (
    AcceptUploadStage,
    DownloadArchiveStage,
    InvalidContentError,
    acknowledge_upload,
    fetch_archive,
    fingerprint_file,
    request_archive_upload,
    submit_archive_url,
)
from pipeline.tasks import (
    TASK_PARSE_ARCHIVE,
    AcceptUploadPayload,
    DownloadArchivePayload,
    ParseArchivePayload,
)
from storage.blobs import BlobStoreError
from storage.database import transaction_scope
from storage.models.archive import ArchiveStatus
from storage.repositories.accounts import ArchiveRepository
from storage.repositories.exceptions import ActiveArchiveExistsError


DROPBOX_URL = "https://www.dropbox.com/s/abc/archive.zip"


# ============================================================
# FIXTURES
# ============================================================

def fake_fetch(content: bytes) -> AsyncMock:
    """fetch_archive double writing the given bytes."""
    async def _fetch(url, destination, cookie="", chunk_size=0, timeout_seconds=0.0):
        destination.write(content)
        return hashlib.sha3_512(content).hexdigest(), len(content)
    return AsyncMock(side_effect=_fetch)


def _blob(blobs, key: str) -> bytes:
    buffer = io.BytesIO()
    blobs.download(key, buffer)
    return buffer.getvalue()


# ============================================================
# DOWNLOAD STAGE
# ============================================================

class TestDownloadArchiveStage:
    """Tests for DownloadArchiveStage."""

    @pytest.mark.asyncio
    async def test_stores_valid_archive(self, context, archive_id, sample_archive, load_archive, enqueuer, blobs):
        stage = DownloadArchiveStage(context)
        fetch = fake_fetch(sample_archive)

        with patch("pipeline.download.fetch_archive", new=fetch):
            result = await stage(DownloadArchivePayload(ACCOUNT, archive_id, url=DROPBOX_URL))

        assert fetch.await_args.args[0] == "https://dl.dropboxusercontent.com/s/abc/archive.zip"

        key = archive_blob_key(ACCOUNT, ARCHIVE_TYPE_FACEBOOK, archive_id, "archive.zip")
        assert result == {"blob_key": key, "size_bytes": len(sample_archive)}
        assert _blob(blobs, key) == sample_archive

        archive = load_archive(archive_id)
        assert archive.archive_status == ArchiveStatus.STORED
        assert archive.content_hash == hashlib.sha3_512(sample_archive).hexdigest()
        assert archive.size_bytes == len(sample_archive)

        assert enqueuer.payloads == [ParseArchivePayload(ACCOUNT, archive_id)]

    @pytest.mark.asyncio
    async def test_cookie_forwarded(self, context, archive_id, sample_archive):
        fetch = fake_fetch(sample_archive)

        with patch("pipeline.download.fetch_archive", new=fetch):
            await DownloadArchiveStage(context)(
                DownloadArchivePayload(ACCOUNT, archive_id, url=DROPBOX_URL, cookie="sid=1")
            )

        assert fetch.await_args.kwargs["cookie"] == "sid=1"

    @pytest.mark.asyncio
    async def test_unrecognized_google_link(self, context, archive_id, enqueuer):
        fetch = fake_fetch(b"")

        with patch("pipeline.download.fetch_archive", new=fetch):
            with pytest.raises(ValidationError) as exc_info:
                await DownloadArchiveStage(context)(
                    DownloadArchivePayload(ACCOUNT, archive_id, url="https://drive.google.com/open")
                )

        assert exc_info.value.code == ArchiveErrorCode.FAIL_TO_DOWNLOAD_ARCHIVE.value
        fetch.assert_not_awaited()
        assert enqueuer.jobs == []

    @pytest.mark.asyncio
    async def test_invalid_content(self, context, archive_id):
        fetch = AsyncMock(side_effect=InvalidContentError("invalid content: text/html"))

        with patch("pipeline.download.fetch_archive", new=fetch):
            with pytest.raises(ValidationError) as exc_info:
                await DownloadArchiveStage(context)(DownloadArchivePayload(ACCOUNT, archive_id, url=DROPBOX_URL))

        assert exc_info.value.code == "FAIL_TO_DOWNLOAD_ARCHIVE"

    @pytest.mark.asyncio
    async def test_missing_folders(self, context, archive_id, blobs, pipeline_config, load_archive):
        content = build_archive_bytes({}, directories=["posts/", "friends/"])

        with patch("pipeline.download.fetch_archive", new=fake_fetch(content)):
            with pytest.raises(ValidationError) as exc_info:
                await DownloadArchiveStage(context)(DownloadArchivePayload(ACCOUNT, archive_id, url=DROPBOX_URL))

        assert exc_info.value.code == "INVALID_ARCHIVE"
        assert blobs.list_prefix(f"{ACCOUNT}/") == []
        # Temporary download removed
        assert os.listdir(pipeline_config.archive.workdir) == []
        # The stage leaves the invalid transition to the error handler
        assert load_archive(archive_id).archive_status == ArchiveStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_http_failure_fails_download(self, context, archive_id, enqueuer, pipeline_config):
        fetch = AsyncMock(side_effect=ExternalServiceError("status 404", service="archive_download", status_code=404))

        with patch("pipeline.download.fetch_archive", new=fetch):
            with pytest.raises(ValidationError) as exc_info:
                await DownloadArchiveStage(context)(DownloadArchivePayload(ACCOUNT, archive_id, url=DROPBOX_URL))

        assert exc_info.value.code == "FAIL_TO_DOWNLOAD_ARCHIVE"
        assert isinstance(exc_info.value.cause, ExternalServiceError)
        assert enqueuer.jobs == []
        assert os.listdir(pipeline_config.archive.workdir) == []

    @pytest.mark.asyncio
    async def test_blob_upload_failure_fails_download(self, context, archive_id, sample_archive, blobs):
        upload = MagicMock(side_effect=BlobStoreError("Upload failed: disk full"))

        with patch("pipeline.download.fetch_archive", new=fake_fetch(sample_archive)):
            with patch.object(blobs, "upload", new=upload):
                with pytest.raises(ValidationError) as exc_info:
                    await DownloadArchiveStage(context)(
                        DownloadArchivePayload(ACCOUNT, archive_id, url=DROPBOX_URL)
                    )

        assert exc_info.value.code == "FAIL_TO_DOWNLOAD_ARCHIVE"
        assert "disk full" in exc_info.value.message


# ============================================================
# FETCH
# ============================================================

@pytest.fixture
def seen() -> Dict[str, Any]:
    """What the confirm request carried."""
    return {}


@pytest_asyncio.fixture
async def archive_server(sample_archive, seen):
    """HTTP server answering like the archive hosts do."""

    async def archive(request):
        return web.Response(body=sample_archive, content_type="application/zip")

    async def missing(request):
        return web.Response(status=404, text="gone")

    async def page(request):
        return web.Response(text="<html>sign in</html>", content_type="text/html")

    async def drive(request):
        if request.query.get("confirm") == "tok":
            seen["cookie"] = request.headers.get("Cookie", "")
            return web.Response(body=sample_archive, content_type="application/octet-stream")
        response = web.Response(text="<html>virus scan warning</html>", content_type="text/html")
        response.set_cookie("download_warning_abc", "tok")
        return response

    app = web.Application()
    app.router.add_get("/archive.zip", archive)
    app.router.add_get("/missing.zip", missing)
    app.router.add_get("/page", page)
    app.router.add_get("/uc", drive)

    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


class TestFetchArchive:
    """Tests for fetch_archive against a live HTTP server."""

    @pytest.mark.asyncio
    async def test_streams_and_fingerprints(self, archive_server, sample_archive):
        destination = io.BytesIO()

        digest, size = await fetch_archive(
            str(archive_server.make_url("/archive.zip")), destination, chunk_size=7
        )

        assert destination.getvalue() == sample_archive
        assert digest == hashlib.sha3_512(sample_archive).hexdigest()
        assert size == len(sample_archive)

    @pytest.mark.asyncio
    async def test_error_status(self, archive_server):
        with pytest.raises(ExternalServiceError) as exc_info:
            await fetch_archive(str(archive_server.make_url("/missing.zip")), io.BytesIO())

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_html_is_not_an_archive(self, archive_server):
        destination = io.BytesIO()

        with pytest.raises(InvalidContentError):
            await fetch_archive(str(archive_server.make_url("/page")), destination)

        assert destination.getvalue() == b""

    @pytest.mark.asyncio
    async def test_drive_warning_replayed_with_confirm_cookie(self, archive_server, seen, sample_archive):
        destination = io.BytesIO()
        url = str(archive_server.make_url("/uc?export=download&id=abc"))

        with patch("pipeline.download.is_google_drive", return_value=True):
            digest, size = await fetch_archive(url, destination)

        assert "download_warning_abc=tok" in seen["cookie"]
        assert destination.getvalue() == sample_archive
        assert digest == hashlib.sha3_512(sample_archive).hexdigest()

    @pytest.mark.asyncio
    async def test_drive_warning_ignored_for_other_hosts(self, archive_server, seen):
        url = str(archive_server.make_url("/uc?export=download&id=abc"))

        with pytest.raises(InvalidContentError):
            await fetch_archive(url, io.BytesIO())

        assert "cookie" not in seen

    @pytest.mark.asyncio
    async def test_connection_failure(self, unused_tcp_port):
        with pytest.raises(ExternalServiceError) as exc_info:
            await fetch_archive(f"http://127.0.0.1:{unused_tcp_port}/archive.zip", io.BytesIO())

        assert exc_info.value.status_code is None


# ============================================================
# SUBMISSION
# ============================================================

class TestSubmission:
    """Tests for submit_archive_url and the upload flow."""

    def test_submit_enqueues_download(self, context, enqueuer, load_archive):
        archive_id = submit_archive_url(context, ACCOUNT, DROPBOX_URL, cookie="c=1")

        archive = load_archive(archive_id)
        assert archive.archive_status == ArchiveStatus.SUBMITTED
        assert archive.source_url == DROPBOX_URL
        assert enqueuer.payloads == [DownloadArchivePayload(ACCOUNT, archive_id, url=DROPBOX_URL, cookie="c=1")]

    def test_second_active_archive_rejected(self, context):
        submit_archive_url(context, ACCOUNT, DROPBOX_URL)

        with pytest.raises(ActiveArchiveExistsError):
            submit_archive_url(context, ACCOUNT, DROPBOX_URL)

    def test_enqueue_failure_invalidates_archive(self, context, session_factory):
        context.enqueuer = None

        with pytest.raises(RuntimeError):
            submit_archive_url(context, ACCOUNT, DROPBOX_URL)

        with transaction_scope(session_factory) as session:
            archives = ArchiveRepository(session).list_by_account(ACCOUNT)
        assert len(archives) == 1
        assert archives[0].archive_status == ArchiveStatus.INVALID
        assert archives[0].error["code"] == "FAIL_TO_CREATE_ARCHIVE"

    def test_request_upload_returns_presigned_url(self, context):
        archive_id, key, url = request_archive_upload(context, ACCOUNT, 1024)

        assert key == archive_blob_key(ACCOUNT, ARCHIVE_TYPE_FACEBOOK, archive_id, "archive.zip")
        assert "size=1024" in url

    @pytest.mark.asyncio
    async def test_uploaded_archive_is_adopted(self, context, enqueuer, blobs, sample_archive, load_archive):
        archive_id, key, _ = request_archive_upload(context, ACCOUNT, len(sample_archive))
        blobs.upload(key, io.BytesIO(sample_archive))

        acknowledge_upload(context, ACCOUNT, archive_id, key)
        assert enqueuer.payloads == [AcceptUploadPayload(ACCOUNT, archive_id, blob_key=key)]

        await AcceptUploadStage(context)(enqueuer.payloads[0])

        archive = load_archive(archive_id)
        assert archive.archive_status == ArchiveStatus.STORED
        assert archive.content_hash == hashlib.sha3_512(sample_archive).hexdigest()
        assert enqueuer.tasks[-1] == TASK_PARSE_ARCHIVE

    @pytest.mark.asyncio
    async def test_missing_upload_fails_download(self, context, enqueuer):
        archive_id, key, _ = request_archive_upload(context, ACCOUNT, 1024)
        acknowledge_upload(context, ACCOUNT, archive_id, key)

        with pytest.raises(ValidationError) as exc_info:
            await AcceptUploadStage(context)(enqueuer.payloads[0])

        assert exc_info.value.code == "FAIL_TO_DOWNLOAD_ARCHIVE"
        assert isinstance(exc_info.value.cause, BlobStoreError)
        assert enqueuer.payloads == [AcceptUploadPayload(ACCOUNT, archive_id, blob_key=key)]


class TestFingerprint:
    def test_fingerprint_file(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"abc" * 1000)

        digest, size = fingerprint_file(str(path), chunk_size=7)

        assert digest == hashlib.sha3_512(b"abc" * 1000).hexdigest()
        assert size == 3000
