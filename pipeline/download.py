"""
Pipeline - Download / Validate Stage.

============================================================
PURPOSE
============================================================
Brings archive bytes into content-addressed storage.

FLOW:
    share link ──► resolve ──► fetch (stream + SHA3-512) ──► zip shape
               ──► blob upload ──► archive `stored` ──► parse

Archives uploaded straight to the blob store skip the fetch:
the blob is streamed back once to fingerprint and validate it.

============================================================
ERRORS
============================================================
- Missing required folders: ValidationError(INVALID_ARCHIVE)
- Any other failure before the archive is stored:
  ValidationError(FAIL_TO_DOWNLOAD_ARCHIVE)

fetch_archive itself raises ExternalServiceError for an HTTP
status > 300 or a network failure.

============================================================
"""

import asyncio
import hashlib
import logging
import os
import tempfile
from typing import Any, BinaryIO, Dict, Optional, Tuple

import aiohttp

from archives.decoder import InvalidArchiveShapeError, validate_archive_shape
from archives.errors import ArchiveErrorCode
from archives.links import (
    confirm_url,
    find_confirm_cookie,
    is_google_drive,
    resolve_download_url,
)
from core.constants import ARCHIVE_TYPE_FACEBOOK, archive_blob_key
from core.exceptions import ExternalServiceError, ValidationError
from pipeline.context import PipelineContext
from pipeline.stage import Stage, failing_as
from pipeline.tasks import (
    TASK_ACCEPT_UPLOAD,
    TASK_DOWNLOAD_ARCHIVE,
    AcceptUploadPayload,
    DownloadArchivePayload,
    ParseArchivePayload,
)
from storage.database import transaction_scope
from storage.repositories.accounts import AccountRepository, ArchiveRepository


logger = logging.getLogger(__name__)


SERVICE_NAME = "archive_download"

ARCHIVE_FILENAME = "archive.zip"

ARCHIVE_CONTENT_TYPES = (
    "application/zip",
    "application/x-zip-compressed",
    "application/octet-stream",
)


class InvalidContentError(ValueError):
    """The download link answered with something that is not an archive."""


# ============================================================
# FETCH
# ============================================================

async def _stream_to_file(
    response: aiohttp.ClientResponse,
    destination: BinaryIO,
    chunk_size: int,
) -> Tuple[str, int]:
    digest = hashlib.sha3_512()
    size = 0
    async for chunk in response.content.iter_chunked(chunk_size):
        destination.write(chunk)
        digest.update(chunk)
        size += len(chunk)
    return digest.hexdigest(), size


def _check_status(response: aiohttp.ClientResponse, url: str) -> None:
    if response.status > 300:
        raise ExternalServiceError(
            f"archive download failed with status {response.status}: {url}",
            service=SERVICE_NAME,
            status_code=response.status,
        )


async def fetch_archive(
    url: str,
    destination: BinaryIO,
    cookie: str = "",
    chunk_size: int = 1024 * 1024,
    timeout_seconds: float = 1800.0,
) -> Tuple[str, int]:
    """
    Stream an archive into a file while fingerprinting it.

    Args:
        url: Direct download URL
        destination: Writable binary file
        cookie: Optional Cookie header sent with the request
        chunk_size: Read size
        timeout_seconds: Total request timeout

    Returns:
        (SHA3-512 hex digest, size in bytes)

    Raises:
        InvalidContentError: If the answer is not an archive
        ExternalServiceError: If the request fails
    """
    headers = {"Cookie": cookie} if cookie else {}
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers=headers) as response:
                _check_status(response, url)
                content_type = response.content_type

                if content_type in ARCHIVE_CONTENT_TYPES:
                    return await _stream_to_file(response, destination, chunk_size)

                # Large Google Drive files answer with a virus-scan warning page
                if is_google_drive(url) and content_type == "text/html":
                    found = find_confirm_cookie(
                        {name: morsel.value for name, morsel in response.cookies.items()}
                    )
                    if found is not None:
                        name, token = found
                        logger.info("Replaying Google Drive download with confirm token")
                        async with session.get(
                            confirm_url(url, token),
                            headers={"Cookie": f"{name}={token}"},
                        ) as confirmed:
                            _check_status(confirmed, url)
                            if confirmed.content_type in ARCHIVE_CONTENT_TYPES:
                                return await _stream_to_file(confirmed, destination, chunk_size)
                            content_type = confirmed.content_type

                raise InvalidContentError(f"invalid content: {content_type}")

    except aiohttp.ClientError as e:
        raise ExternalServiceError(
            f"archive download failed: {e}",
            service=SERVICE_NAME,
            cause=e,
        ) from e


def fingerprint_file(path: str, chunk_size: int = 1024 * 1024) -> Tuple[str, int]:
    """(SHA3-512 hex digest, size) of a local file."""
    digest = hashlib.sha3_512()
    size = 0
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            digest.update(chunk)
            size += len(chunk)
    return digest.hexdigest(), size


def _temp_archive_path(workdir: str) -> str:
    os.makedirs(workdir, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="archive-", suffix=".zip", dir=workdir)
    os.close(fd)
    return path


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


# ============================================================
# STAGES
# ============================================================

class DownloadArchiveStage(Stage):
    """Fetch an archive from a share link and store it."""

    TASK = TASK_DOWNLOAD_ARCHIVE
    PAYLOAD = DownloadArchivePayload

    async def run(self, payload: DownloadArchivePayload) -> Dict[str, Any]:
        archive_id = payload.archive_id
        machine = self.context.state_machine(archive_id)
        machine.mark_submitted()

        with failing_as(archive_id, ArchiveErrorCode.FAIL_TO_DOWNLOAD_ARCHIVE):
            url = resolve_download_url(payload.url)

            settings = self.context.config.archive
            path = _temp_archive_path(settings.workdir)
            try:
                with open(path, "wb") as fh:
                    fingerprint, size = await fetch_archive(
                        url,
                        fh,
                        cookie=payload.cookie,
                        chunk_size=settings.chunk_size,
                        timeout_seconds=settings.download_timeout_seconds,
                    )

                logger.info(f"Downloaded archive {archive_id}: {size} bytes")
                await asyncio.to_thread(_validate_shape, archive_id, path)

                key = archive_blob_key(payload.account_number, ARCHIVE_TYPE_FACEBOOK, archive_id, ARCHIVE_FILENAME)
                metadata = {
                    "url": payload.url,
                    "archive_type": ARCHIVE_TYPE_FACEBOOK,
                    "archive_id": str(archive_id),
                }
                await asyncio.to_thread(self._upload, path, key, metadata)
            finally:
                _remove_quietly(path)

            machine.mark_stored(fingerprint, key, size_bytes=size)

        self.enqueue_next(ParseArchivePayload(payload.account_number, archive_id))
        return {"blob_key": key, "size_bytes": size}

    def _upload(self, path: str, key: str, metadata: Dict[str, str]) -> None:
        with open(path, "rb") as fh:
            self.context.blobs.upload(key, fh, metadata=metadata)


class AcceptUploadStage(Stage):
    """Adopt an archive the client uploaded to a presigned URL."""

    TASK = TASK_ACCEPT_UPLOAD
    PAYLOAD = AcceptUploadPayload

    async def run(self, payload: AcceptUploadPayload) -> Dict[str, Any]:
        archive_id = payload.archive_id
        machine = self.context.state_machine(archive_id)
        machine.mark_submitted()

        with failing_as(archive_id, ArchiveErrorCode.FAIL_TO_DOWNLOAD_ARCHIVE):
            path = _temp_archive_path(self.context.config.archive.workdir)
            try:
                fingerprint, size = await asyncio.to_thread(self._download_and_fingerprint, payload.blob_key, path)
                await asyncio.to_thread(_validate_shape, archive_id, path)
            finally:
                _remove_quietly(path)

            machine.mark_stored(fingerprint, payload.blob_key, size_bytes=size)

        self.enqueue_next(ParseArchivePayload(payload.account_number, archive_id))
        return {"blob_key": payload.blob_key, "size_bytes": size}

    def _download_and_fingerprint(self, key: str, path: str) -> Tuple[str, int]:
        with open(path, "wb") as fh:
            self.context.blobs.download(key, fh)
        return fingerprint_file(path, self.context.config.archive.chunk_size)


def _validate_shape(archive_id: int, path: str) -> None:
    try:
        validate_archive_shape(path)
    except InvalidArchiveShapeError as e:
        raise ValidationError(archive_id, ArchiveErrorCode.INVALID_ARCHIVE, str(e)) from e


# ============================================================
# SUBMISSION
# ============================================================

def _create_archive(context: PipelineContext, account_number: str, source_url: Optional[str]) -> int:
    with transaction_scope(context.session_factory) as session:
        AccountRepository(session).get_or_create(account_number)
        archive = ArchiveRepository(session).create(
            account_number,
            archive_type=ARCHIVE_TYPE_FACEBOOK,
            source_url=source_url,
        )
        return archive.id


def _start(context: PipelineContext, archive_id: int, payload: Any) -> None:
    machine = context.state_machine(archive_id)
    try:
        machine.mark_submitted()
        if context.enqueuer is None:
            raise RuntimeError("PipelineContext has no enqueuer bound")
        context.enqueuer.enqueue(payload)
    except Exception as e:
        logger.error(f"Failed to start archive {archive_id}: {e}")
        machine.mark_invalid(ArchiveErrorCode.FAIL_TO_CREATE_ARCHIVE, str(e))
        raise


def submit_archive_url(context: PipelineContext, account_number: str, url: str, cookie: str = "") -> int:
    """
    Register an archive given as a share link and start its download.

    Returns:
        Archive id

    Raises:
        ActiveArchiveExistsError: If the account already has an
            archive in progress
    """
    archive_id = _create_archive(context, account_number, url)
    _start(context, archive_id, DownloadArchivePayload(account_number, archive_id, url=url, cookie=cookie))
    logger.info(f"Archive {archive_id} of {account_number} submitted from {url}")
    return archive_id


def request_archive_upload(context: PipelineContext, account_number: str, size: int) -> Tuple[int, str, str]:
    """
    Register an archive the client will upload itself.

    Returns:
        (archive id, blob key, presigned upload URL)
    """
    archive_id = _create_archive(context, account_number, None)
    key = archive_blob_key(account_number, ARCHIVE_TYPE_FACEBOOK, archive_id, ARCHIVE_FILENAME)
    url = context.blobs.presigned_upload_url(key, size, context.config.blobs.presign_ttl_seconds)
    return archive_id, key, url


def acknowledge_upload(context: PipelineContext, account_number: str, archive_id: int, blob_key: str) -> None:
    """Start processing an archive once its presigned upload finished."""
    _start(context, archive_id, AcceptUploadPayload(account_number, archive_id, blob_key=blob_key))
    logger.info(f"Archive {archive_id} of {account_number} uploaded to {blob_key}")


__all__ = [
    "InvalidContentError",
    "fetch_archive",
    "fingerprint_file",
    "DownloadArchiveStage",
    "AcceptUploadStage",
    "submit_archive_url",
    "request_archive_upload",
    "acknowledge_upload",
]
