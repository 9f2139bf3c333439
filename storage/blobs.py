"""
Storage - Blob Stores.

============================================================
RESPONSIBILITY
============================================================
Object storage for archive files, extracted media and exports.

- BlobStore: the protocol every stage depends on
- S3BlobStore: production backend (boto3)
- LocalBlobStore: filesystem backend for development and tests

============================================================
KEY LAYOUT
============================================================
Every key starts with "{account}/" so that prefix-delete (account
deletion) and prefix-list (export) are correct and safe.

============================================================
"""

import json
import logging
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Protocol, runtime_checkable
from urllib.parse import urlencode

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.config import BlobStoreConfig
from core.exceptions import TransientError


logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per request
S3_DELETE_BATCH = 1000


class BlobStoreError(TransientError):
    """Raised when an object storage call fails."""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if key:
            context["key"] = key
        self.key = key
        super().__init__(message, context=context, **kwargs)


# ============================================================
# PROTOCOL
# ============================================================

@runtime_checkable
class BlobStore(Protocol):
    """Object storage used by the pipeline."""

    def upload(self, key: str, stream: BinaryIO, metadata: Optional[Dict[str, str]] = None) -> None:
        ...

    def download(self, key: str, destination: BinaryIO) -> None:
        ...

    def presigned_download_url(self, key: str, ttl_seconds: int) -> str:
        ...

    def presigned_upload_url(self, key: str, size: int, ttl_seconds: int) -> str:
        ...

    def delete_by_prefix(self, prefix: str) -> int:
        ...

    def list_prefix(self, prefix: str) -> List[str]:
        ...


# ============================================================
# S3 BACKEND
# ============================================================

class S3BlobStore:
    """
    Blob store backed by an S3 bucket.

    The boto3 client is created lazily and reused.
    """

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client=None,
    ):
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url
        self._client = client

    @classmethod
    def from_config(cls, config: BlobStoreConfig) -> "S3BlobStore":
        return cls(bucket=config.bucket, region=config.region, endpoint_url=config.endpoint_url)

    @property
    def bucket(self) -> str:
        return self._bucket

    def _get_client(self):
        if self._client is None:
            kwargs = {"config": Config(retries={"max_attempts": 3})}
            if self._region:
                kwargs["region_name"] = self._region
            if self._endpoint_url:
                kwargs["endpoint_url"] = self._endpoint_url
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def upload(self, key: str, stream: BinaryIO, metadata: Optional[Dict[str, str]] = None) -> None:
        """Stream a file object to the bucket."""
        extra_args = {"Metadata": dict(metadata)} if metadata else None
        try:
            self._get_client().upload_fileobj(stream, self._bucket, key, ExtraArgs=extra_args)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"Upload failed: {e}", key=key, cause=e) from e
        logger.info(f"Uploaded s3://{self._bucket}/{key}")

    def download(self, key: str, destination: BinaryIO) -> None:
        """Stream an object into a writable file object."""
        try:
            self._get_client().download_fileobj(self._bucket, key, destination)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"Download failed: {e}", key=key, cause=e) from e

    def presigned_download_url(self, key: str, ttl_seconds: int) -> str:
        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"Presign failed: {e}", key=key, cause=e) from e

    def presigned_upload_url(self, key: str, size: int, ttl_seconds: int) -> str:
        try:
            return self._get_client().generate_presigned_url(
                "put_object",
                Params={"Bucket": self._bucket, "Key": key, "ContentLength": size},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"Presign failed: {e}", key=key, cause=e) from e

    def list_prefix(self, prefix: str) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self._get_client().get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"List failed: {e}", key=prefix, cause=e) from e
        return keys

    def delete_by_prefix(self, prefix: str) -> int:
        """
        Delete every object whose key starts with prefix.

        Returns:
            Number of deleted objects
        """
        keys = self.list_prefix(prefix)
        client = self._get_client()
        deleted = 0

        for start in range(0, len(keys), S3_DELETE_BATCH):
            chunk = keys[start:start + S3_DELETE_BATCH]
            try:
                response = client.delete_objects(
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                )
            except (BotoCoreError, ClientError) as e:
                raise BlobStoreError(f"Delete failed: {e}", key=prefix, cause=e) from e

            errors = response.get("Errors", [])
            if errors:
                raise BlobStoreError(
                    f"Delete failed for {len(errors)} objects",
                    key=prefix,
                    context={"first_error": errors[0]},
                )
            deleted += len(chunk)

        logger.info(f"Deleted {deleted} objects under s3://{self._bucket}/{prefix}")
        return deleted


# ============================================================
# LOCAL BACKEND
# ============================================================

class LocalBlobStore:
    """
    Blob store on the local filesystem.

    Object metadata is kept in a sidecar file next to each object.
    Presigned URLs are file:// URLs carrying their expiry.
    """

    METADATA_SUFFIX = ".metadata.json"

    def __init__(self, root: str):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: BlobStoreConfig) -> "LocalBlobStore":
        return cls(config.local_root)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise BlobStoreError(f"Key escapes blob root: {key}", key=key)
        return path

    def upload(self, key: str, stream: BinaryIO, metadata: Optional[Dict[str, str]] = None) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, "wb") as fh:
                shutil.copyfileobj(stream, fh)
            if metadata:
                Path(str(path) + self.METADATA_SUFFIX).write_text(json.dumps(metadata))
        except OSError as e:
            raise BlobStoreError(f"Upload failed: {e}", key=key, cause=e) from e
        logger.info(f"Stored blob {key}")

    def download(self, key: str, destination: BinaryIO) -> None:
        path = self._path(key)
        if not path.is_file():
            raise BlobStoreError(f"No such blob: {key}", key=key)
        with open(path, "rb") as fh:
            shutil.copyfileobj(fh, destination)

    def metadata(self, key: str) -> Dict[str, str]:
        meta_path = Path(str(self._path(key)) + self.METADATA_SUFFIX)
        if not meta_path.is_file():
            return {}
        return json.loads(meta_path.read_text())

    def presigned_download_url(self, key: str, ttl_seconds: int) -> str:
        expires = int(time.time()) + ttl_seconds
        return f"{self._path(key).as_uri()}?{urlencode({'expires': expires})}"

    def presigned_upload_url(self, key: str, size: int, ttl_seconds: int) -> str:
        expires = int(time.time()) + ttl_seconds
        return f"{self._path(key).as_uri()}?{urlencode({'expires': expires, 'size': size})}"

    def list_prefix(self, prefix: str) -> List[str]:
        keys = []
        for path in sorted(self._root.rglob("*")):
            if not path.is_file() or path.name.endswith(self.METADATA_SUFFIX):
                continue
            key = path.relative_to(self._root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return keys

    def delete_by_prefix(self, prefix: str) -> int:
        deleted = 0
        for key in self.list_prefix(prefix):
            path = self._path(key)
            path.unlink()
            Path(str(path) + self.METADATA_SUFFIX).unlink(missing_ok=True)
            deleted += 1
        logger.info(f"Deleted {deleted} local blobs under {prefix}")
        return deleted


def create_blob_store(config: BlobStoreConfig) -> BlobStore:
    """Build the blob store selected by configuration."""
    if config.backend == "s3":
        return S3BlobStore.from_config(config)
    return LocalBlobStore.from_config(config)


__all__ = [
    "BlobStore",
    "BlobStoreError",
    "S3BlobStore",
    "LocalBlobStore",
    "create_blob_store",
]
