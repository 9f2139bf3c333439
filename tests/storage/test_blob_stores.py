"""
Tests for the blob stores.

Both backends run the same scenarios; S3 is mocked with moto.
"""

import io

import boto3
import pytest
from moto import mock_aws

from core.config import BlobStoreConfig
from storage.blobs import (
    BlobStoreError,
    LocalBlobStore,
    S3BlobStore,
    create_blob_store,
)


BUCKET = "archives-test"


@pytest.fixture(params=["local", "s3"])
def store(request, tmp_path, monkeypatch):
    """Parametrized fixture covering both backends."""
    if request.param == "local":
        yield LocalBlobStore(str(tmp_path / "blobs"))
    else:
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
        monkeypatch.delenv("AWS_S3_ENDPOINT_URL", raising=False)
        with mock_aws():
            client = boto3.client("s3", region_name="us-east-1")
            client.create_bucket(Bucket=BUCKET)
            yield S3BlobStore(BUCKET, region="us-east-1", client=client)


def _download(store, key: str) -> bytes:
    buffer = io.BytesIO()
    store.download(key, buffer)
    return buffer.getvalue()


class TestBlobStore:
    """Scenarios shared by every backend."""

    def test_upload_and_download(self, store):
        store.upload("acct/facebook/archives/1/archive.zip", io.BytesIO(b"zip bytes"))

        assert _download(store, "acct/facebook/archives/1/archive.zip") == b"zip bytes"

    def test_list_prefix(self, store):
        store.upload("acct/a/1", io.BytesIO(b"1"))
        store.upload("acct/a/2", io.BytesIO(b"2"))
        store.upload("other/a/3", io.BytesIO(b"3"))

        assert sorted(store.list_prefix("acct/")) == ["acct/a/1", "acct/a/2"]

    def test_delete_by_prefix(self, store):
        store.upload("acct/a/1", io.BytesIO(b"1"))
        store.upload("acct/b/2", io.BytesIO(b"2"), metadata={"filename": "b"})
        store.upload("other/a/3", io.BytesIO(b"3"))

        assert store.delete_by_prefix("acct/") == 2
        assert store.list_prefix("acct/") == []
        assert store.list_prefix("other/") == ["other/a/3"]

    def test_delete_empty_prefix(self, store):
        assert store.delete_by_prefix("nobody/") == 0

    def test_download_missing_key(self, store):
        with pytest.raises(BlobStoreError):
            _download(store, "acct/missing")

    def test_presigned_urls(self, store):
        store.upload("acct/export.zip", io.BytesIO(b"x"))

        download_url = store.presigned_download_url("acct/export.zip", 60)
        upload_url = store.presigned_upload_url("acct/upload.zip", 100, 60)

        assert "acct/export.zip" in download_url
        assert "acct/upload.zip" in upload_url


class TestLocalBlobStore:
    """Local backend specifics."""

    def test_metadata_sidecar_not_listed(self, tmp_path):
        store = LocalBlobStore(str(tmp_path))
        store.upload("acct/a.jpg", io.BytesIO(b"img"), metadata={"timestamp": "1"})

        assert store.metadata("acct/a.jpg") == {"timestamp": "1"}
        assert store.list_prefix("acct/") == ["acct/a.jpg"]

    def test_key_escaping_root_rejected(self, tmp_path):
        store = LocalBlobStore(str(tmp_path / "root"))

        with pytest.raises(BlobStoreError):
            store.upload("../outside", io.BytesIO(b"x"))


class TestCreateBlobStore:
    """Tests for create_blob_store."""

    def test_local_backend(self, tmp_path):
        store = create_blob_store(BlobStoreConfig(backend="local", local_root=str(tmp_path)))
        assert isinstance(store, LocalBlobStore)

    def test_s3_backend(self):
        store = create_blob_store(BlobStoreConfig(backend="s3", bucket="b"))
        assert isinstance(store, S3BlobStore)
        assert store.bucket == "b"
