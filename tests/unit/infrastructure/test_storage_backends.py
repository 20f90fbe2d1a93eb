"""
Unit tests for StorageFactory and GCSPackageStorage.

GCS is exercised through a mocked client; no network access happens.
"""

from io import BytesIO
from unittest.mock import Mock

import pytest
from google.cloud.exceptions import GoogleCloudError, NotFound

from export_engine.config.export_config import ExportConfig
from export_engine.infrastructure.gcs_package_storage import GCSPackageStorage
from export_engine.infrastructure.local_package_storage import LocalPackageStorage
from export_engine.infrastructure.storage_factory import StorageFactory

DATA = b"abcdefghijklmnopqrstuvwxy"


class TestStorageFactory:
    def test_local_backend(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EXPORT_STORAGE_BACKEND", "local")
        monkeypatch.setenv("EXPORT_STORAGE_DIR", str(tmp_path / "pkgs"))

        storage = StorageFactory.create_storage(ExportConfig())

        assert isinstance(storage, LocalPackageStorage)
        assert (tmp_path / "pkgs").is_dir()

    def test_gcs_without_bucket_fails(self, monkeypatch):
        monkeypatch.setenv("EXPORT_STORAGE_BACKEND", "gcs")
        monkeypatch.setenv("GCS_BUCKET_NAME", "")

        with pytest.raises(RuntimeError, match="gcs"):
            StorageFactory.create_storage(ExportConfig())

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("EXPORT_STORAGE_BACKEND", "ftp")

        with pytest.raises(RuntimeError, match="Unknown storage backend"):
            StorageFactory.create_storage(ExportConfig())


@pytest.fixture
def gcs_client():
    client = Mock()
    client.bucket.return_value = Mock()
    return client


@pytest.fixture
def gcs_storage(gcs_client):
    return GCSPackageStorage("packages", prefix="exports", client=gcs_client)


def make_blob(data: bytes = DATA):
    blob = Mock()
    blob.size = len(data)
    blob.download_as_bytes.side_effect = lambda start, end: data[start : end + 1]
    return blob


class TestGCSPackageStorage:
    def test_empty_bucket_name(self, gcs_client):
        with pytest.raises(ValueError):
            GCSPackageStorage(" ", client=gcs_client)

    def test_save_uploads_under_prefix(self, gcs_storage):
        blob = Mock()
        gcs_storage.bucket.blob.return_value = blob

        assert gcs_storage.save("job-1/pkg.tar.gz", BytesIO(DATA)) is True

        gcs_storage.bucket.blob.assert_called_once_with("exports/job-1/pkg.tar.gz")
        blob.upload_from_file.assert_called_once()

    def test_save_error_becomes_io_error(self, gcs_storage):
        gcs_storage.bucket.blob.return_value.upload_from_file.side_effect = GoogleCloudError(
            "quota"
        )
        with pytest.raises(IOError):
            gcs_storage.save("job-1/pkg.tar.gz", BytesIO(DATA))

    def test_open_range_downloads_in_chunks(self, gcs_storage):
        blob = make_blob()
        gcs_storage.bucket.get_blob.return_value = blob

        chunks = list(gcs_storage.open_range("job-1/pkg.tar.gz", start=3, chunk_size=10))

        assert b"".join(chunks) == DATA[3:]
        assert blob.download_as_bytes.call_count == 3

    def test_open_range_clamps_end(self, gcs_storage):
        gcs_storage.bucket.get_blob.return_value = make_blob()

        chunks = gcs_storage.open_range("job-1/pkg.tar.gz", start=20, end=500)

        assert b"".join(chunks) == DATA[20:]

    def test_open_range_missing_blob(self, gcs_storage):
        gcs_storage.bucket.get_blob.return_value = None
        with pytest.raises(FileNotFoundError):
            gcs_storage.open_range("job-1/pkg.tar.gz")

    def test_delete_missing_blob_is_success(self, gcs_storage):
        gcs_storage.bucket.blob.return_value.delete.side_effect = NotFound("gone")
        assert gcs_storage.delete("job-1/pkg.tar.gz") is True

    def test_delete_error_becomes_io_error(self, gcs_storage):
        gcs_storage.bucket.blob.return_value.delete.side_effect = GoogleCloudError("denied")
        with pytest.raises(IOError):
            gcs_storage.delete("job-1/pkg.tar.gz")

    def test_get_size(self, gcs_storage):
        gcs_storage.bucket.get_blob.return_value = make_blob()
        assert gcs_storage.get_size("job-1/pkg.tar.gz") == len(DATA)

        gcs_storage.bucket.get_blob.return_value = None
        assert gcs_storage.get_size("job-1/pkg.tar.gz") is None
