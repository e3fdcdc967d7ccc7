"""
Tests for storage descriptor parsing and the cached provider.
"""
import os
from unittest.mock import patch

import pytest

from trivyview.utils.config import Config
from trivyview.utils.config.storage import (
    AwsStorage,
    AzureStorage,
    ConfigurationError,
    GcsStorage,
    LocalStorage,
    StorageFactory,
    create_storage_provider,
    get_provider_type,
    get_storage_client
)


AZURE_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=https;AccountName=acct;"
    "AccountKey=a2V5a2V5a2V5a2V5;EndpointSuffix=core.windows.net"
)


class StubConfig:
    """Just the parts of Config the factory reads."""

    def __init__(self, values: dict):
        self._values = values

    def get_str(self, key, default=""):
        return self._values.get(key, default)

    def get_storage_options(self):
        return {"connection_string": self._values.get("AZURE_STORAGE_CONNECTION_STRING", "")}


class TestGetProviderType:
    """Tests for get_provider_type."""

    @pytest.mark.parametrize("location,expected", [
        ("s3://bucket", "S3"),
        ("azure://acct/container", "Azure Blob"),
        ("gs://bucket", "GCS"),
        ("gcs://bucket", "GCS"),
        ("/var/lib/reports", "Filesystem"),
        ("./reports", "Filesystem"),
        ("", "unknown"),
        (None, "unknown"),
    ])
    def test_display_names(self, location, expected):
        assert get_provider_type(location) == expected


class TestCreateStorageProvider:
    """Tests for create_storage_provider."""

    @pytest.mark.parametrize("location", ["", "   ", None])
    def test_empty_descriptor(self, location):
        with pytest.raises(ConfigurationError):
            create_storage_provider(location)

    @pytest.mark.parametrize("location", ["s3://", "gs:///", "azure://"])
    def test_missing_bucket(self, location):
        with pytest.raises(ConfigurationError):
            create_storage_provider(location)

    def test_local_directory(self, tmp_path):
        storage = create_storage_provider(str(tmp_path), "reports")

        assert isinstance(storage, LocalStorage)
        assert storage.active_path == os.path.join(str(tmp_path), "reports", "active")

    def test_s3(self):
        storage = create_storage_provider("s3://my-bucket/", "trivy", endpoint="http://minio:9000", region="us-east-1")

        assert isinstance(storage, AwsStorage)
        assert storage.bucket == "my-bucket"
        assert storage.active_path == "trivy/active"
        assert storage._client_params == {"endpoint_url": "http://minio:9000"}

    def test_azure_account_and_container(self):
        storage = create_storage_provider("azure://acct/reports", connection_string=AZURE_CONNECTION_STRING)

        assert isinstance(storage, AzureStorage)
        assert storage.container == "reports"
        assert storage.location.account == "acct"

    def test_azure_container_with_connection_string(self):
        storage = create_storage_provider("azure://reports", connection_string=AZURE_CONNECTION_STRING)

        assert isinstance(storage, AzureStorage)
        assert storage.container == "reports"
        assert storage.location.account == ""

    def test_azure_container_without_connection_string(self):
        with pytest.raises(ConfigurationError):
            create_storage_provider("azure://reports")

    @pytest.mark.parametrize("location", ["gs://my-bucket", "gcs://my-bucket"])
    def test_gcs(self, location):
        with patch("google.cloud.storage.Client"):
            storage = create_storage_provider(location, project="proj")

        assert isinstance(storage, GcsStorage)
        assert storage.bucket_name == "my-bucket"

    def test_scheme_is_case_sensitive(self):
        """Only lower-case schemes select a cloud backend."""
        storage = create_storage_provider("S3://bucket")

        assert isinstance(storage, LocalStorage)
        assert get_provider_type("S3://bucket") == "Filesystem"


class TestStorageFactory:
    """Tests for the process wide provider."""

    def test_created_once(self, tmp_path):
        config = StubConfig({"STORAGE_LOCATION": str(tmp_path), "STORAGE_PREFIX": "trivy"})

        first = StorageFactory.create_storage(config)
        second = StorageFactory.create_storage(config)

        assert first is second
        assert StorageFactory.get_storage_type() == "Filesystem"
        assert get_storage_client() is first

    def test_missing_location_is_fatal(self):
        with pytest.raises(ConfigurationError):
            StorageFactory.create_storage(StubConfig({}))
        assert StorageFactory.get_instance() is None

    def test_uses_global_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STORAGE_LOCATION", str(tmp_path))
        monkeypatch.setenv("STORAGE_PREFIX", "")
        Config()

        storage = get_storage_client()

        assert isinstance(storage, LocalStorage)
        assert storage.active_path == os.path.join(str(tmp_path), "active")

    def test_reset(self, tmp_path):
        config = StubConfig({"STORAGE_LOCATION": str(tmp_path)})
        first = StorageFactory.create_storage(config)

        StorageFactory.reset()

        assert StorageFactory.get_instance() is None
        assert StorageFactory.get_storage_type() is None
        assert StorageFactory.create_storage(config) is not first
