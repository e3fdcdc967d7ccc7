"""
Tests for the Google Cloud Storage provider against an in-memory client.
"""
import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from google.api_core.exceptions import NotFound, ServiceUnavailable
from google.auth.exceptions import DefaultCredentialsError

from trivyview.utils.config.storage import (
    BackendUnavailableError,
    ConfigurationError,
    GcsStorage,
    NotFoundError
)

from conftest import make_report


UPDATED = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeBlob:
    def __init__(self, bucket, name):
        self._bucket = bucket
        self.name = name

    @property
    def size(self):
        data = self._bucket.objects.get(self.name)
        return None if data is None else len(data)

    @property
    def updated(self):
        return UPDATED

    def download_as_bytes(self):
        if self.name not in self._bucket.objects:
            raise NotFound(f"No such object: reports/{self.name}")
        return self._bucket.objects[self.name]

    def delete(self):
        if self.name not in self._bucket.objects:
            raise NotFound(f"No such object: reports/{self.name}")
        del self._bucket.objects[self.name]

    def upload_from_string(self, data, content_type=None):
        self._bucket.uploads.append((self.name, content_type))
        self._bucket.objects[self.name] = data


class FakeBucket:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.uploads = []

    def blob(self, name):
        return FakeBlob(self, name)

    def copy_blob(self, blob, destination_bucket, new_name):
        if blob.name not in self.objects:
            raise NotFound(f"No such object: reports/{blob.name}")
        destination_bucket.objects[new_name] = self.objects[blob.name]
        return FakeBlob(destination_bucket, new_name)


class FakePage:
    def __init__(self, blobs, prefixes):
        self._blobs = blobs
        self.prefixes = tuple(prefixes)

    def __iter__(self):
        return iter(self._blobs)


class FakeIterator:
    def __init__(self, page, next_page_token):
        self.pages = iter([page] if page else [])
        self.next_page_token = next_page_token


class FakeGcsClient:
    def __init__(self):
        self.the_bucket = FakeBucket()
        self.closed = False
        self.fail_with = None
        self.list_calls = []

    def bucket(self, name):
        return self.the_bucket

    def list_blobs(self, bucket_name, prefix, delimiter, max_results, page_token):
        self.list_calls.append(dict(prefix=prefix, max_results=max_results, page_token=page_token))
        if self.fail_with:
            raise self.fail_with

        items = []
        seen = set()
        for name in sorted(self.the_bucket.objects):
            if not name.startswith(prefix):
                continue
            rest = name[len(prefix):]
            if delimiter in rest:
                common = prefix + rest.split(delimiter)[0] + delimiter
                if common not in seen:
                    seen.add(common)
                    items.append(("prefix", common))
            else:
                items.append(("blob", name))

        if not items:
            return FakeIterator(None, None)

        start = int(page_token) if page_token else 0
        end = start + max_results
        chunk = items[start:end]

        page = FakePage(
            [FakeBlob(self.the_bucket, n) for kind, n in chunk if kind == "blob"],
            [n for kind, n in chunk if kind == "prefix"]
        )
        return FakeIterator(page, str(end) if end < len(items) else None)

    def close(self):
        self.closed = True


@pytest.fixture
def gcs_client():
    return FakeGcsClient()


@pytest.fixture
def gcs_storage(gcs_client):
    return GcsStorage(bucket="reports", prefix="trivy", client=gcs_client)


def put(client, name, content):
    client.the_bucket.objects[name] = json.dumps(content).encode("utf-8")


class TestGcsConstruction:
    """Tests for client creation."""

    def test_paths(self, gcs_storage):
        assert gcs_storage.active_path == "trivy/active"
        assert gcs_storage.archived_path == "trivy/archived"
        assert gcs_storage.bucket_name == "reports"

    def test_project_is_passed_to_client(self):
        with patch("google.cloud.storage.Client") as client_class:
            GcsStorage(bucket="reports", project="my-project")

        client_class.assert_called_once_with(project="my-project")

    def test_missing_credentials(self):
        with patch("google.cloud.storage.Client", side_effect=DefaultCredentialsError("no credentials")):
            with pytest.raises(ConfigurationError):
                GcsStorage(bucket="reports")

    def test_close(self, gcs_storage, gcs_client):
        asyncio.run(gcs_storage.close())
        assert gcs_client.closed is True


class TestGcsListFiles:
    """Tests for GCS listing."""

    def test_directories_first(self, gcs_storage, gcs_client):
        gcs_client.the_bucket.objects["trivy/active/"] = b""
        put(gcs_client, "trivy/active/a.json", {"Results": []})
        put(gcs_client, "trivy/active/team/b.json", {"Results": []})

        page = asyncio.run(gcs_storage.list_files("trivy/active"))

        assert [(e.key, e.type) for e in page.entries] == [
            ("trivy/active/team/", "directory"),
            ("trivy/active/a.json", "file"),
        ]
        assert page.entries[1].last_modified == UPDATED
        assert gcs_client.list_calls[0]["prefix"] == "trivy/active/"

    def test_pagination_enumerates_everything_once(self, gcs_storage, gcs_client):
        for i in range(4):
            put(gcs_client, f"trivy/active/scan-{i}.json", {"Results": []})
        put(gcs_client, "trivy/active/team/b.json", {"Results": []})

        keys = []
        token = None
        while True:
            page = asyncio.run(gcs_storage.list_files("trivy/active", limit=2, continuation_token=token))
            keys.extend(e.key for e in page.entries)
            if not page.has_more:
                break
            token = page.next_token

        assert len(keys) == 5
        assert len(set(keys)) == 5

    def test_empty_path(self, gcs_storage):
        page = asyncio.run(gcs_storage.list_files("trivy/active/none"))

        assert page.entries == []
        assert page.has_more is False

    def test_service_failure(self, gcs_storage, gcs_client):
        gcs_client.fail_with = ServiceUnavailable("try again")

        with pytest.raises(BackendUnavailableError):
            asyncio.run(gcs_storage.list_files("trivy/active"))


class TestGcsFileOperations:
    """Tests for GCS get, save, copy, delete and archive."""

    def test_save_then_get(self, gcs_storage, gcs_client):
        report = make_report()

        result = asyncio.run(gcs_storage.save_file("scan.json", report))

        assert result == {"key": "trivy/active/scan.json", "filename": "scan.json"}
        assert gcs_client.the_bucket.uploads == [("trivy/active/scan.json", "application/json")]
        assert asyncio.run(gcs_storage.get_file("trivy/active/scan.json")) == report

    def test_save_then_list(self, gcs_storage):
        asyncio.run(gcs_storage.save_file("Fresh Scan.JSON", make_report()))

        page = asyncio.run(gcs_storage.list_files(gcs_storage.active_path))

        assert [(e.key, e.name) for e in page.entries] == [("trivy/active/Fresh Scan.JSON", "Fresh Scan.JSON")]

    def test_get_missing(self, gcs_storage):
        with pytest.raises(NotFoundError):
            asyncio.run(gcs_storage.get_file("trivy/active/missing.json"))

    def test_delete_missing(self, gcs_storage):
        with pytest.raises(NotFoundError):
            asyncio.run(gcs_storage.delete_file("trivy/active/missing.json"))

    def test_copy_then_delete(self, gcs_storage, gcs_client):
        put(gcs_client, "trivy/active/scan.json", {"Results": [1]})

        asyncio.run(gcs_storage.copy_file("trivy/active/scan.json", "trivy/archived/scan.json"))
        asyncio.run(gcs_storage.delete_file("trivy/active/scan.json"))

        assert asyncio.run(gcs_storage.get_file("trivy/archived/scan.json")) == {"Results": [1]}
        with pytest.raises(NotFoundError):
            asyncio.run(gcs_storage.get_file("trivy/active/scan.json"))

    def test_archive_relative_key(self, gcs_storage, gcs_client):
        put(gcs_client, "trivy/active/scan.json", {"Results": []})
        now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

        result = asyncio.run(gcs_storage.archive_file("scan.json", now=now))

        assert result == {
            "originalKey": "trivy/active/scan.json",
            "archivedKey": "trivy/archived/scan.json.2024-05-01T12:00:00.000Z"
        }
        assert sorted(gcs_client.the_bucket.objects) == ["trivy/archived/scan.json.2024-05-01T12:00:00.000Z"]
