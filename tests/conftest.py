"""
Shared fixtures for trivyview tests.
"""
import json
import os
from pathlib import Path

import pytest

from trivyview.utils.config.storage import LocalStorage, StorageFactory


def make_report(vulnerabilities: int = 1) -> dict:
    """Minimal Trivy report document."""
    return {
        "SchemaVersion": 2,
        "ArtifactName": "alpine:3.19",
        "Results": [
            {
                "Target": "alpine:3.19 (alpine 3.19.1)",
                "Vulnerabilities": [
                    {"VulnerabilityID": f"CVE-2024-{i:04d}", "Severity": "HIGH"}
                    for i in range(vulnerabilities)
                ]
            }
        ]
    }


def write_json(path: Path, content, mtime: float | None = None) -> Path:
    """Write a JSON file, optionally pinning its modification time."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(content), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture(autouse=True)
def reset_storage_factory():
    """Every test starts without a cached storage provider."""
    StorageFactory.reset()
    yield
    StorageFactory.reset()


@pytest.fixture
def report():
    return make_report()


@pytest.fixture
def local_storage(tmp_path):
    """Local storage rooted at a temporary directory."""
    return LocalStorage(base_path=str(tmp_path))


@pytest.fixture
def active_dir(local_storage):
    return Path(local_storage.active_path)


@pytest.fixture
def archived_dir(local_storage):
    return Path(local_storage.archived_path)
