"""
Unified storage layer for report files

This module provides a uniform interface over different storage backends:
- AWS S3 (and S3 compatible services)
- Azure Blob Storage
- Google Cloud Storage
- Local filesystem

Usage:
    from trivyview.utils.config.storage import create_storage_provider

    storage = create_storage_provider("s3://my-bucket", "trivy")

    # List the first page of active reports
    page = await storage.list_files(storage.active_path, limit=50)

    # Read, upload and archive
    report = await storage.get_file(page.entries[0].key)
    result = await storage.save_file("scan.json", {"Results": []})
    moved = await storage.archive_file(result["key"])
"""

from .abstract import (
    AbstractStorage,
    FileEntry,
    ListPage,
    StorageLocation
)
from .aws import AwsStorage
from .azure import AzureStorage
from .gcs import GcsStorage
from .local import LocalStorage

from .errors import (
    StorageError,
    NotFoundError,
    InvalidContentError,
    InvalidRequestError,
    BackendUnavailableError,
    ConfigurationError
)

from .factory import (
    StorageFactory,
    create_storage_provider,
    get_provider_type,
    get_storage_client
)

#-----------------------------------------------------------------------------
# Export all
#-----------------------------------------------------------------------------

__all__ = [
    # Data model
    "AbstractStorage",
    "FileEntry",
    "ListPage",
    "StorageLocation",

    # Storage classes
    "AwsStorage",
    "AzureStorage",
    "GcsStorage",
    "LocalStorage",

    # Errors
    "StorageError",
    "NotFoundError",
    "InvalidContentError",
    "InvalidRequestError",
    "BackendUnavailableError",
    "ConfigurationError",

    # Factory
    "StorageFactory",
    "create_storage_provider",
    "get_provider_type",
    "get_storage_client",
]
