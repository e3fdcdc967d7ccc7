"""Trivy report viewer: list, fetch, upload and archive scan reports kept in object storage or on disk."""

__version__ = "1.0.0"
