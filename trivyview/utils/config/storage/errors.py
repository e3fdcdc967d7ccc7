"""Exceptions raised by storage providers."""

#-----------------------------------------------------------------------------

class StorageError(Exception):
    """Base exception for storage errors."""

    def __init__(self, message: str, key: str | None = None):
        """
        Args:
            message: Error message for logs and HTTP error details
            key: Backend key/path the error refers to, if any
        """
        super().__init__(message)
        self.message = message
        self.key = key


class NotFoundError(StorageError):
    """Key or path does not exist in the backend."""
    pass


class InvalidContentError(StorageError):
    """Stored bytes are not valid JSON."""
    pass


class InvalidRequestError(InvalidContentError):
    """Upload or listing input rejected before reaching the backend."""
    pass


class BackendUnavailableError(StorageError):
    """Network, auth or service failure from the storage medium."""
    pass


class ConfigurationError(StorageError):
    """Missing or unusable storage configuration."""
    pass

#-----------------------------------------------------------------------------
