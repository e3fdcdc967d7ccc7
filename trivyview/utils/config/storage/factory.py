import logging
from typing import Any, NamedTuple, Optional

from .abstract import AbstractStorage
from .aws import AwsStorage
from .azure import AzureStorage
from .errors import ConfigurationError
from .gcs import GcsStorage
from .local import LocalStorage

logger = logging.getLogger(__name__)

#-----------------------------------------------------------------------------

class Scheme(NamedTuple):
    prefix          : str
    display_name    : str
    storage_class   : type


# Checked in order; first match wins. Anything else is a local directory.
SCHEMES = [
    Scheme("s3://",     AwsStorage.display_name,    AwsStorage),
    Scheme("azure://",  AzureStorage.display_name,  AzureStorage),
    Scheme("gs://",     GcsStorage.display_name,    GcsStorage),
    Scheme("gcs://",    GcsStorage.display_name,    GcsStorage),
]

#-----------------------------------------------------------------------------

def match_scheme(location: str) -> Scheme | None:
    for scheme in SCHEMES:
        if location.startswith(scheme.prefix):
            return scheme
    return None


def get_provider_type(location: str | None) -> str:
    """Display name of the backend a descriptor selects, for logging"""
    if not location or not location.strip():
        return "unknown"

    scheme = match_scheme(location.strip())
    return scheme.display_name if scheme else LocalStorage.display_name


def create_storage_provider(location: str | None, prefix: str = "", **options: Any) -> AbstractStorage:
    """
    Parse a storage location descriptor and create the matching provider

    Args:
        location: s3://bucket, azure://account/container, azure://container,
            gs://bucket, gcs://bucket, or a local directory path
        prefix: Optional path inside the bucket/container/directory
        **options: Backend specific settings (region, endpoint,
            access_key_id, secret_access_key, connection_string, project);
            each provider ignores the ones it does not use

    Returns:
        Storage provider instance

    Raises:
        ConfigurationError: descriptor is empty or incomplete
    """
    if not location or not location.strip():
        raise ConfigurationError("STORAGE_LOCATION is required")

    location = location.strip()

    scheme = match_scheme(location)
    if scheme is None:
        return LocalStorage(base_path=location, prefix=prefix, **options)

    root = location[len(scheme.prefix):].strip("/")
    if not root:
        raise ConfigurationError(f"Missing bucket/container name in '{location}'")

    if scheme.storage_class is AzureStorage:
        # azure://<account>/<container> or azure://<container>
        segments = root.split("/")
        if len(segments) > 1:
            return AzureStorage(container=segments[1], account=segments[0], prefix=prefix, **options)
        return AzureStorage(container=segments[0], prefix=prefix, **options)

    return scheme.storage_class(bucket=root, prefix=prefix, **options)

#-----------------------------------------------------------------------------

class StorageFactory:
    """Creates the process wide storage provider once and caches it"""

    _instance: Optional[AbstractStorage] = None
    _storage_type: Optional[str] = None

    #-----------------------------------------------------

    @classmethod
    def create_storage(cls, config: Any = None) -> AbstractStorage:
        """
        Create storage instance based on configuration

        Args:
            config: Config object (the global one if None)

        Returns:
            Storage instance
        """
        if cls._instance is not None:
            return cls._instance

        if config is None:
            from ..config import global_config
            config = global_config()

        if config is None:
            raise ConfigurationError("Configuration has not been loaded")

        location = config.get_str("STORAGE_LOCATION")
        prefix = config.get_str("STORAGE_PREFIX")

        instance = create_storage_provider(location, prefix, **config.get_storage_options())

        cls._instance = instance
        cls._storage_type = get_provider_type(location)

        logger.info(
            f"Storage instance created successfully: {cls._storage_type}",
            extra={
                "location"      : location,
                "prefix"        : prefix,
                "active_path"   : instance.active_path,
                "archived_path" : instance.archived_path
            }
        )

        return instance

    #-----------------------------------------------------

    @classmethod
    def get_storage_type(cls) -> Optional[str]:
        return cls._storage_type

    @classmethod
    def get_instance(cls) -> Optional[AbstractStorage]:
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset factory state (useful for testing)"""
        cls._instance = None
        cls._storage_type = None

#-----------------------------------------------------------------------------

def get_storage_client() -> AbstractStorage:
    instance = StorageFactory.get_instance()
    if instance is None:
        instance = StorageFactory.create_storage()
    return instance

#-----------------------------------------------------------------------------
