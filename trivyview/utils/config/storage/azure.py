import asyncio
import logging
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import ContentSettings

from . import policy
from .abstract import AbstractStorage, FileEntry, ListPage, StorageLocation
from .errors import BackendUnavailableError, ConfigurationError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

#-----------------------------------------------------------------------------

COPY_POLL_INTERVAL = 0.5

#-----------------------------------------------------------------------------

class AzureStorage(AbstractStorage):
    """
    Azure Blob storage implementation

    Authenticates with a connection string when one is configured, otherwise
    with DefaultAzureCredential against https://<account>.blob.core.windows.net.
    """

    display_name = "Azure Blob"

    def __init__(
        self,
        container           : str,
        account             : str = "",
        prefix              : str = "",
        connection_string   : str = "",
        container_client    : Any = None,
        **kwargs
    ):
        container = container.strip()
        account = account.strip()
        if not container:
            raise ConfigurationError("Azure container name is required")

        clean = policy.clean_prefix(prefix)
        active_path, archived_path = policy.object_store_paths(clean)

        super().__init__(
            StorageLocation(
                kind            = "azure",
                root            = container,
                prefix          = clean,
                account         = account,
                active_path     = active_path,
                archived_path   = archived_path
            )
        )

        self.container = container
        self._service_client = None
        self._credential = None

        if container_client is None:
            from azure.storage.blob.aio import BlobServiceClient

            if connection_string:
                self._service_client = BlobServiceClient.from_connection_string(connection_string.strip())
            elif account:
                from azure.identity.aio import DefaultAzureCredential

                self._credential = DefaultAzureCredential()
                self._service_client = BlobServiceClient(
                    account_url = f"https://{account}.blob.core.windows.net",
                    credential  = self._credential
                )
            else:
                raise ConfigurationError(
                    "Azure storage needs 'azure://<account>/<container>' or AZURE_STORAGE_CONNECTION_STRING"
                )

            container_client = self._service_client.get_container_client(container)

        self.container_client = container_client

        logger.info(f"Azure Blob storage initialized: account={account}, container={container}, active={self.active_path}")

    #-----------------------------------------------------

    def _to_storage_error(self, e: Exception, message: str, key: str) -> StorageError:
        if isinstance(e, ResourceNotFoundError):
            logger.warning(f"{message}: {key} not found in Azure Blob")
            return NotFoundError("File not found", key=key)

        logger.error(f"{message}: {str(e)}", exc_info=True)
        return BackendUnavailableError(f"{message}: {str(e)}", key=key)

    #-----------------------------------------------------

    async def list_files(self, path: str, limit: int = 100, continuation_token: str | None = None) -> ListPage:
        native = policy.decode_token(continuation_token, policy.TOKEN_NATIVE)
        prefix = self._listing_prefix(path)

        dirs = []
        files = []
        next_token = None

        try:
            pages = self.container_client.walk_blobs(
                name_starts_with    = prefix,
                delimiter           = "/",
                results_per_page    = self.clamp_limit(limit)
            ).by_page(continuation_token=native)

            async for page in pages:
                async for item in page:
                    # Virtual directories come back as BlobPrefix items named "<prefix>/".
                    if item.name.endswith("/"):
                        dirs.append(item.name)
                    else:
                        files.append(
                            FileEntry(
                                key             = item.name,
                                name            = policy.basename(item.name),
                                size            = item.size,
                                last_modified   = item.last_modified
                            )
                        )
                next_token = pages.continuation_token
                break

        except AzureError as e:
            # A missing container is a configuration problem, not an empty listing.
            logger.error(f"Failed to list files from Azure Blob: {str(e)}", exc_info=True)
            raise BackendUnavailableError(f"Failed to list files from Azure Blob: {str(e)}", key=prefix) from e

        return self._build_page(prefix, dirs, files, next_token or None)

    #-----------------------------------------------------

    async def get_file(self, key: str) -> Any:
        try:
            blob_client = self.container_client.get_blob_client(key)
            downloader = await blob_client.download_blob()
            content = await downloader.readall()
        except AzureError as e:
            raise self._to_storage_error(e, "Failed to get file from Azure Blob", key) from e

        return self._parse_json(content, key)

    #-----------------------------------------------------

    async def copy_file(self, source_key: str, dest_key: str) -> None:
        try:
            source_client = self.container_client.get_blob_client(source_key)
            if not await source_client.exists():
                raise ResourceNotFoundError(f"Blob {source_key} does not exist")

            dest_client = self.container_client.get_blob_client(dest_key)
            await dest_client.start_copy_from_url(source_client.url)

            # Server side copy may complete asynchronously.
            props = await dest_client.get_blob_properties()
            while props.copy.status == "pending":
                await asyncio.sleep(COPY_POLL_INTERVAL)
                props = await dest_client.get_blob_properties()

        except AzureError as e:
            raise self._to_storage_error(e, "Failed to copy file in Azure Blob", source_key) from e

        if props.copy.status not in (None, "success"):
            logger.error(f"Azure Blob copy {source_key} -> {dest_key} ended with status {props.copy.status}")
            raise BackendUnavailableError(f"Copy ended with status {props.copy.status}", key=source_key)

        logger.info(f"File copied in Azure Blob: {source_key} -> {dest_key}")

    #-----------------------------------------------------

    async def delete_file(self, key: str) -> None:
        try:
            blob_client = self.container_client.get_blob_client(key)
            await blob_client.delete_blob()
        except AzureError as e:
            raise self._to_storage_error(e, "Failed to delete from Azure Blob", key) from e

        logger.info(f"File deleted from Azure Blob successfully: {key}")

    #-----------------------------------------------------

    async def save_file(self, filename: str, content: Any) -> dict[str, str]:
        key = self.join_path(self.active_path, filename)

        try:
            await self.container_client.upload_blob(
                name                = key,
                data                = self._dump_json(content),
                overwrite           = True,
                content_settings    = ContentSettings(content_type="application/json")
            )
        except AzureError as e:
            raise self._to_storage_error(e, "Failed to upload to Azure Blob", key) from e

        logger.info(f"File uploaded to Azure Blob successfully: {key}")

        return {
            "key"       : key,
            "filename"  : filename
        }

    #-----------------------------------------------------

    async def close(self):
        if self._service_client is not None:
            await self._service_client.close()
        if self._credential is not None:
            await self._credential.close()

#-----------------------------------------------------------------------------
