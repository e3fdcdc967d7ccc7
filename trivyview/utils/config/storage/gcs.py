import asyncio
import logging
from functools import partial
from typing import Any

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError

from . import policy
from .abstract import AbstractStorage, FileEntry, ListPage, StorageLocation
from .errors import BackendUnavailableError, ConfigurationError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

#-----------------------------------------------------------------------------

class GcsStorage(AbstractStorage):
    """
    Google Cloud Storage implementation

    Uses Application Default Credentials. google-cloud-storage is synchronous,
    so every call runs in the default thread pool.
    """

    display_name = "GCS"

    def __init__(
        self,
        bucket              : str,
        prefix              : str = "",
        project             : str = "",
        client              : Any = None,
        **kwargs
    ):
        bucket = bucket.strip()
        clean = policy.clean_prefix(prefix)
        active_path, archived_path = policy.object_store_paths(clean)

        super().__init__(
            StorageLocation(
                kind            = "gcs",
                root            = bucket,
                prefix          = clean,
                active_path     = active_path,
                archived_path   = archived_path
            )
        )

        if client is None:
            from google.cloud import storage

            try:
                client = storage.Client(project=project.strip()) if project else storage.Client()
            except GoogleAuthError as e:
                raise ConfigurationError(f"Failed to initialize GCS client: {str(e)}") from e

        self.bucket_name = bucket
        self.client = client
        self._bucket = client.bucket(bucket)

        logger.info(f"GCS storage initialized: bucket={bucket}, active={self.active_path}")

    #-----------------------------------------------------

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def _to_storage_error(self, e: Exception, message: str, key: str) -> StorageError:
        if isinstance(e, NotFound):
            logger.warning(f"{message}: {key} not found in GCS")
            return NotFoundError("File not found", key=key)

        logger.error(f"{message}: {str(e)}", exc_info=True)
        return BackendUnavailableError(f"{message}: {str(e)}", key=key)

    #-----------------------------------------------------

    async def list_files(self, path: str, limit: int = 100, continuation_token: str | None = None) -> ListPage:
        native = policy.decode_token(continuation_token, policy.TOKEN_NATIVE)
        prefix = self._listing_prefix(path)
        limit = self.clamp_limit(limit)

        def list_page():
            iterator = self.client.list_blobs(
                self.bucket_name,
                prefix      = prefix,
                delimiter   = "/",
                max_results = limit,
                page_token  = native
            )
            page = next(iterator.pages, None)
            if page is None:
                return [], [], None
            blobs = list(page)
            return blobs, list(getattr(page, "prefixes", ())), iterator.next_page_token

        try:
            blobs, dirs, next_token = await self._run(list_page)
        except (GoogleAPIError, GoogleAuthError) as e:
            logger.error(f"Failed to list files from GCS: {str(e)}", exc_info=True)
            raise BackendUnavailableError(f"Failed to list files from GCS: {str(e)}", key=prefix) from e

        files = [
            FileEntry(
                key             = blob.name,
                name            = policy.basename(blob.name),
                size            = int(blob.size) if blob.size is not None else None,
                last_modified   = blob.updated
            )
            for blob in blobs
        ]

        return self._build_page(prefix, dirs, files, next_token)

    #-----------------------------------------------------

    async def get_file(self, key: str) -> Any:
        try:
            content = await self._run(self._bucket.blob(key).download_as_bytes)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise self._to_storage_error(e, "Failed to get file from GCS", key) from e

        return self._parse_json(content, key)

    #-----------------------------------------------------

    async def copy_file(self, source_key: str, dest_key: str) -> None:
        try:
            await self._run(
                self._bucket.copy_blob,
                self._bucket.blob(source_key),
                self._bucket,
                dest_key
            )
        except (GoogleAPIError, GoogleAuthError) as e:
            raise self._to_storage_error(e, "Failed to copy file in GCS", source_key) from e

        logger.info(f"File copied in GCS: {source_key} -> {dest_key}")

    #-----------------------------------------------------

    async def delete_file(self, key: str) -> None:
        try:
            await self._run(self._bucket.blob(key).delete)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise self._to_storage_error(e, "Failed to delete from GCS", key) from e

        logger.info(f"File deleted from GCS successfully: {key}")

    #-----------------------------------------------------

    async def save_file(self, filename: str, content: Any) -> dict[str, str]:
        key = self.join_path(self.active_path, filename)

        try:
            await self._run(
                self._bucket.blob(key).upload_from_string,
                self._dump_json(content),
                content_type="application/json"
            )
        except (GoogleAPIError, GoogleAuthError) as e:
            raise self._to_storage_error(e, "Failed to upload to GCS", key) from e

        logger.info(f"File uploaded to GCS successfully: {key}")

        return {
            "key"       : key,
            "filename"  : filename
        }

    #-----------------------------------------------------

    async def close(self):
        await self._run(self.client.close)

#-----------------------------------------------------------------------------
