import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from . import policy
from .abstract import AbstractStorage, FileEntry, ListPage, StorageLocation
from .errors import BackendUnavailableError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

#-----------------------------------------------------------------------------

NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")

#-----------------------------------------------------------------------------

class AwsStorage(AbstractStorage):
    """AWS S3 storage implementation (also S3 compatible services via endpoint)"""

    display_name = "S3"

    def __init__(
        self,
        bucket              : str,
        prefix              : str = "",
        region              : str = "",
        endpoint            : str = "",
        access_key_id       : str = "",
        secret_access_key   : str = "",
        session             : Any = None,
        **kwargs
    ):
        clean = policy.clean_prefix(prefix)
        active_path, archived_path = policy.object_store_paths(clean)

        super().__init__(
            StorageLocation(
                kind            = "s3",
                root            = bucket.strip(),
                prefix          = clean,
                active_path     = active_path,
                archived_path   = archived_path
            )
        )

        self.bucket = bucket.strip()

        if session is None:
            import aioboto3

            # Empty values fall back to the default credential chain.
            session_params = {}
            if access_key_id and secret_access_key:
                session_params["aws_access_key_id"] = access_key_id.strip()
                session_params["aws_secret_access_key"] = secret_access_key.strip()
            if region:
                session_params["region_name"] = region.strip()

            session = aioboto3.Session(**session_params)

        self.session = session
        self._client_params = {}

        # Add endpoint URL if provided (for MinIO compatibility)
        if endpoint:
            self._client_params["endpoint_url"] = endpoint.strip()

        logger.info(f"S3 storage initialized: bucket={self.bucket}, active={self.active_path}")

    #-----------------------------------------------------

    def _to_storage_error(self, e: Exception, message: str, key: str) -> StorageError:
        if isinstance(e, ClientError):
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in NOT_FOUND_CODES:
                logger.warning(f"{message}: {key} not found in S3")
                return NotFoundError("File not found", key=key)

        logger.error(f"{message}: {str(e)}", exc_info=True)
        return BackendUnavailableError(f"{message}: {str(e)}", key=key)

    #-----------------------------------------------------

    async def list_files(self, path: str, limit: int = 100, continuation_token: str | None = None) -> ListPage:
        native = policy.decode_token(continuation_token, policy.TOKEN_NATIVE)
        prefix = self._listing_prefix(path)

        params = {
            "Bucket"    : self.bucket,
            "Prefix"    : prefix,
            "Delimiter" : "/",
            "MaxKeys"   : self.clamp_limit(limit)
        }
        if native:
            params["ContinuationToken"] = native

        try:
            async with self.session.client("s3", **self._client_params) as client:
                response = await client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._to_storage_error(e, "Failed to list files from S3", prefix) from e

        files = [
            FileEntry(
                key             = obj["Key"],
                name            = policy.basename(obj["Key"]),
                size            = obj.get("Size"),
                last_modified   = obj.get("LastModified")
            )
            for obj in response.get("Contents", [])
        ]
        dirs = [p["Prefix"] for p in response.get("CommonPrefixes", [])]

        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None

        return self._build_page(prefix, dirs, files, next_token)

    #-----------------------------------------------------

    async def get_file(self, key: str) -> Any:
        try:
            async with self.session.client("s3", **self._client_params) as client:
                response = await client.get_object(Bucket=self.bucket, Key=key)

                async with response["Body"] as stream:
                    content = await stream.read()

        except (ClientError, BotoCoreError) as e:
            raise self._to_storage_error(e, "Failed to get file from S3", key) from e

        return self._parse_json(content, key)

    #-----------------------------------------------------

    async def copy_file(self, source_key: str, dest_key: str) -> None:
        try:
            async with self.session.client("s3", **self._client_params) as client:
                await client.copy_object(
                    Bucket      = self.bucket,
                    Key         = dest_key,
                    CopySource  = {"Bucket": self.bucket, "Key": source_key}
                )
        except (ClientError, BotoCoreError) as e:
            raise self._to_storage_error(e, "Failed to copy file in S3", source_key) from e

        logger.info(f"File copied in S3: {source_key} -> {dest_key}")

    #-----------------------------------------------------

    async def delete_file(self, key: str) -> None:
        try:
            async with self.session.client("s3", **self._client_params) as client:
                # delete_object succeeds for missing keys, check first.
                await client.head_object(Bucket=self.bucket, Key=key)
                await client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._to_storage_error(e, "Failed to delete from S3", key) from e

        logger.info(f"File deleted from S3 successfully: {key}")

    #-----------------------------------------------------

    async def save_file(self, filename: str, content: Any) -> dict[str, str]:
        key = self.join_path(self.active_path, filename)

        try:
            async with self.session.client("s3", **self._client_params) as client:
                await client.put_object(
                    Bucket      = self.bucket,
                    Key         = key,
                    Body        = self._dump_json(content),
                    ContentType = "application/json"
                )
        except (ClientError, BotoCoreError) as e:
            raise self._to_storage_error(e, "Failed to upload to S3", key) from e

        logger.info(f"File uploaded to S3 successfully: {key}")

        return {
            "key"       : key,
            "filename"  : filename
        }

#-----------------------------------------------------------------------------
