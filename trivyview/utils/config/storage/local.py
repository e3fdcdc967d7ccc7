import os
import asyncio
import logging
import shutil
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any

from . import policy
from .abstract import AbstractStorage, FileEntry, ListPage, StorageLocation, DIRECTORY
from .errors import BackendUnavailableError, NotFoundError

logger = logging.getLogger(__name__)

#-----------------------------------------------------------------------------

class LocalStorage(AbstractStorage):
    """
    Local filesystem storage implementation

    Keys are absolute native paths. Listing pages are offsets into a fresh
    scan of the directory, sorted by modification time (newest first), so
    every page request rescans the whole directory and nothing guarantees
    consistency if the directory changes between pages. Fine for the few
    hundred reports this is meant for, slow for very large directories.
    """

    display_name = "Filesystem"

    def __init__(
        self,
        base_path           : str = ".",
        prefix              : str = "",
        **kwargs  # Accept and ignore options meant for cloud backends
    ):
        """
        Args:
            base_path: Root directory, resolved to an absolute path
            prefix: Optional sub-directory holding active/ and archived/
        """
        root = os.path.abspath(base_path)
        clean = policy.clean_prefix(prefix)
        prefix_path = os.path.join(root, *clean.split("/")) if clean else root

        super().__init__(
            StorageLocation(
                kind            = "local",
                root            = root,
                prefix          = clean,
                active_path     = os.path.join(prefix_path, policy.ACTIVE_DIR),
                archived_path   = os.path.join(prefix_path, policy.ARCHIVED_DIR)
            )
        )

        self.base_path = Path(root)
        logger.info(f"Local storage initialized: base_path={self.base_path}, active={self.active_path}")

    #-----------------------------------------------------

    def join_path(self, base: str, *parts: str) -> str:
        cleaned = [p.strip("/\\") for p in parts if p and p.strip("/\\")]
        return os.path.join(base, *cleaned)

    def _get_file_path(self, key: str) -> Path:
        path = Path(key)
        if not path.is_absolute():
            path = self.base_path / path
        return path

    async def _run(self, func, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    #-----------------------------------------------------

    async def list_files(self, path: str, limit: int = 100, continuation_token: str | None = None) -> ListPage:
        offset = policy.decode_token(continuation_token, policy.TOKEN_OFFSET) or 0
        limit = self.clamp_limit(limit)

        dir_path = self._get_file_path(path)

        try:
            entries = await self._run(self._scan, dir_path)
        except OSError as e:
            logger.error(f"Failed to list local directory {dir_path}: {str(e)}", exc_info=True)
            raise BackendUnavailableError(f"Failed to list directory: {str(e)}", key=str(dir_path)) from e

        end = offset + limit
        return ListPage(
            entries     = entries[offset:end],
            next_token  = policy.encode_token(offset=end) if end < len(entries) else None
        )

    def _scan(self, dir_path: Path) -> list[FileEntry]:
        if not dir_path.is_dir():
            return []

        dirs = []
        files = []

        with os.scandir(dir_path) as it:
            for entry in it:
                try:
                    if entry.is_dir():
                        mtime = entry.stat().st_mtime
                        dirs.append((mtime, FileEntry(key=entry.path, name=entry.name, type=DIRECTORY)))

                    elif entry.is_file() and policy.is_json_key(entry.name):
                        stat = entry.stat()
                        files.append((
                            stat.st_mtime,
                            FileEntry(
                                key             = entry.path,
                                name            = entry.name,
                                size            = stat.st_size,
                                last_modified   = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
                            )
                        ))

                except FileNotFoundError:
                    # Removed while scanning.
                    continue

        def order(item):
            return (-item[0], item[1].name)

        dirs.sort(key=order)
        files.sort(key=order)

        return [e for _, e in dirs] + [e for _, e in files]

    #-----------------------------------------------------

    async def get_file(self, key: str) -> Any:
        file_path = self._get_file_path(key)

        try:
            content = await self._run(file_path.read_bytes)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            logger.warning(f"File not found: {file_path}")
            raise NotFoundError("File not found", key=key) from e
        except OSError as e:
            logger.error(f"Failed to read file from local storage: {str(e)}", exc_info=True)
            raise BackendUnavailableError(f"Failed to read file: {str(e)}", key=key) from e

        return self._parse_json(content, key)

    #-----------------------------------------------------

    async def copy_file(self, source_key: str, dest_key: str) -> None:
        source_path = self._get_file_path(source_key)
        dest_path = self._get_file_path(dest_key)

        def copy():
            if not source_path.is_file():
                raise FileNotFoundError(str(source_path))
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source_path, dest_path)

        try:
            await self._run(copy)
        except FileNotFoundError as e:
            logger.warning(f"Copy source not found: {source_path}")
            raise NotFoundError("Source file not found", key=source_key) from e
        except OSError as e:
            logger.error(f"Failed to copy {source_path} to {dest_path}: {str(e)}", exc_info=True)
            raise BackendUnavailableError(f"Failed to copy file: {str(e)}", key=source_key) from e

        logger.info(f"File copied in local storage: {source_path} -> {dest_path}")

    #-----------------------------------------------------

    async def delete_file(self, key: str) -> None:
        file_path = self._get_file_path(key)

        try:
            await self._run(file_path.unlink)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            logger.warning(f"File not found for deletion: {file_path}")
            raise NotFoundError("File not found", key=key) from e
        except OSError as e:
            logger.error(f"Failed to delete file from local storage: {str(e)}", exc_info=True)
            raise BackendUnavailableError(f"Failed to delete file: {str(e)}", key=key) from e

        logger.info(f"File deleted from local storage: {file_path}")

    #-----------------------------------------------------

    async def save_file(self, filename: str, content: Any) -> dict[str, str]:
        file_path = Path(self.active_path) / filename
        data = self._dump_json(content)

        def write():
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)

        try:
            await self._run(write)
        except OSError as e:
            logger.error(f"Failed to save file to local storage: {str(e)}", exc_info=True)
            raise BackendUnavailableError(f"Failed to save file: {str(e)}", key=str(file_path)) from e

        logger.info(f"File saved to local storage: {file_path}")

        return {
            "key"       : str(file_path),
            "filename"  : filename
        }

#-----------------------------------------------------------------------------
