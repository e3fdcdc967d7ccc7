import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from . import policy
from .errors import InvalidContentError, StorageError

logger = logging.getLogger(__name__)

#-----------------------------------------------------------------------------

FILE = "file"
DIRECTORY = "directory"

#-----------------------------------------------------------------------------

@dataclass
class FileEntry:
    """One item found under a storage location"""

    key             : str
    name            : str
    type            : str = FILE
    size            : int | None = None
    last_modified   : datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        d = {
            "key"   : self.key,
            "name"  : self.name,
            "type"  : self.type
        }
        if self.size is not None:
            d["size"] = self.size
        if self.last_modified is not None:
            d["lastModified"] = self.last_modified.isoformat()
        return d


@dataclass
class ListPage:
    """
    Result of one listing call.

    has_more is derived from the token so the two can never disagree.
    """

    entries         : list[FileEntry] = field(default_factory=list)
    next_token      : str | None = None

    @property
    def has_more(self) -> bool:
        return self.next_token is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "files"                 : [e.to_dict() for e in self.entries],
            "nextContinuationToken" : self.next_token,
            "hasMore"               : self.has_more
        }


@dataclass(frozen=True)
class StorageLocation:
    """Storage configuration resolved once at startup"""

    kind            : str
    root            : str
    prefix          : str = ""
    account         : str = ""
    active_path     : str = ""
    archived_path   : str = ""

#-----------------------------------------------------------------------------

class AbstractStorage:
    """
    Base class for all storage backends (S3, Azure Blob, GCS, local disk).

    Subclasses implement list_files, get_file, copy_file, delete_file and
    save_file with identical semantics; archive_file is built on top of
    copy_file and delete_file.
    """

    display_name = "unknown"

    # Upper bound for a single listing page.
    max_page_size = 1000

    def __init__(self, location: StorageLocation):
        self.location = location

    #-----------------------------------------------------

    @property
    def active_path(self) -> str:
        return self.location.active_path

    @property
    def archived_path(self) -> str:
        return self.location.archived_path

    def get_storage_type(self) -> str:
        return self.__class__.__name__.lower().removesuffix("storage")

    #-----------------------------------------------------

    async def list_files(self, path: str, limit: int = 100, continuation_token: str | None = None) -> ListPage:
        """
        List JSON files and one level of sub-directories under a path

        Args:
            path: Directory-like location, interpreted as a prefix
            limit: Maximum number of entries, clamped to max_page_size
            continuation_token: Opaque token from a previous page

        Returns:
            ListPage with directories before files. An unknown path gives an
            empty page.
        """
        ...

    async def get_file(self, key: str) -> Any:
        """
        Read and parse a JSON document

        Raises:
            NotFoundError: key does not exist
            InvalidContentError: stored bytes are not JSON
        """
        ...

    async def copy_file(self, source_key: str, dest_key: str) -> None:
        """
        Duplicate an object, keeping the source

        Raises:
            NotFoundError: source does not exist
        """
        ...

    async def delete_file(self, key: str) -> None:
        """
        Remove an object

        Raises:
            NotFoundError: key does not exist
        """
        ...

    async def save_file(self, filename: str, content: Any) -> dict[str, str]:
        """
        Write a document as <active_path>/<filename>, overwriting silently

        Args:
            filename: Leaf name, already validated by policy.validate_filename
            content: JSON serializable document

        Returns:
            {"key": <backend key>, "filename": filename}
        """
        ...

    async def close(self):
        pass

    #-----------------------------------------------------

    async def archive_file(self, key: str, now: datetime | None = None) -> dict[str, str]:
        """
        Move a file from the active path to the archived path.

        Not transactional: if the delete fails after the copy succeeded, both
        copies remain and the delete error is raised.

        Args:
            key: Absolute backend key or a name relative to the active path
            now: Timestamp for the archived name (defaults to current UTC time)

        Returns:
            {"originalKey": ..., "archivedKey": ...}
        """
        source_key = self.qualify_key(key)
        archived_key = self.join_path(self.archived_path, policy.archived_name(source_key, now))

        await self.copy_file(source_key, archived_key)

        try:
            await self.delete_file(source_key)
        except StorageError as e:
            logger.error(
                f"Archive incomplete, copy kept at {archived_key} but delete failed: {e.message}",
                extra={"original_key": source_key, "archived_key": archived_key}
            )
            raise

        logger.info(f"File archived: {source_key} -> {archived_key}")

        return {
            "originalKey"   : source_key,
            "archivedKey"   : archived_key
        }

    #-----------------------------------------------------

    def join_path(self, base: str, *parts: str) -> str:
        return policy.join_key(base, *parts)

    def qualify_key(self, key: str) -> str:
        """
        Make a caller supplied key absolute.

        Keys that already start with the active path are kept; anything else
        is treated as relative to the active path. Either way the part below
        the active path loses its empty and ".." segments, so the result
        never leaves the active path.
        """
        root = self.active_path.rstrip("/\\")
        if key == root:
            return key

        relative = key
        if key.startswith((f"{root}/", f"{root}{os.sep}")):
            relative = key[len(root) + 1:]

        relative = policy.sanitize_sub_path(relative)
        if not relative:
            return self.active_path
        return self.join_path(self.active_path, *relative.split("/"))

    def resolve_list_path(self, sub_path: str | None) -> tuple[str, str]:
        """
        Returns:
            (sanitized relative path, backend path to list)
        """
        relative = policy.sanitize_sub_path(sub_path)
        if not relative:
            return relative, self.active_path
        return relative, self.join_path(self.active_path, *relative.split("/"))

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.max_page_size
        return max(1, min(limit, self.max_page_size))

    #-----------------------------------------------------

    @staticmethod
    def _listing_prefix(path: str) -> str:
        path = path.lstrip("/")
        if not path:
            return ""
        return path if path.endswith("/") else f"{path}/"

    @staticmethod
    def _build_page(
        prefix          : str,
        dir_keys        : list[str],
        files           : list[FileEntry],
        native_token    : str | None
    ) -> ListPage:
        """
        Assemble a page from one native object store listing.

        Directory markers equal to the listed prefix are dropped, and only
        .json objects are kept as files.
        """
        entries = [
            FileEntry(key=k, name=policy.basename(k), type=DIRECTORY)
            for k in dir_keys
            if k and k != prefix
        ]
        entries.extend(f for f in files if policy.is_json_key(f.key) and f.key != prefix)

        return ListPage(entries=entries, next_token=policy.encode_token(native=native_token))

    @staticmethod
    def _dump_json(content: Any) -> bytes:
        return policy.dump_report(content)

    @staticmethod
    def _parse_json(data: bytes | str, key: str) -> Any:
        try:
            if isinstance(data, bytes | bytearray):
                data = data.decode("utf-8")
            return json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Invalid JSON content in {key}: {str(e)}")
            raise InvalidContentError(f"File is not valid JSON: {str(e)}", key=key) from e

#-----------------------------------------------------------------------------
