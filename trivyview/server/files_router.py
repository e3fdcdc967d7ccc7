"""
REST routes for report files

    GET  /api/files                 list a directory of the active path
    POST /api/files/upload          store a new report under the active path
    POST /api/files/archive         move a report to the archived path
    GET  /api/files/{key}           fetch one report
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel

from ..utils.config import global_config
from ..utils.config.config import DEFAULT_LIST_LIMIT, DEFAULT_UPLOAD_MAX_BYTES
from ..utils.config.storage import (
    AbstractStorage,
    InvalidRequestError,
    StorageError,
    get_storage_client
)
from ..utils.config.storage import policy
from ..utils.http import error_response, json_response, storage_error_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])

#-----------------------------------------------------------------------------

@dataclass
class FileSettings:
    upload_max_bytes    : int = DEFAULT_UPLOAD_MAX_BYTES
    list_default_limit  : int = DEFAULT_LIST_LIMIT


def get_file_settings() -> FileSettings:
    config = global_config()
    if config is None:
        return FileSettings()
    return FileSettings(
        upload_max_bytes    = config.upload_max_bytes,
        list_default_limit  = config.list_default_limit
    )

#-----------------------------------------------------------------------------

class UploadRequest(BaseModel):
    """Upload body; fields are optional so that missing ones give a 400"""

    filename: Optional[str] = None
    content: Any = None


class ArchiveRequest(BaseModel):
    key: Optional[str] = None

#-----------------------------------------------------------------------------

@router.get("")
async def list_files(
    request: Request,
    path: str = Query(""),
    limit: Optional[int] = Query(None),
    continuation_token: Optional[str] = Query(None, alias="continuationToken"),
    storage: AbstractStorage = Depends(get_storage_client),
    settings: FileSettings = Depends(get_file_settings)
) -> Response:
    current_path, list_path = storage.resolve_list_path(path)

    try:
        page = await storage.list_files(
            list_path,
            limit               = limit if limit is not None else settings.list_default_limit,
            continuation_token  = continuation_token
        )
    except StorageError as e:
        return storage_error_response("Failed to list files", e, request)

    result = page.to_dict()
    result["currentPath"] = current_path

    return json_response(result, request=request, disable_log=True)

#-----------------------------------------------------------------------------

@router.post("/upload")
async def upload_file(
    body: UploadRequest,
    request: Request,
    storage: AbstractStorage = Depends(get_storage_client),
    settings: FileSettings = Depends(get_file_settings)
) -> Response:
    if not body.filename:
        return error_response("Filename is required", "Request body must contain 'filename'", 400, request)

    if not policy.validate_filename(body.filename):
        return error_response(
            "Invalid filename",
            "Filename may only contain letters, digits, spaces, '_', '-', '.' and must end with .json",
            400,
            request
        )

    if body.content is None:
        return error_response("Content is required", "Request body must contain 'content'", 400, request)

    try:
        size = policy.validate_report(body.content, settings.upload_max_bytes)
    except InvalidRequestError as e:
        return storage_error_response("Invalid report", e, request)

    try:
        result = await storage.save_file(body.filename, body.content)
    except StorageError as e:
        return storage_error_response("Failed to upload file", e, request)

    logger.info(f"Report uploaded: {result['key']}", extra={"size": size})

    return json_response(
        {
            "message"   : "File uploaded successfully",
            "filename"  : result["filename"],
            "key"       : result["key"]
        },
        request=request
    )

#-----------------------------------------------------------------------------

@router.post("/archive")
async def archive_file(
    body: ArchiveRequest,
    request: Request,
    storage: AbstractStorage = Depends(get_storage_client)
) -> Response:
    if not body.key or not body.key.strip():
        return error_response("File key is required", "Request body must contain 'key'", 400, request)

    try:
        result = await storage.archive_file(body.key.strip())
    except StorageError as e:
        return storage_error_response("Failed to archive file", e, request)

    return json_response(
        {
            "message"       : "File archived successfully",
            **result
        },
        request=request
    )

#-----------------------------------------------------------------------------

@router.get("/{key:path}")
async def get_file(
    key: str,
    request: Request,
    storage: AbstractStorage = Depends(get_storage_client)
) -> Response:
    if not key.strip("/\\"):
        return error_response("File key is required", "Empty file key", 400, request)

    try:
        content = await storage.get_file(storage.qualify_key(key))
    except StorageError as e:
        return storage_error_response("Failed to fetch file", e, request)

    return json_response(content, request=request, disable_log=True)

#-----------------------------------------------------------------------------
