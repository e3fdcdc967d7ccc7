import json, logging, time

from typing import Any

from starlette.requests import Request
from starlette.responses import Response

from .config.storage.errors import (
    StorageError,
    NotFoundError,
    InvalidRequestError
)

#-----------------------------------------------------------------------------

def get_client_ip(request: Request) -> str:
    ip = request.headers.get("X-Forwarded-For", "")
    if ip:
        ip = ip.split(",")[0].strip()
    if ip:
        return ip

    if request.client:
        return request.client.host

    return ""

#-----------------------------------------------------------------------------

def _fill_extra_log(request: Request | None, extra: dict[str, Any]):
    if not request:
        return

    if request.url and request.url.path:
        extra["url"] = request.url.path

    ip = get_client_ip(request)
    if ip:
        extra["ip"] = ip

    if hasattr(request.state, "start_time"):
        extra["time_cost"] = round((time.time()-request.state.start_time)*1e3, 2)

#-----------------------------------------------------------------------------

def json_response(
    content     : Any,
    status_code : int = 200,
    request     : Request | None = None,
    disable_log : bool = False
) -> Response:
    if not disable_log:
        extra = {
            "status": status_code
        }
        _fill_extra_log(request=request, extra=extra)

        message = ""
        if isinstance(content, dict):
            for field in ("message", "error"):
                value = content.get(field)
                if isinstance(value, str) and value:
                    message = value
                    break

        if status_code >= 400:
            logging.warning(message, stacklevel=2, extra=extra)
        else:
            logging.info(message, stacklevel=2, extra=extra)

    return Response(
        content     = json.dumps(
            content,
            ensure_ascii= False,
            separators  = (",", ":")
        ),
        status_code = status_code,
        media_type  = "application/json; charset=utf-8"
    )

#-----------------------------------------------------------------------------

def error_response(
    error       : str,
    details     : str = "",
    status_code : int = 500,
    request     : Request | None = None
) -> Response:
    """Response body: {"error": <summary>, "details": <message>}"""
    return json_response(
        content     = {"error": error, "details": details},
        status_code = status_code,
        request     = request
    )


def get_error_status(e: Exception) -> int:
    """HTTP status for an exception raised by a storage provider"""
    if isinstance(e, NotFoundError):
        return 404
    if isinstance(e, InvalidRequestError):
        return 400
    return 500


def storage_error_response(summary: str, e: StorageError, request: Request | None = None) -> Response:
    return error_response(summary, e.message, get_error_status(e), request)

#-----------------------------------------------------------------------------
