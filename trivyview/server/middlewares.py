import logging, time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..utils.http import get_client_ip
from ..utils.req_ctx import new_trace_id, set_req_ctx

logger = logging.getLogger(__name__)

#-----------------------------------------------------------------------------

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Sets the request context used by the JSON log formatter and logs every
    request with its status and time cost.
    """

    def __init__(
        self,
        app,
        dispatch = None,
        skip_paths: list[str] | None = None
    ):
        self._skip_paths = set(skip_paths) if skip_paths else set()

        super().__init__(app, dispatch)

    #-----------------------------------------------------

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.start_time = time.time()
        request.state.trace_id = new_trace_id(request.headers)

        ctx = {
            "trace_id"  : request.state.trace_id,
            "path"      : request.url.path,
            "method"    : request.method
        }

        with set_req_ctx(ctx):
            response = await call_next(request)

            response.headers["X-Request-ID"] = request.state.trace_id

            if request.url.path not in self._skip_paths:
                extra = {
                    "status"    : response.status_code,
                    "time_cost" : round((time.time()-request.state.start_time)*1e3, 2)
                }
                ip = get_client_ip(request)
                if ip:
                    extra["ip"] = ip

                logger.info(f"{request.method} {request.url.path}", extra=extra)

        return response

#-----------------------------------------------------------------------------
