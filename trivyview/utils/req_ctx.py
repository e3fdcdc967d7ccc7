import uuid

from contextlib import contextmanager
from contextvars import ContextVar

#-----------------------------------------------------------------------------

# Values of the request being served, read by the JSON log formatter.
REQ_CTX: ContextVar[dict | None] = ContextVar("trivyview_request_ctx", default=None)

TRACE_ID_HEADERS = ("X-Request-ID", "X-Trace-ID", "traceid")

#-----------------------------------------------------------------------------

def get_req_ctx(key: str, default=None):
    ctx = REQ_CTX.get()
    return ctx[key] if ctx and key in ctx else default


def update_req_ctx(**kwargs):
    ctx = REQ_CTX.get()
    if ctx is not None:
        ctx.update(kwargs)


def new_trace_id(headers=None) -> str:
    """Trace ID sent by the client, or a new one"""
    if headers:
        for name in TRACE_ID_HEADERS:
            value = headers.get(name)
            if value and value.strip():
                return value.strip()[:128]
    return uuid.uuid4().hex


@contextmanager
def set_req_ctx(data: dict):
    token = REQ_CTX.set(data)
    try:
        yield data
    finally:
        REQ_CTX.reset(token)

#-----------------------------------------------------------------------------
