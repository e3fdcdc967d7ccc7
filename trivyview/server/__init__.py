from .server import Server
from .files_router import router as files_router

__all__ = [
    "Server",
    "files_router",
]
