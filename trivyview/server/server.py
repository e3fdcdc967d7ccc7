import logging, sys

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.middleware import Middleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.exceptions import HTTPException
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from ..utils.config.storage import (
    AbstractStorage,
    ConfigurationError,
    StorageFactory,
    get_storage_client
)
from ..utils.http import error_response
from .files_router import router as files_router
from .middlewares import RequestContextMiddleware

#-----------------------------------------------------------------------------

class IndexFallbackStaticFiles(StaticFiles):
    """Serves index.html for any path that is not a file, so client side routes work"""

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except HTTPException as e:
            if e.status_code != 404:
                raise
        return await super().get_response("index.html", scope)

#-----------------------------------------------------------------------------

class Server:
    def __init__(
        self,
        storage         : AbstractStorage,

        server_name     : str = "",
        server_version  : str = "",

        uri_prefix      : str = "",
        htdoc           : str = "",

        debug           : bool = False
    ):
        self._storage = storage

        self._server_name = server_name if server_name else "trivyview"
        self._server_version = server_version

        self._uri_prefix = uri_prefix
        self._htdoc = htdoc
        self._debug = debug

        #-------------------------------------------------

        self._health_path = f"{uri_prefix}/api/health"

        self._routes = [
            Route(self._health_path, endpoint=self.health_check_handler, methods=["GET"])
        ]

        self._middlewares = [
            Middleware(GZipMiddleware,
                       minimum_size=10_000),
            Middleware(RequestContextMiddleware,
                       skip_paths=[self._health_path])
        ]

    #-----------------------------------------------------

    async def health_check_handler(self, request: Request) -> Response:
        return JSONResponse(
            content = {
                "status"    : "ok",
                "timestamp" : datetime.now(timezone.utc).isoformat(),
                "provider"  : self._storage.display_name,
                "service"   : self._server_name,
                "version"   : self._server_version
            }
        )

    #-----------------------------------------------------

    def get_routes(self) -> list:
        return self._routes

    def get_middlewares(self) -> list:
        return self._middlewares

    #-----------------------------------------------------

    def create_app(self) -> FastAPI:
        storage = self._storage

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            yield
            await storage.close()
            logging.info(f"Storage client closed: {storage.display_name}")

        app = FastAPI(
            debug       = self._debug,
            title       = self._server_name,
            version     = self._server_version if self._server_version else "1.0.0",
            routes      = self.get_routes(),
            middleware  = self.get_middlewares(),
            lifespan    = lifespan
        )

        app.dependency_overrides[get_storage_client] = lambda: storage

        async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
            details = "; ".join(
                f"{'.'.join(str(loc) for loc in err.get('loc', ()))}: {err.get('msg', '')}"
                for err in exc.errors()
            )
            return error_response("Invalid request", details, 400, request)

        app.add_exception_handler(RequestValidationError, validation_error_handler)

        app.include_router(files_router, prefix=self._uri_prefix)

        # Mounted last, "/" would shadow the API routes otherwise.
        if self._htdoc:
            app.mount("/", IndexFallbackStaticFiles(directory=self._htdoc, html=True), name="htdoc")
            logging.info(f"Static files enabled: {self._htdoc}")

        return app

    #-----------------------------------------------------

    @staticmethod
    async def start(yaml_files: list[str] | None = None):
        # Load configuration via file.
        from ..utils import Config
        config = await Config.init(yaml_filenames=yaml_files)
        config.print()

        #-----------------------------------------------------
        # Storage backend, fixed for the process lifetime.

        try:
            storage = StorageFactory.create_storage(config)
        except ConfigurationError as e:
            logging.critical(f"Storage is not configured: {e.message}")
            sys.exit(1)

        logging.info(
            f"Using {StorageFactory.get_storage_type()} storage",
            extra={
                "active_path"   : storage.active_path,
                "archived_path" : storage.archived_path
            }
        )

        #-----------------------------------------------------

        server = Server(
            storage         = storage,

            server_name     = config.http.name,
            server_version  = config.http.version,

            uri_prefix      = config.http.uri_prefix,
            htdoc           = config.http.htdoc,

            debug           = config.log.level <= logging.DEBUG
        )
        app = server.create_app()

        #-----------------------------------------------------
        # Start asgi server.

        import uvicorn
        asgi_server = uvicorn.Server(
            uvicorn.Config(
                app         = app,
                host        = config.http.host,
                port        = config.http.port,
                headers     = config.http.headers,
                log_level   = config.log.level if config.log.level <= logging.DEBUG else logging.WARNING
            )
        )
        await asgi_server.serve()

#-----------------------------------------------------------------------------

def run():
    """Console entry point: trivyview [config_files]"""
    import asyncio
    asyncio.run(Server.start(yaml_files=sys.argv[1:]))

#-----------------------------------------------------------------------------
