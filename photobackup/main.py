import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from starlette.exceptions import HTTPException as StarletteHTTPException

from photobackup.core.config import Settings, get_settings
from photobackup.core.log import configure_logging
from photobackup.core.store import FileStore
from photobackup.routers import files

http_log = logging.getLogger("photobackup.http")
server_log = logging.getLogger("photobackup.server")


def create_app(settings: Optional[Settings] = None, store: Optional[FileStore] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    owns_store = store is None
    if store is None:
        os.makedirs(settings.data_dir, exist_ok=True)
        store = FileStore.open(settings.db_path, settings.storage_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_store:
            app.state.store.close()
            server_log.info("store closed")

    app = FastAPI(title="photobackup", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store

    # wrong verbs and unknown paths never reach a handler; log them here
    @app.exception_handler(StarletteHTTPException)
    async def _log_http_exception(request: Request, exc: StarletteHTTPException):
        unrouted = exc.status_code == 404 and request.scope.get("endpoint") is None
        if exc.status_code == 405 or unrouted:
            http_log.warning("%s %s rejected: %s", request.method, request.url.path, exc.detail)
        return await http_exception_handler(request, exc)

    app.include_router(files.router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    server_log.info("server listen on %s", settings.addr)
    uvicorn.run(app, host=settings.bind_host, port=settings.bind_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
