import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .db.mongo import connect, disconnect
from .errors import Inconsistent, NotFound, StoreUnavailable
from .routes.files import router as files_router
from .services.file_center import FileCenter

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    file_center: Optional[FileCenter] = None,
) -> FastAPI:
    """
    Build the HTTP app. Passing a ready FileCenter skips the MongoDB
    connection in the lifespan (tests, embedding).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if file_center is not None:
            app.state.file_center = file_center
            yield
            return
        cfg = settings or get_settings()
        db = await connect(cfg)
        try:
            app.state.file_center = await FileCenter.from_settings(cfg, db=db)
            yield
        finally:
            await disconnect()

    app = FastAPI(lifespan=lifespan)
    app.include_router(files_router)

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable):
        return JSONResponse(status_code=503, content={"ok": False, "detail": "store unavailable"})

    @app.exception_handler(Inconsistent)
    async def inconsistent(request: Request, exc: Inconsistent):
        logger.error("inconsistent file data: %s", exc)
        return JSONResponse(status_code=500, content={"ok": False, "detail": "corrupted file"})

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"ok": False, "detail": "not found"})

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    return app
