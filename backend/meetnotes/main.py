from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from logging.handlers import RotatingFileHandler

from meetnotes.api.meetings import live_router, router as meetings_router
from meetnotes.api.settings import router as settings_router
from meetnotes.api.uploads import router as uploads_router
from meetnotes.config import Settings
from meetnotes.context import AppContext
from meetnotes.errors import (
    NotFoundError,
    OrderError,
    OrderErrorCode,
    PersistenceFailure,
    TranscriptionFailure,
    UploadError,
)
from meetnotes.services.asr_engine import Transcriber


def configure_logging(settings: Settings) -> None:
    # Minimal structured logging to local file
    log_file = settings.logs_dir / "backend.log"
    root = logging.getLogger()
    if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        handler = RotatingFileHandler(str(log_file), maxBytes=5_000_000, backupCount=2)
        handler.setFormatter(logging.Formatter(fmt="%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(handler)
    root.setLevel(logging.INFO)


def create_app(settings: Optional[Settings] = None, transcriber: Optional[Transcriber] = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings.ensure_dirs()
        configure_logging(settings)
        app.state.ctx = AppContext.build(settings, transcriber=transcriber)
        try:
            yield
        finally:
            app.state.ctx.engine.dispose()

    app = FastAPI(title="Meeting Notes Backend", version="0.2.0", lifespan=lifespan)

    # CORS for local dev and Tauri
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "tauri://localhost",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(meetings_router)
    app.include_router(live_router)
    app.include_router(uploads_router)
    app.include_router(settings_router)

    logger = logging.getLogger("meetnotes.api")

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):  # type: ignore[override]
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(OrderError)
    async def _order_error(request: Request, exc: OrderError):  # type: ignore[override]
        status = 409 if exc.code is OrderErrorCode.BUSY else 422
        return JSONResponse(status_code=status, content={"error": str(exc), "code": exc.code.value})

    @app.exception_handler(UploadError)
    async def _upload_error(request: Request, exc: UploadError):  # type: ignore[override]
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(TranscriptionFailure)
    async def _transcription_failure(request: Request, exc: TranscriptionFailure):  # type: ignore[override]
        logger.warning("Transcription failed: %s", exc)
        return JSONResponse(status_code=502, content={"error": str(exc), "source_id": exc.source_id})

    @app.exception_handler(PersistenceFailure)
    async def _persistence_failure(request: Request, exc: PersistenceFailure):  # type: ignore[override]
        logger.error("Persistence failure: %s", exc)
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[override]
        logger.exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    return app


def run() -> None:
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Meeting Notes Backend Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")

    args = parser.parse_args()

    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    run()
