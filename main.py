import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.routes.sessions import router as sessions_router
from core.config import (
    CORS_ORIGINS,
    DEFAULT_SEGMENT_DURATION,
    HOST,
    LOG_LEVEL,
    MAX_CHUNK_BYTES,
    PORT,
    VIDEO_DIR,
)
from core.exceptions import ApplicationError
from core.logging_config import configure_logging
from services.chunk_store import ChunkStore
from services.playlist import PlaylistGenerator
from services.session_registry import SessionRegistry
from services.session_service import SessionLifecycleManager

logger = logging.getLogger(__name__)


def build_session_manager(
    storage_root: Path,
    default_segment_duration: float = DEFAULT_SEGMENT_DURATION,
    max_chunk_bytes: int = MAX_CHUNK_BYTES,
) -> SessionLifecycleManager:
    store = ChunkStore(storage_root)
    registry = SessionRegistry(store, default_segment_duration)
    generator = PlaylistGenerator(store, registry)
    return SessionLifecycleManager(
        store, registry, generator, max_chunk_bytes=max_chunk_bytes
    )


async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s %s",
            request.method,
            request.url.path,
            exc.message,
            exc.details,
            exc_info=exc,
        )
    else:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    message = "; ".join(messages) or "Invalid request"
    logger.warning("%s %s -> 400: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def create_app(
    storage_root: Optional[Path] = None,
    default_segment_duration: Optional[float] = None,
    max_chunk_bytes: Optional[int] = None,
) -> FastAPI:
    manager = build_session_manager(
        Path(storage_root) if storage_root is not None else VIDEO_DIR,
        default_segment_duration or DEFAULT_SEGMENT_DURATION,
        max_chunk_bytes or MAX_CHUNK_BYTES,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(LOG_LEVEL)
        manager.startup()
        yield

    app = FastAPI(title="HLS chunk ingest", version="1.0.0", lifespan=lifespan)
    app.state.session_manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApplicationError, application_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_error_handler)

    app.include_router(sessions_router)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    configure_logging(LOG_LEVEL)
    logger.info("Video server running at http://%s:%d/ (storage: %s)", HOST, PORT, VIDEO_DIR)
    uvicorn.run("main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    run()
