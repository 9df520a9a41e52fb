"""Entry point for the FastAPI application."""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .database import build_engine, dispose_engine
from .errors import CleanupError, ErrorKind
from .routers import cleanup
from .schemas import HealthOut
from .services.cleanup_engine import CleanupEngine
from .services.dispatcher import CleanupDispatcher
from .services.row_store import PostgresRowStore, RowStoreGateway
from .services.task_registry import TaskRegistry


logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.DOMAIN: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.CANCELED: 504,
    ErrorKind.INFRASTRUCTURE: 500,
}


def configure_logging(settings: Settings) -> None:
    if settings.is_production:
        fmt = "%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"
    else:
        fmt = "%(levelname)s:     %(name)s - %(message)s"
    logging.basicConfig(level=settings.log_level.upper(), format=fmt)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CleanupError)
    def cleanup_error_handler(request: Request, exc: CleanupError) -> JSONResponse:
        message = exc.message
        if exc.kind is ErrorKind.INFRASTRUCTURE:
            logger.error(f"Cleanup error on {request.method} {request.url.path}: {exc.message}")
            message = "Internal server error"
        content = {"error": message}
        if exc.result is not None:
            content["result"] = exc.result.model_dump(mode="json")
        return JSONResponse(status_code=_STATUS_BY_KIND[exc.kind], content=content)

    @app.exception_handler(RequestValidationError)
    def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request format"})


def create_app(settings: Optional[Settings] = None, gateway: Optional[RowStoreGateway] = None) -> FastAPI:
    """Build the application.

    `gateway` replaces the PostgreSQL row store; when omitted an engine is
    created from the settings and disposed on shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    db_engine = None
    if gateway is None:
        db_engine = build_engine(settings)
        gateway = PostgresRowStore(
            db_engine,
            schema=settings.cleanup_schema,
            key_column=settings.cleanup_key_column,
            timestamp_column=settings.cleanup_timestamp_column,
        )

    cleanup_engine = CleanupEngine(
        gateway,
        batch_pause=settings.batch_pause_ms / 1000,
        batch_timeout=settings.batch_timeout_seconds,
    )
    dispatcher = CleanupDispatcher(
        cleanup_engine,
        TaskRegistry(),
        run_timeout=settings.async_run_timeout,
        retention=settings.task_retention_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application started")
        yield
        logger.info("Shutting down application...")
        dispatcher.shutdown()
        if db_engine is not None:
            dispose_engine(db_engine)
        logger.info("Application stopped")

    app = FastAPI(title="Data Cleaner API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.cleanup_engine = cleanup_engine
    app.state.dispatcher = dispatcher
    app.dependency_overrides[get_settings] = lambda: settings

    origins = [o.strip() for o in settings.cors_allowed_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = str(uuid.uuid4())
        client = request.client.host if request.client else "-"
        logger.info(
            f"Request started request_id={request_id} method={request.method} "
            f"path={request.url.path} remote_addr={client} "
            f"user_agent={request.headers.get('user-agent', '-')}"
        )
        start = time.monotonic()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            f"Request completed request_id={request_id} status={response.status_code} "
            f"duration={time.monotonic() - start:.3f}s"
        )
        return response

    register_error_handlers(app)
    app.include_router(cleanup.router)

    @app.get("/api/v1/health", response_model=HealthOut)
    async def health() -> HealthOut:
        return HealthOut(status="ok", time=datetime.now(timezone.utc))

    return app


app = create_app()
