"""
FastAPI Application Entry Point
===============================

``create_app()`` wires the upload routes, request logging, error mapping
and ``GET /health``. The lifespan opens the database pool and checks
Redis; the service still starts when either is down (uploads then fail
at persistence and progress is not reported).

Run with:
    uvicorn setup_assistant.api.main:app
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from setup_assistant import __version__
from setup_assistant.api.routes import setup_assistant_router
from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.db.connection import close_database, init_database
from setup_assistant.db.connection import health_check as db_health_check
from setup_assistant.schemas.responses import ErrorResponse
from setup_assistant.services.ai.client import reset_ai_client
from setup_assistant.services.progress_service import close_redis, get_redis_client
from setup_assistant.utils.errors import DatabaseError, FileSizeError, SetupAssistantError
from setup_assistant.utils.logger import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

# Everything else derived from SetupAssistantError is a client problem (400)
ERROR_STATUS: dict[type[SetupAssistantError], int] = {
    FileSizeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    DatabaseError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logger.info("api.starting", version=__version__, environment=settings.environment, port=settings.api_port)

    try:
        await init_database(settings)
    except DatabaseError as e:
        logger.error("api.database_unavailable", error=e.message, details=e.details)

    try:
        await get_redis_client(settings).ping()
    except (RedisError, OSError) as e:
        logger.error("api.redis_unavailable", error=str(e))

    yield

    logger.info("api.stopping")
    try:
        await close_database()
    except DatabaseError as e:
        logger.error("api.database_close_failed", error=e.message)
    try:
        await close_redis()
    except (RedisError, OSError) as e:
        logger.error("api.redis_close_failed", error=str(e))
    await reset_ai_client()


def _install_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Tag each response with X-Request-ID and X-Process-Time (seconds)."""
        request_id = str(uuid4())
        start = time.perf_counter()

        response = await call_next(request)
        elapsed = time.perf_counter() - start

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.info(
            "api.request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            team_id=request.headers.get("x-team-id"),
            status_code=response.status_code,
            duration_ms=round(elapsed * 1000, 2),
        )
        return response


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SetupAssistantError)
    async def setup_assistant_error_handler(request: Request, exc: SetupAssistantError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        logger.warning(
            "api.request_rejected",
            path=request.url.path,
            status_code=status_code,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        body = ErrorResponse(error=type(exc).__name__, message=exc.message, details=exc.details)
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api.unexpected_error", path=request.url.path, error_type=type(exc).__name__)
        body = ErrorResponse(error="InternalServerError", message="An unexpected error occurred")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json", by_alias=True),
        )


async def _health(settings: Settings) -> dict[str, Any]:
    checks: dict[str, Any] = {"database": await db_health_check()}

    try:
        start = time.perf_counter()
        await get_redis_client(settings).ping()
        checks["redis"] = {"status": "healthy", "latency_ms": round((time.perf_counter() - start) * 1000, 2)}
    except (RedisError, OSError) as e:
        checks["redis"] = {"status": "unhealthy", "error": str(e)}

    checks["ai"] = {
        "status": "healthy" if settings.ai_api_key else "missing_api_key",
        "model": settings.ai_model,
        "classification_model": settings.classification_model,
    }

    healthy = all(check.get("status") == "healthy" for check in checks.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "service": "setup-assistant",
        "version": __version__,
        "checks": checks,
    }


def create_app() -> FastAPI:
    """Build the application; docs are served in development only."""
    settings = get_settings()
    docs = settings.is_development

    app = FastAPI(
        title="Setup Assistant API",
        description=(
            "Financial document intake: turns spreadsheets, CSVs, PDFs and images "
            "into contracts, receivables and expenses for a team."
        ),
        version=__version__,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if docs else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_request_logging(app)
    _install_error_handlers(app)

    @app.get("/health", tags=["Health"], summary="Service and dependency status")
    async def health_check() -> dict[str, Any]:
        return await _health(settings)

    app.include_router(setup_assistant_router, prefix="/setup-assistant", tags=["Setup Assistant"])
    return app


app = create_app()
