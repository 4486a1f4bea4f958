"""
Risk Scoring Service - Main Application
=======================================

FastAPI application for risk score calculation, history and trends.

Version: 0.1.0
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.risk_scoring.dependencies import (
    get_aging_scheduler,
    get_data_source,
    get_event_publisher,
    get_history_store,
    get_recompute_queue,
    shutdown_dependencies,
)
from services.risk_scoring.errors import InvalidMetricsError, RiskScoringError
from services.risk_scoring.routes import events, scores
from services.risk_scoring.routes.events import handle_task_event_message
from shared.config import EventBackend, StorageBackend, settings
from shared.database.kafka import KafkaClient, consume_messages
from shared.database.postgres import PostgresClient
from shared.database.redis import RedisClient
from shared.logging import get_logger, setup_logging
from shared.models.common import ErrorResponse, HealthResponse


SERVICE_NAME = "risk-scoring"
SERVICE_VERSION = "0.1.0"

# Setup logging
setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.is_production,
    service_name=SERVICE_NAME,
)

logger = get_logger(__name__)


async def _consume_task_events() -> None:
    config = settings.risk_scoring
    while True:
        try:
            await consume_messages(
                [config.task_completed_topic],
                config.consumer_group,
                handle_task_event_message,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("task_event_consumer_failed", error=str(e), error_type=type(e).__name__)
            await asyncio.sleep(5)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager."""
    config = settings.risk_scoring
    logger.info(
        "risk_scoring_starting",
        environment=settings.environment.value,
        port=settings.ports.risk_scoring,
        storage_backend=config.storage_backend.value,
        event_backend=config.event_backend.value,
    )

    consumer_task: asyncio.Task[None] | None = None

    # Startup
    try:
        if config.storage_backend == StorageBackend.POSTGRES:
            await PostgresClient.create_tables()
            logger.info("postgres_connected")

        if config.cache_ttl_seconds > 0:
            RedisClient.get_client()
            logger.info("redis_connected")

        get_recompute_queue().start()

        if config.scheduler_enabled and not settings.is_testing:
            get_aging_scheduler().start()

        if config.consume_task_events and config.event_backend == EventBackend.KAFKA:
            consumer_task = asyncio.create_task(_consume_task_events(), name="task-event-consumer")
            logger.info("task_event_consumer_started", topic=config.task_completed_topic)

    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("risk_scoring_shutting_down")
    if consumer_task is not None:
        consumer_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer_task

    await shutdown_dependencies()

    if config.event_backend == EventBackend.KAFKA:
        await KafkaClient.close()
    if config.cache_ttl_seconds > 0:
        await RedisClient.close()
    if config.storage_backend == StorageBackend.POSTGRES:
        await PostgresClient.close()


# Create FastAPI application
app = FastAPI(
    title="Risk Scoring Service",
    description="Compliance risk score calculation, history and trends",
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins_list,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Service health check.

    Returns health status of the service and its backends.
    """
    components: dict[str, dict[str, Any]] = {
        "data_source": await get_data_source().health_check(),
        "history_store": await get_history_store().health_check(),
        "events": await get_event_publisher().health_check(),
    }

    if settings.risk_scoring.storage_backend == StorageBackend.POSTGRES:
        components["postgres"] = await PostgresClient.health_check()

    if settings.risk_scoring.cache_ttl_seconds > 0:
        components["redis"] = await RedisClient.health_check()

    queue = get_recompute_queue()
    components["recompute_queue"] = {
        "status": "healthy" if queue.running else "idle",
        "pending": queue.pending(),
        "processed": queue.processed,
        "failed": queue.failed,
    }

    all_healthy = all(
        c.get("status") in ("healthy", "idle") for c in components.values()
    )

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        components=components,
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Risk Scoring Service",
        "version": SERVICE_VERSION,
        "docs": "/docs",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(
    scores.router,
    prefix="/api/risks",
    tags=["Risk Scores"],
)

app.include_router(
    events.router,
    prefix="/api/risks/events",
    tags=["Task Events"],
)


# ============================================================================
# Error Handlers
# ============================================================================


def _error_response(
    status_code: int,
    error: str,
    error_code: str | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        error_code=error_code,
        status_code=status_code,
        details=details,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(RiskScoringError)
async def risk_scoring_exception_handler(request: Request, exc: RiskScoringError) -> JSONResponse:
    """Map domain errors to their HTTP status."""
    log = logger.error if isinstance(exc, InvalidMetricsError) else logger.warning
    log(
        "risk_scoring_error",
        error_code=exc.error_code,
        status_code=exc.status_code,
        error=exc.message,
        path=request.url.path,
    )
    return _error_response(exc.status_code, exc.message, exc.error_code, exc.details or None)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    response = _error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.warning("request_validation_failed", path=request.url.path, errors=len(errors))
    return _error_response(
        422,
        "Request validation failed",
        "validation_error",
        {"errors": errors},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ============================================================================
# Run with Uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.risk_scoring.main:app",
        host="0.0.0.0",
        port=settings.ports.risk_scoring,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
    )
