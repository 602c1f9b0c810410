"""
Main FastAPI application.

Event registration payment API with:
- Request-level payment deduplication
- Error handling with user friendly messages
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from event_payments.config import Settings, get_settings
from event_payments.core.errors import AppError, ValidationError, handle_error
from event_payments.database.connection import init_db
from event_payments.monitoring.logging import setup_logging

from .deduplication import PaymentDeduplicationMiddleware
from .dependencies import Services, build_services
from .routes import event_router, monitoring_router, webhook_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Creates tables, starts the lock and payment-attempt sweepers, and
    releases connections on shutdown.
    """
    services: Services = app.state.services
    settings = services.settings
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        test_mode=settings.is_test_mode,
        idempotency_backend=settings.idempotency_backend,
    )

    if services.engine is not None:
        try:
            await init_db(services.engine)
            logger.info("database_initialized")
        except Exception as e:
            logger.error("database_initialization_failed", error=str(e))
            raise

    for sweeper in services.build_sweepers():
        sweeper.start()

    yield

    logger.info("application_shutdown")
    try:
        await services.close()
        logger.info("services_closed")
    except Exception as e:
        logger.error("services_shutdown_error", error=str(e))


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "Invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Prebuilt services (tests); built from settings when omitted
        settings: Settings override; defaults to ``get_settings()``
    """
    settings = settings or (services.settings if services else get_settings())
    services = services or build_services(settings)

    app = FastAPI(
        title="Event Registration Payments",
        description=(
            "Creates Stripe payment intents for event registrations and turns "
            "successful payments into Shopify orders."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.services = services

    app.add_middleware(PaymentDeduplicationMiddleware, tracker=services.attempt_tracker)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """
        Add request ID to all requests for tracing.

        Also adds timing information and structured logging context.
        """
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "app_error",
            code=exc.code,
            error=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = ValidationError(_validation_message(exc))
        logger.warning("request_validation_failed", error=error.message, path=request.url.path)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled exceptions.
        """
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        error = handle_error(exc)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    app.include_router(event_router)
    app.include_router(webhook_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": "1.0.0",
            "status": "operational",
            "environment": settings.app_env,
            "test_mode": settings.is_test_mode,
            "docs": "/docs",
            "health": "/api/health",
            "metrics": "/metrics",
        }

    return app


def main() -> None:
    import uvicorn

    setup_logging()
    settings = get_settings()
    uvicorn.run(
        "event_payments.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
