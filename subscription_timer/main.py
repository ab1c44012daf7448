"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subscription_timer.config import Config, get_config
from subscription_timer.logging_config import configure_logging_from_env, get_logger
from subscription_timer.middleware import ContextMiddleware, RequestLoggingMiddleware
from subscription_timer.repositories.factory import create_datastore
from subscription_timer.services.event_dispatcher import EventDispatcher
from subscription_timer.services.lifecycle import SubscriptionLifecycle
from subscription_timer.services.subscription_accessor import SubscriptionAccessor
from subscription_timer.services.time_controller import create_time_controller

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start background refreshes for seeded tenants; release components on shutdown."""
    logger.info("service_starting", version=VERSION)

    try:
        for tenant_id in app.state.config.get_seed_tenant_ids():
            app.state.accessor.start_background_refresh(tenant_id)

        if app.state.event_dispatcher.is_enabled():
            logger.info("pubsub_enabled", message="Lifecycle events will be published")
        else:
            logger.info("pubsub_disabled", message="Lifecycle events are not published")

        logger.info("service_started", status="ready", clock=app.state.time_controller.mode)
        yield
    finally:
        logger.info("service_shutting_down")
        app.state.accessor.shutdown()
        app.state.event_dispatcher.shutdown()
        app.state.time_controller.shutdown()
        close = getattr(app.state.datastore, "close", None)
        if close is not None:
            close()
        logger.info("service_stopped")


def create_app(
    config: Optional[Config] = None,
    datastore=None,
    time_controller=None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Loaded configuration (defaults to the global one)
        datastore: Tenant datastore (defaults to the configured backend)
        time_controller: Clock (defaults to the configured mode)

    Returns:
        Configured FastAPI application instance
    """
    configure_logging_from_env()

    config = config or get_config()
    time_controller = time_controller or create_time_controller(config.clock_mode)
    datastore = datastore if datastore is not None else create_datastore(config.datastore, config.settings.tenants)

    accessor = SubscriptionAccessor(
        datastore,
        time_controller,
        cache_ttl_seconds=config.cache.ttl_seconds,
        refresh_interval_seconds=config.timer.refresh_interval_seconds,
        max_workers=config.cache.fetch_workers,
    )
    event_dispatcher = EventDispatcher(config.events, time_controller)
    lifecycle = SubscriptionLifecycle(
        datastore,
        time_controller,
        accessor=accessor,
        event_dispatcher=event_dispatcher,
        default_strategy=config.lifecycle.extension_strategy,
        max_extension_days=config.lifecycle.max_extension_days,
    )

    app = FastAPI(
        title="Subscription Timer",
        description="Tenant subscription status, countdown and lifecycle service",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.time_controller = time_controller
    app.state.datastore = datastore
    app.state.accessor = accessor
    app.state.event_dispatcher = event_dispatcher
    app.state.lifecycle = lifecycle

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    from subscription_timer.api.control import router as control_router
    from subscription_timer.api.subscriptions import router as subscriptions_router

    app.include_router(subscriptions_router)
    app.include_router(control_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Liveness check."""
        logger.debug("root_endpoint_called")
        return {
            "service": "subscription-timer",
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Detailed health check."""
        return {
            "status": "healthy",
            "pubsub": "connected" if event_dispatcher.is_enabled() else "disabled",
            "datastore": config.datastore.backend,
            "clock": time_controller.mode,
            "cached_tenants": str(len(accessor.cache)),
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


app = create_app()
