"""FastAPI application setup and configuration."""

import asyncio
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shopsync.api.client import ClientFactory
from shopsync.config.settings import Settings
from shopsync.config.settings import settings as default_settings
from shopsync.core.errors import AuthError, ShopSyncError
from shopsync.core.logger import setup_logger
from shopsync.core.monitoring import capture_exception, init_monitoring
from shopsync.core.signature import WebhookVerifier
from shopsync.core.single_flight import SingleFlight
from shopsync.db.repository import Storage
from shopsync.services import (
    BackfillReconciler,
    MetricsAggregator,
    SubscriptionReconciler,
    SyncScheduler,
    TokenExchange,
    WebhookIngestor,
)

logger = setup_logger(__name__)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# Background tasks awaited on shutdown
_pending_tasks = set()


def track_task(task: asyncio.Task) -> None:
    """
    Track a background task for graceful shutdown.

    Args:
        task: The asyncio Task to track
    """
    _pending_tasks.add(task)
    task.add_done_callback(_pending_tasks.discard)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    storage: Optional[Storage] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Configuration; defaults to the environment-loaded settings
        transport: Optional httpx transport for every outbound Shopify call
        storage: Optional pre-built storage; built from DATABASE_URL otherwise
    """
    settings = settings or default_settings

    app = FastAPI(
        title="ShopSync",
        version="1.0.0",
        description="Multi-tenant Shopify ingestion: OAuth install, webhooks, backfill and metrics",
    )

    init_monitoring(settings.glitchtip_dsn, settings.environment)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def no_store_api_responses(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            response.headers.update(NO_STORE_HEADERS)
        return response

    @app.exception_handler(ShopSyncError)
    async def shopsync_error_handler(request: Request, exc: ShopSyncError):
        status_code = exc.status_code
        # A rejected stored credential on the API surface is an upstream failure
        if isinstance(exc, AuthError) and request.url.path.startswith("/api"):
            status_code = 502
        return JSONResponse(exc.to_dict(), status_code=status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        capture_exception(exc, {"path": request.url.path, "method": request.method})
        return JSONResponse({"error": "Internal error"}, status_code=500)

    from shopsync.server import api_routes, auth_routes, routes

    app.include_router(routes.router)
    app.include_router(auth_routes.router)
    app.include_router(api_routes.router)

    @app.on_event("startup")
    async def startup_handler():
        """Validate configuration and wire components onto app.state."""
        logger.info("Starting application resources...")
        settings.validate_required()

        app_storage = storage or Storage.from_url(settings.database_url)
        await app_storage.init()
        logger.info("Database initialized successfully")

        clients = ClientFactory(settings, transport=transport)
        backfill = BackfillReconciler(app_storage, clients, SingleFlight())
        subscriptions = SubscriptionReconciler(settings, clients)

        app.state.settings = settings
        app.state.storage = app_storage
        app.state.clients = clients
        app.state.tokens = TokenExchange(settings, app_storage, clients)
        app.state.ingestor = WebhookIngestor(
            app_storage,
            WebhookVerifier(settings.shopify_api_secret, settings.skip_webhook_verify),
        )
        app.state.backfill = backfill
        app.state.subscriptions = subscriptions
        app.state.metrics = MetricsAggregator(app_storage, clients)
        app.state.scheduler = SyncScheduler(settings, app_storage, backfill, subscriptions)

        if settings.auto_sync_enabled:
            await app.state.scheduler.start()

        if settings.auto_register_webhooks_on_boot:
            track_task(asyncio.create_task(app.state.scheduler.register_subscriptions_for_all()))

        logger.info("Application startup completed")

    @app.on_event("shutdown")
    async def shutdown_handler():
        """Stop the scheduler, drain background tasks and close the database."""
        logger.info("Starting graceful shutdown...")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            await scheduler.stop()

        if _pending_tasks:
            logger.info(f"Waiting for {len(_pending_tasks)} pending tasks to complete...")
            await asyncio.gather(*_pending_tasks, return_exceptions=True)

        app_storage = getattr(app.state, "storage", None)
        if app_storage is not None:
            await app_storage.dispose()
            logger.info("Database connections closed successfully")

        logger.info("Graceful shutdown completed successfully")

    return app
