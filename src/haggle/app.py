"""Application entry point serving the haggle engine over HTTP.

Configures:
- **structlog** with JSON rendering (production) or colored console (development),
  forwarding ERROR events to Sentry when a DSN is set
- **SQLite** schema at startup and a per-request connection factory
- **Catalog** loaded from the YAML file named in settings
- **Expiry sweeper** running as a background task for the app's lifetime
- **Prometheus** metrics at ``/metrics`` and request-id tagged logs
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from functools import partial
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from haggle.api import register_error_handlers, router
from haggle.config import Settings, get_settings, validate_settings
from haggle.domain.types import NegotiationStatus
from haggle.external.catalog import StaticCatalog
from haggle.health import register_health_routes
from haggle.observability.metrics import ACTIVE_NEGOTIATIONS, setup_metrics
from haggle.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from haggle.observability.sentry import get_sentry_processor, init_sentry
from haggle.pricing.discounts import WelcomeTerms
from haggle.service.negotiations import NegotiationPolicy, NegotiationService
from haggle.service.sweeper import run_sweeper_periodically
from haggle.state.schema import close_db, connect_db
from haggle.state.serializers import utc_now

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry_enabled: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Forward ERROR events to Sentry.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Creates the database schema, the per-request connection factory, the
    catalog, the negotiation and welcome-code policies, and a dedicated
    negotiation service for the expiry sweeper.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings, "clock": utc_now}

    # a. Database: schema once, then one connection per request
    db_path = settings.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db_conn = connect_db(db_path)
    services["db_conn"] = db_conn
    services["connect"] = partial(connect_db, db_path, ensure_schema=False)

    # b. Catalog
    services["catalog"] = StaticCatalog.from_yaml(settings.catalog_path)

    # c. Policies
    services["code_salt"] = settings.code_salt.get_secret_value()
    services["policy"] = NegotiationPolicy(
        ttl=settings.negotiation_ttl,
        floor_ratio=settings.floor_ratio,
        code_ttl=settings.negotiated_code_ttl,
        max_messages_per_hour=settings.max_messages_per_hour,
    )
    services["welcome_terms"] = WelcomeTerms(
        discount_percent=settings.welcome_discount_percent,
        max_discount_cap=settings.welcome_max_discount,
        min_purchase_amount=settings.welcome_min_purchase,
        ttl=settings.welcome_code_ttl,
    )

    # d. Sweeper service on the startup connection (no request uses it)
    sweeper_service = NegotiationService(
        db_conn,
        services["catalog"],
        services["code_salt"],
        policy=services["policy"],
    )
    services["sweeper_service"] = sweeper_service

    counts = sweeper_service.store.count_by_status()
    ACTIVE_NEGOTIATIONS.set(counts.get(NegotiationStatus.ACTIVE.value, 0))

    logger.info(
        "Services initialized",
        db_path=str(db_path),
        catalog_items=len(services["catalog"]),
        active_negotiations=counts.get(NegotiationStatus.ACTIVE.value, 0),
    )
    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On startup: launches the periodic expiry sweeper.
    On shutdown: cancels the sweeper and closes the startup connection.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    services = app.state.services
    settings: Settings = app.state.settings

    sweeper_task: asyncio.Task[None] | None = None
    sweeper_service = services.get("sweeper_service")
    if sweeper_service is not None:
        sweeper_task = asyncio.create_task(
            run_sweeper_periodically(sweeper_service, settings.sweep_interval_seconds)
        )
        logger.info("Expiry sweeper started", interval_seconds=settings.sweep_interval_seconds)

    logger.info("FastAPI application starting")
    yield

    if sweeper_task is not None:
        sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper_task
    db_conn = services.get("db_conn")
    if db_conn is not None:
        close_db(db_conn)
        logger.info("Database connection closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with lifespan, API routes, probes, and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Haggle Engine", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings", get_settings())
    fastapi_app.add_middleware(RequestIdMiddleware)
    register_error_handlers(fastapi_app)
    fastapi_app.include_router(router)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point: configure, validate, and serve until stopped.

    1. Configure logging and Sentry
    2. Validate settings (fatal in production)
    3. Initialize services and create the FastAPI app
    4. Run uvicorn
    """
    settings = get_settings()
    configure_logging(production=settings.production, sentry_enabled=bool(settings.sentry_dsn))
    init_sentry(settings.sentry_dsn, production=settings.production)
    logger.info("Application starting")

    validate_settings(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.http_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
