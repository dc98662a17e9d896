"""
FastAPI application entry point for the billing service.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI

from dibnow.billing.api.handlers import register_exception_handlers
from dibnow.billing.db import create_all_tables_async, get_session_maker
from dibnow.billing.logging import setup_logging
from dibnow.billing.notifications.service import DatabaseNotificationSink
from dibnow.billing.providers.registry import build_default_registry
from dibnow.billing.renewals.scheduler import RenewalScheduler
from dibnow.billing.renewals.service import RenewalService
from dibnow.billing.routers import register_routers
from dibnow.billing.settings import SchedulerBackend, settings

logger = structlog.get_logger(__name__)


def _uses_inprocess_scheduler() -> bool:
    return (
        settings.billing.scheduler_enabled
        and settings.billing.scheduler_backend == SchedulerBackend.INPROCESS
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle events."""
    setup_logging()
    logger.info(
        "service.startup.begin",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    )

    if settings.is_development or settings.is_testing:
        await create_all_tables_async()
        logger.info("database.tables.ensured")

    session_factory = get_session_maker()
    notifier = DatabaseNotificationSink(session_factory)
    providers = build_default_registry()
    app.state.notifier = notifier
    app.state.providers = providers

    scheduler: RenewalScheduler | None = None
    if _uses_inprocess_scheduler():
        renewals = RenewalService(session_factory, providers, notifier=notifier)
        scheduler = RenewalScheduler(
            renewals.run_cycle, interval_seconds=settings.billing.renewal_interval_seconds
        )
        scheduler.start()
    app.state.scheduler = scheduler

    logger.info("service.startup.complete", scheduler=scheduler is not None)
    try:
        yield
    finally:
        logger.info("service.shutdown.begin")
        if scheduler is not None:
            await scheduler.stop()
        await providers.aclose()
        logger.info("service.shutdown.complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="DibNow Billing",
        description="Plans, quotas, subscriptions, wallets and renewals",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )
    register_exception_handlers(app)
    register_routers(app)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        return {
            "status": "healthy",
            "version": settings.app_version,
            "scheduler_running": bool(
                getattr(app.state, "scheduler", None) and app.state.scheduler.running
            ),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_app()
