"""
Celery tasks for renewals.
"""

import asyncio
from typing import Any

import structlog

from dibnow.billing.celery_app import celery_app
from dibnow.billing.db import get_session_maker
from dibnow.billing.notifications.service import DatabaseNotificationSink
from dibnow.billing.providers.registry import build_default_registry
from dibnow.billing.renewals.service import RenewalService

logger = structlog.get_logger(__name__)


async def _run_cycle() -> dict[str, Any]:
    session_factory = get_session_maker()
    providers = build_default_registry()
    service = RenewalService(
        session_factory, providers, notifier=DatabaseNotificationSink(session_factory)
    )
    try:
        report = await service.run_cycle()
    finally:
        await providers.aclose()
    return report.to_dict()


@celery_app.task(name="billing.renewals.run_cycle")
def run_renewal_cycle_task() -> dict[str, Any]:
    """Periodic task running one renewal cycle."""
    result = asyncio.run(_run_cycle())
    logger.info("billing.renewals.task_complete", **result)
    return result


__all__ = ["run_renewal_cycle_task"]
