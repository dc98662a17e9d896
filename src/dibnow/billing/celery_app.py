"""
Celery application for deployments that run renewals out of process.

Used when ``BILLING__SCHEDULER_BACKEND=celery``; beat then triggers the
renewal cycle every ``renewal_interval_seconds``.
"""

from typing import Any

from celery import Celery
from kombu import Queue

from dibnow.billing.settings import SchedulerBackend, settings

# Create Celery application
celery_app = Celery(
    "dibnow_billing",
    broker=settings.celery.broker_url,
    backend=settings.celery.result_backend,
    include=["dibnow.billing.renewals.tasks"],
)

celery_app.conf.update(
    task_routes={"billing.renewals.*": {"queue": "billing"}},
    task_default_queue="default",
    task_queues=(
        Queue("default", routing_key="default"),
        Queue("billing", routing_key="billing"),
    ),
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.celery.timezone,
    enable_utc=True,
    result_expires=3600,
    task_track_started=True,
    task_time_limit=1800,
    task_soft_time_limit=1500,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)


@celery_app.on_after_finalize.connect  # type: ignore[misc]
def setup_periodic_tasks(sender: Any, **kwargs: Any) -> None:
    """Register the renewal cycle with beat."""
    if not settings.billing.scheduler_enabled:
        return
    if settings.billing.scheduler_backend != SchedulerBackend.CELERY:
        return

    from dibnow.billing.renewals.tasks import run_renewal_cycle_task

    sender.add_periodic_task(
        float(settings.billing.renewal_interval_seconds),
        run_renewal_cycle_task.s(),
        name="billing-renewal-cycle",
    )


__all__ = ["celery_app"]
