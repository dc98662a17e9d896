"""
Centralized router registration for the billing API.
"""

import importlib
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from fastapi import FastAPI

logger = structlog.get_logger(__name__)


@dataclass
class RouterConfig:
    """Configuration for a router to be registered."""

    module_path: str
    router_name: str
    prefix: str
    tags: Sequence[str] | None
    description: str = ""


ROUTER_CONFIGS = [
    RouterConfig(
        module_path="dibnow.billing.catalog.router",
        router_name="router",
        prefix="/api/v1/billing",
        tags=["Plans"],
        description="Plan catalog",
    ),
    RouterConfig(
        module_path="dibnow.billing.subscriptions.router",
        router_name="router",
        prefix="/api/v1/billing",
        tags=["Subscriptions"],
        description="Tenant subscriptions",
    ),
    RouterConfig(
        module_path="dibnow.billing.wallet.router",
        router_name="router",
        prefix="/api/v1/billing",
        tags=["Wallet"],
        description="Tenant wallet",
    ),
    RouterConfig(
        module_path="dibnow.billing.limits.router",
        router_name="router",
        prefix="/api/v1/billing",
        tags=["Limits"],
        description="Plan quotas",
    ),
    RouterConfig(
        module_path="dibnow.billing.plan_requests.router",
        router_name="router",
        prefix="/api/v1/billing",
        tags=["Plan Requests"],
        description="Manual plan requests",
    ),
    RouterConfig(
        module_path="dibnow.billing.admin.router",
        router_name="router",
        prefix="/api/v1/billing",
        tags=["Billing Admin"],
        description="Billing administration",
    ),
]


def _register_router(app: FastAPI, config: RouterConfig) -> None:
    module = importlib.import_module(config.module_path)
    router = getattr(module, config.router_name)
    app.include_router(
        router,
        prefix=config.prefix,
        tags=list(config.tags) if config.tags is not None else None,
    )
    logger.debug("billing.router.registered", module=config.module_path, prefix=config.prefix)


def register_routers(app: FastAPI) -> None:
    """Register every billing router; a missing router is a startup error."""
    for config in ROUTER_CONFIGS:
        _register_router(app, config)
    logger.info("billing.routers.registered", count=len(ROUTER_CONFIGS))


def get_registered_routers() -> list[RouterConfig]:
    return list(ROUTER_CONFIGS)


__all__ = ["RouterConfig", "ROUTER_CONFIGS", "register_routers", "get_registered_routers"]
