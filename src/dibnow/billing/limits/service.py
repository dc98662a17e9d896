"""
Plan limit enforcement.

Called synchronously in front of every resource-creating write. Never
mutates state.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.models import UNLIMITED, ResourceKind
from dibnow.billing.catalog.service import PlanCatalog
from dibnow.billing.db import utcnow
from dibnow.billing.exceptions import (
    InvalidInputError,
    LimitExceededError,
    TenantNotFoundError,
)
from dibnow.billing.limits.counters import CounterRegistry, counter_registry
from dibnow.billing.metrics import get_billing_metrics
from dibnow.billing.settings import settings
from dibnow.billing.tenants.models import TenantTable

logger = structlog.get_logger(__name__)

_KIND_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,63}$")


@dataclass(frozen=True)
class LimitDecision:
    """Outcome of a quota check."""

    allowed: bool
    resource_kind: str
    limit: int = UNLIMITED
    current_count: int | None = None
    plan_name: str | None = None

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def upgrade_message(self) -> str | None:
        if self.allowed:
            return None
        return (
            f"You have reached the limit of {self.limit} {self.resource_kind} for your "
            f"current plan ({self.plan_name}). Please upgrade your tier to add more."
        )


def month_start(now: datetime, timezone: str) -> datetime:
    """Local midnight on day 1 of ``now``'s month in ``timezone``."""
    local = now.astimezone(ZoneInfo(timezone))
    return local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class LimitEnforcer:
    """Authorizes resource creation against the tenant's plan quotas."""

    def __init__(
        self,
        db: AsyncSession,
        counters: CounterRegistry | None = None,
        catalog: PlanCatalog | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db = db
        self.counters = counters if counters is not None else counter_registry
        self.catalog = catalog or PlanCatalog(db)
        self.clock = clock or utcnow
        self.unlimited_threshold = settings.billing.unlimited_threshold
        self.usage_timezone = settings.billing.usage_timezone

    async def authorize(self, tenant_id: str, resource_kind: str | ResourceKind) -> LimitDecision:
        """Decide whether ``tenant_id`` may create one more ``resource_kind``."""
        raw_kind = resource_kind.value if isinstance(resource_kind, ResourceKind) else resource_kind
        if not isinstance(raw_kind, str) or not _KIND_PATTERN.match(raw_kind):
            raise InvalidInputError(
                "Malformed resource kind", field="resource_kind", value=resource_kind
            )

        kind = ResourceKind.lookup(raw_kind)
        if kind is None:
            # Kinds outside the catalog vocabulary never block writes
            logger.debug("billing.limits.unknown_kind", tenant_id=tenant_id, kind=raw_kind)
            return LimitDecision(allowed=True, resource_kind=raw_kind)

        tenant = await self.db.get(TenantTable, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)

        plan = await self.catalog.resolve_for_tenant(tenant)
        limit = plan.limit_for(kind, self.unlimited_threshold)
        if limit == UNLIMITED:
            return LimitDecision(allowed=True, resource_kind=raw_kind, plan_name=plan.name)

        counter = self.counters.get(kind)
        if counter is None:
            logger.warning(
                "billing.limits.no_counter", tenant_id=tenant_id, kind=raw_kind, plan=plan.name
            )
            return LimitDecision(
                allowed=True, resource_kind=raw_kind, limit=limit, plan_name=plan.name
            )

        since = month_start(self.clock(), self.usage_timezone) if kind.is_month_bounded else None
        current = await counter.count(tenant_id, kind, since)

        decision = LimitDecision(
            allowed=current < limit,
            resource_kind=raw_kind,
            limit=limit,
            current_count=current,
            plan_name=plan.name,
        )
        if not decision.allowed:
            get_billing_metrics().record_limit_denied(tenant_id, raw_kind, plan.name)
            logger.info(
                "billing.limits.denied",
                tenant_id=tenant_id,
                kind=raw_kind,
                limit=limit,
                current_count=current,
                plan=plan.name,
            )
        return decision

    async def enforce(self, tenant_id: str, resource_kind: str | ResourceKind) -> LimitDecision:
        """Like ``authorize`` but raises ``LimitExceededError`` on denial."""
        decision = await self.authorize(tenant_id, resource_kind)
        if not decision.allowed:
            raise LimitExceededError(
                resource_kind=decision.resource_kind,
                limit=decision.limit,
                current_count=decision.current_count or 0,
                plan_name=decision.plan_name or "",
            )
        return decision

    async def usage_summary(self, tenant_id: str) -> dict[str, dict[str, int | None]]:
        """Quota and current usage for every known resource kind."""
        tenant = await self.db.get(TenantTable, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        plan = await self.catalog.resolve_for_tenant(tenant)

        summary: dict[str, dict[str, int | None]] = {}
        for kind in ResourceKind:
            counter = self.counters.get(kind)
            current: int | None = None
            if counter is not None:
                since = (
                    month_start(self.clock(), self.usage_timezone)
                    if kind.is_month_bounded
                    else None
                )
                current = await counter.count(tenant_id, kind, since)
            summary[kind.value] = {
                "limit": plan.limit_for(kind, self.unlimited_threshold),
                "current_count": current,
            }
        return summary


__all__ = ["LimitDecision", "LimitEnforcer", "month_start"]
