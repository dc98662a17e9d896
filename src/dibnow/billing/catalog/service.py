"""
Plan catalog service.

Read-mostly access to plans plus the ordered policy that resolves a
tenant's effective plan.
"""

from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.models import PlanTable
from dibnow.billing.exceptions import (
    BillingConfigurationError,
    ConflictError,
    InvalidInputError,
    PlanNotFoundError,
)
from dibnow.billing.metrics import get_billing_metrics
from dibnow.billing.money import parse_amount, validate_currency
from dibnow.billing.settings import settings
from dibnow.billing.subscriptions.models import SubscriptionStatus, SubscriptionTable
from dibnow.billing.tenants.models import TenantTable

logger = structlog.get_logger(__name__)

DEFAULT_PLANS: list[dict[str, Any]] = [
    {
        "name": "FREE TRIAL",
        "description": "Perfect for exploring the platform features before committing.",
        "price": Decimal("0"),
        "currency": "GBP",
        "duration_days": 30,
        "features": ["1 Repair Customer", "1 In Stock", "1 Category", "1 Brand", "1 Teams"],
        "limits": {
            "repairsPerMonth": 1,
            "teamMembers": 1,
            "inventoryItems": 1,
            "categories": 1,
            "brands": 1,
            "aiDiagnostics": False,
        },
    },
    {
        "name": "BASIC",
        "description": "Essential features for small repair shops starting their digital journey.",
        "price": Decimal("2"),
        "currency": "GBP",
        "duration_days": 30,
        "features": ["5 Repair Customer", "5 In Stock", "5 Category", "5 Brand", "5 Teams"],
        "limits": {
            "repairsPerMonth": 5,
            "teamMembers": 5,
            "inventoryItems": 5,
            "categories": 5,
            "brands": 5,
            "aiDiagnostics": True,
        },
    },
    {
        "name": "PREMIUM",
        "description": "Advanced capabilities for growing businesses with multiple staff members.",
        "price": Decimal("5"),
        "currency": "GBP",
        "duration_days": 30,
        "features": ["7 Repair Customer", "7 In Stock", "7 Category", "7 Brand", "7 Teams"],
        "limits": {
            "repairsPerMonth": 7,
            "teamMembers": 7,
            "inventoryItems": 7,
            "categories": 7,
            "brands": 7,
            "aiDiagnostics": True,
        },
    },
    {
        "name": "GOLD",
        "description": "Enterprise-grade infrastructure for high-volume service centers.",
        "price": Decimal("7"),
        "currency": "GBP",
        "duration_days": 30,
        "features": [
            "1000 Repair Customer",
            "1000 In Stock",
            "100 Category",
            "50 Brand",
            "50 Teams",
        ],
        "limits": {
            "repairsPerMonth": 1000,
            "teamMembers": 50,
            "inventoryItems": 1000,
            "categories": 100,
            "brands": 50,
            "aiDiagnostics": True,
        },
    },
]

# Slugs stored on tenants created before plans had ids
LEGACY_PLAN_ALIASES = {"starter": "FREE TRIAL"}

# Fields that are frozen once an active subscription references the plan
_PRICING_FIELDS = frozenset({"price", "currency", "duration_days", "limits"})
_MUTABLE_FIELDS = frozenset({"description", "features", "is_active"}) | _PRICING_FIELDS


class PlanCatalog:
    """Service for reading and maintaining the plan catalog."""

    def __init__(self, db: AsyncSession, default_plan_name: str | None = None) -> None:
        self.db = db
        self.default_plan_name = default_plan_name or settings.billing.default_plan_name

    async def get(self, plan_id: str) -> PlanTable | None:
        """Get a plan by id."""
        return await self.db.get(PlanTable, plan_id)

    async def get_by_name(self, name: str) -> PlanTable | None:
        """Get a plan by name, ignoring case."""
        result = await self.db.execute(
            select(PlanTable).where(func.lower(PlanTable.name) == name.strip().lower())
        )
        return result.scalars().first()

    async def find(self, plan_ref: str | None) -> PlanTable | None:
        """Look a plan up by id, then by name."""
        if not plan_ref:
            return None
        return await self.get(plan_ref) or await self.get_by_name(plan_ref)

    async def require(self, plan_ref: str | None) -> PlanTable:
        plan = await self.find(plan_ref)
        if plan is None:
            raise PlanNotFoundError(plan_ref)
        return plan

    async def list_active(self) -> list[PlanTable]:
        """Active plans ordered by price."""
        result = await self.db.execute(
            select(PlanTable).where(PlanTable.is_active.is_(True)).order_by(PlanTable.price)
        )
        return list(result.scalars().all())

    # ==================== Resolution policy ====================

    async def _by_tenant_plan_id(self, tenant: TenantTable) -> PlanTable | None:
        return await self.get(tenant.plan_id) if tenant.plan_id else None

    async def _by_tenant_plan_name(self, tenant: TenantTable) -> PlanTable | None:
        if not tenant.plan_id:
            return None
        name = LEGACY_PLAN_ALIASES.get(tenant.plan_id.strip().lower(), tenant.plan_id)
        return await self.get_by_name(name)

    async def _by_default_plan(self, tenant: TenantTable) -> PlanTable | None:
        return await self.get_by_name(self.default_plan_name)

    def resolution_order(self) -> list[Callable[[TenantTable], Awaitable[PlanTable | None]]]:
        """Strategies tried in order to find a tenant's effective plan."""
        return [self._by_tenant_plan_id, self._by_tenant_plan_name, self._by_default_plan]

    async def resolve_for_tenant(self, tenant: TenantTable) -> PlanTable:
        """Resolve the plan whose quotas govern ``tenant``.

        Tries the stored plan id, then a case-insensitive name match for
        legacy string-keyed tenants, then the default plan. An empty
        catalog is a configuration error.
        """
        for strategy in self.resolution_order():
            plan = await strategy(tenant)
            if plan is not None:
                if strategy != self._by_tenant_plan_id:
                    logger.info(
                        "billing.plan.resolved_by_fallback",
                        tenant_id=tenant.id,
                        stored_plan=tenant.plan_id,
                        strategy=strategy.__name__,
                        plan=plan.name,
                    )
                return plan

        get_billing_metrics().record_configuration_error("default_plan_missing")
        raise BillingConfigurationError(
            f"No plan resolvable for tenant {tenant.id}: "
            f"default plan '{self.default_plan_name}' is not seeded",
            config_key="billing.default_plan_name",
        )

    # ==================== Maintenance ====================

    async def seed_defaults(self) -> list[PlanTable]:
        """Insert the default plans that are missing. Returns the new rows."""
        created: list[PlanTable] = []
        for data in DEFAULT_PLANS:
            if await self.get_by_name(data["name"]) is not None:
                continue
            plan = PlanTable(
                **{**data, "features": list(data["features"]), "limits": dict(data["limits"])}
            )
            self.db.add(plan)
            created.append(plan)
        await self.db.flush()
        if created:
            logger.info("billing.plans.seeded", plans=[p.name for p in created])
        return created

    async def create_plan(
        self,
        name: str,
        price: Any,
        duration_days: int,
        currency: str = "USD",
        description: str = "",
        features: list[str] | None = None,
        limits: dict[str, Any] | None = None,
    ) -> PlanTable:
        if await self.get_by_name(name) is not None:
            raise ConflictError(f"Plan '{name}' already exists", context={"name": name})
        if duration_days <= 0:
            raise InvalidInputError("Duration must be positive", field="duration_days")
        currency = validate_currency(currency)
        plan = PlanTable(
            name=name,
            description=description,
            price=parse_amount(price, currency, allow_zero=True),
            currency=currency,
            duration_days=duration_days,
            features=features or [],
            limits=limits or {},
        )
        self.db.add(plan)
        await self.db.flush()
        logger.info("billing.plan.created", plan_id=plan.id, name=name)
        return plan

    async def is_referenced_by_active_subscription(self, plan_id: str) -> bool:
        result = await self.db.execute(
            select(func.count())
            .select_from(SubscriptionTable)
            .where(
                SubscriptionTable.plan_id == plan_id,
                SubscriptionTable.status == SubscriptionStatus.ACTIVE.value,
            )
        )
        return (result.scalar() or 0) > 0

    async def update_plan(self, plan_id: str, **changes: Any) -> PlanTable:
        """Update a plan.

        Pricing fields (price, currency, duration, limits) are frozen while an
        active subscription references the plan; publish a new plan instead.
        """
        plan = await self.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)

        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Cannot update fields: {sorted(unknown)}", field="plan")

        frozen = _PRICING_FIELDS & set(changes)
        if frozen and await self.is_referenced_by_active_subscription(plan_id):
            raise ConflictError(
                f"Plan {plan.name} is referenced by an active subscription",
                context={"plan_id": plan_id, "fields": sorted(frozen)},
            )

        if "currency" in changes:
            changes["currency"] = validate_currency(changes["currency"])
        if "price" in changes:
            changes["price"] = parse_amount(
                changes["price"], changes.get("currency", plan.currency), allow_zero=True
            )
        for field, value in changes.items():
            setattr(plan, field, value)
        await self.db.flush()
        logger.info("billing.plan.updated", plan_id=plan_id, fields=sorted(changes))
        return plan


__all__ = ["DEFAULT_PLANS", "LEGACY_PLAN_ALIASES", "PlanCatalog"]
