"""
Subscription state machine.

States: pending -> active -> {expired, cancelled}. An expired subscription
returns to active only through a successful renewal or manual approval.
Every transition mirrors the plan state onto the tenant.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.models import PlanTable, PlanTerms
from dibnow.billing.db import utcnow
from dibnow.billing.exceptions import (
    ConflictError,
    InvalidInputError,
    SubscriptionNotFoundError,
    TenantNotFoundError,
)
from dibnow.billing.logging import log_audit_event
from dibnow.billing.metrics import get_billing_metrics
from dibnow.billing.settings import settings
from dibnow.billing.subscriptions.models import (
    PaymentMethod,
    SubscriptionStatus,
    SubscriptionTable,
)
from dibnow.billing.tenants.models import TenantPlanStatus, TenantTable

logger = structlog.get_logger(__name__)

ACTIVE = SubscriptionStatus.ACTIVE.value
EXPIRED = SubscriptionStatus.EXPIRED.value
CANCELLED = SubscriptionStatus.CANCELLED.value


class SubscriptionService:
    """Service owning every subscription status transition.

    ``activate``, ``expire`` and ``mark_cancelled`` only flush and join the
    caller's unit of work; ``cancel``, ``set_auto_renew`` and ``lazy_refresh``
    commit.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] | None = None) -> None:
        self.db = db
        self.clock = clock or utcnow
        self.lookahead = timedelta(days=settings.billing.renewal_lookahead_days)
        self.grace = timedelta(days=settings.billing.renewal_grace_days)
        self.max_attempts = settings.billing.max_renew_attempts

    # ==================== Queries ====================

    async def get(self, subscription_id: str, tenant_id: str | None = None) -> SubscriptionTable:
        subscription = await self.db.get(SubscriptionTable, subscription_id)
        if subscription is None or (tenant_id is not None and subscription.tenant_id != tenant_id):
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    async def get_active_for_tenant(self, tenant_id: str) -> SubscriptionTable | None:
        result = await self.db.execute(
            select(SubscriptionTable)
            .where(SubscriptionTable.tenant_id == tenant_id, SubscriptionTable.status == ACTIVE)
            .order_by(SubscriptionTable.start_date.desc())
        )
        return result.scalars().first()

    async def list_for_tenant(self, tenant_id: str) -> list[SubscriptionTable]:
        result = await self.db.execute(
            select(SubscriptionTable)
            .where(SubscriptionTable.tenant_id == tenant_id)
            .order_by(SubscriptionTable.created_at.desc())
        )
        return list(result.scalars().all())

    async def _get_tenant(self, tenant_id: str) -> TenantTable:
        tenant = await self.db.get(TenantTable, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    async def _reload(self, subscription: SubscriptionTable) -> SubscriptionTable:
        await self.db.refresh(subscription)
        return subscription

    # ==================== Transitions ====================

    async def activate(
        self,
        tenant_id: str,
        plan: PlanTable | PlanTerms,
        payment_method: PaymentMethod | str,
        payment_id: str | None = None,
        amount: Decimal | None = None,
        currency: str | None = None,
        auto_renew: bool = False,
        subscription: SubscriptionTable | None = None,
    ) -> SubscriptionTable:
        """Start a billing period on ``plan``.

        Creates a new subscription, or reactivates ``subscription`` after a
        successful renewal. Any other active subscription of the tenant is
        cancelled as superseded.
        """
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise InvalidInputError(
                "Unknown payment method", field="payment_method", value=payment_method
            )

        tenant = await self._get_tenant(tenant_id)
        now = self.clock()
        end_date = now + timedelta(days=plan.duration_days)

        if subscription is None:
            subscription = SubscriptionTable(tenant_id=tenant_id)
            self.db.add(subscription)
        elif subscription.tenant_id != tenant_id:
            raise SubscriptionNotFoundError(subscription.id)
        elif subscription.status == CANCELLED:
            raise ConflictError(
                "Cancelled subscriptions cannot be reactivated",
                current_state=CANCELLED,
                requested_state=ACTIVE,
                context={"subscription_id": subscription.id},
            )

        subscription.plan_id = plan.id
        subscription.status = ACTIVE
        subscription.start_date = now
        subscription.end_date = end_date
        subscription.payment_method = method.value
        if payment_id is not None:
            subscription.payment_id = payment_id
        subscription.amount = plan.price if amount is None else amount
        subscription.currency = currency or plan.currency
        subscription.auto_renew = auto_renew
        subscription.renew_attempts = 0
        subscription.last_renewal_date = now
        subscription.next_renewal_date = end_date if auto_renew else None
        subscription.cancelled_at = None
        await self.db.flush()

        await self._supersede_others(tenant_id, keep_id=subscription.id, now=now)

        tenant.plan_id = plan.id
        tenant.set_plan_status(TenantPlanStatus.ACTIVE)
        tenant.plan_start_date = now
        tenant.plan_expire_date = end_date
        await self.db.flush()

        logger.info(
            "billing.subscription.activated",
            tenant_id=tenant_id,
            subscription_id=subscription.id,
            plan=plan.name,
            payment_method=method.value,
            end_date=end_date.isoformat(),
        )
        return subscription

    async def _supersede_others(self, tenant_id: str, keep_id: str, now: datetime) -> None:
        """Keep a single active subscription and stop retries on lapsed ones."""
        result = await self.db.execute(
            select(SubscriptionTable).where(
                SubscriptionTable.tenant_id == tenant_id,
                SubscriptionTable.id != keep_id,
                or_(
                    SubscriptionTable.status == ACTIVE,
                    and_(
                        SubscriptionTable.status == EXPIRED,
                        SubscriptionTable.auto_renew.is_(True),
                    ),
                ),
            )
        )
        for other in result.scalars().all():
            if other.status == ACTIVE:
                other.status = CANCELLED
                other.cancelled_at = now
                logger.info(
                    "billing.subscription.superseded",
                    tenant_id=tenant_id,
                    subscription_id=other.id,
                    superseded_by=keep_id,
                )
            other.auto_renew = False
            other.next_renewal_date = None
        await self.db.flush()

    async def expire(self, subscription: SubscriptionTable, source: str = "lazy") -> bool:
        """Flip an active subscription past its end date to expired.

        The update is conditioned on the row still being active and overdue,
        so concurrent callers (lazy expiry and the sweep) apply it at most
        once. Auto-renewing subscriptions get a fresh retry budget. Returns
        True when this call performed the transition.
        """
        now = self.clock()
        await self.db.flush()
        result = await self.db.execute(
            update(SubscriptionTable)
            .where(
                SubscriptionTable.id == subscription.id,
                SubscriptionTable.status == ACTIVE,
                SubscriptionTable.end_date < now,
            )
            .values(
                status=EXPIRED,
                renew_attempts=case(
                    (SubscriptionTable.auto_renew.is_(True), 0),
                    else_=SubscriptionTable.renew_attempts,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._reload(subscription)
        if result.rowcount == 0:
            return False

        await self.db.execute(
            update(TenantTable)
            .where(
                TenantTable.id == subscription.tenant_id,
                TenantTable.plan_id == subscription.plan_id,
                TenantTable.status == TenantPlanStatus.ACTIVE.value,
            )
            .values(
                status=TenantPlanStatus.EXPIRED.value,
                plan_status=TenantPlanStatus.EXPIRED.value,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        # Sync a tenant already loaded in this session with the conditional update
        await self.db.get(TenantTable, subscription.tenant_id, populate_existing=True)

        get_billing_metrics().record_expired(subscription.tenant_id, source)
        logger.info(
            "billing.subscription.expired",
            tenant_id=subscription.tenant_id,
            subscription_id=subscription.id,
            auto_renew=subscription.auto_renew,
            source=source,
        )
        return True

    async def lazy_refresh(self, tenant_id: str) -> TenantTable:
        """Correct stale plan state for ``tenant_id`` and return the tenant.

        Run on any request path that gates on plan status.
        """
        tenant = await self._get_tenant(tenant_id)
        now = self.clock()

        result = await self.db.execute(
            select(SubscriptionTable).where(
                SubscriptionTable.tenant_id == tenant_id,
                SubscriptionTable.status == ACTIVE,
                SubscriptionTable.end_date < now,
            )
        )
        for subscription in result.scalars().all():
            await self.expire(subscription, source="lazy")

        await self.db.refresh(tenant)
        if tenant.is_stale(now):
            tenant.set_plan_status(TenantPlanStatus.EXPIRED)
            logger.info("billing.tenant.plan_expired", tenant_id=tenant_id)
        await self.db.commit()
        return tenant

    async def cancel(
        self,
        subscription_id: str,
        tenant_id: str | None = None,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> SubscriptionTable:
        """Cancel a subscription; it is never renewed or reactivated afterwards."""
        subscription = await self.get(subscription_id, tenant_id)
        if subscription.status == CANCELLED:
            raise ConflictError(
                "Subscription is already cancelled",
                current_state=CANCELLED,
                requested_state=CANCELLED,
                context={"subscription_id": subscription_id},
            )
        await self.mark_cancelled(subscription, actor_id=actor_id, reason=reason)
        await self.db.commit()
        return subscription

    async def mark_cancelled(
        self,
        subscription: SubscriptionTable,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Cancel within the caller's unit of work."""
        was_active = subscription.status == ACTIVE
        subscription.status = CANCELLED
        subscription.cancelled_at = self.clock()
        subscription.auto_renew = False
        subscription.next_renewal_date = None

        if was_active:
            tenant = await self.db.get(TenantTable, subscription.tenant_id)
            if tenant is not None and tenant.plan_id == subscription.plan_id:
                tenant.set_plan_status(TenantPlanStatus.CANCELLED)
        await self.db.flush()

        log_audit_event(
            action="subscription.cancelled",
            category="billing",
            user_id=actor_id,
            tenant_id=subscription.tenant_id,
            resource_type="subscription",
            resource_id=subscription.id,
            reason=reason,
        )

    async def set_auto_renew(
        self,
        subscription_id: str,
        enabled: bool,
        tenant_id: str | None = None,
        actor_id: str | None = None,
    ) -> SubscriptionTable:
        subscription = await self.get(subscription_id, tenant_id)
        if enabled and subscription.status == CANCELLED:
            raise ConflictError(
                "Cannot enable auto-renew on a cancelled subscription",
                current_state=CANCELLED,
                context={"subscription_id": subscription_id},
            )
        subscription.auto_renew = enabled
        if enabled and subscription.status == ACTIVE:
            subscription.next_renewal_date = subscription.end_date
        elif not enabled:
            subscription.next_renewal_date = None
        await self.db.commit()

        logger.info(
            "billing.subscription.auto_renew_changed",
            subscription_id=subscription_id,
            enabled=enabled,
            actor_id=actor_id,
        )
        return subscription

    # ==================== Renewal selection ====================

    def is_renewal_candidate(self, subscription: SubscriptionTable, now: datetime) -> bool:
        """Whether an automated renewal attempt may run for ``subscription`` now.

        Active subscriptions qualify inside the look-ahead window before
        expiry. Expired auto-renew subscriptions keep qualifying for the grace
        period after hard expiry. Both need retry budget left.
        """
        if not subscription.auto_renew or subscription.end_date is None:
            return False
        if subscription.renew_attempts >= self.max_attempts:
            return False
        if subscription.status == ACTIVE:
            return now <= subscription.end_date <= now + self.lookahead
        if subscription.status == EXPIRED:
            return now - self.grace <= subscription.end_date < now
        return False

    async def list_renewal_candidate_ids(self, now: datetime) -> list[str]:
        """Ids of subscriptions matching ``is_renewal_candidate`` at ``now``."""
        result = await self.db.execute(
            select(SubscriptionTable.id)
            .where(
                SubscriptionTable.auto_renew.is_(True),
                SubscriptionTable.renew_attempts < self.max_attempts,
                or_(
                    and_(
                        SubscriptionTable.status == ACTIVE,
                        SubscriptionTable.end_date >= now,
                        SubscriptionTable.end_date <= now + self.lookahead,
                    ),
                    and_(
                        SubscriptionTable.status == EXPIRED,
                        SubscriptionTable.end_date >= now - self.grace,
                        SubscriptionTable.end_date < now,
                    ),
                ),
            )
            .order_by(SubscriptionTable.end_date)
        )
        return list(result.scalars().all())

    async def list_overdue_ids(self, now: datetime) -> list[str]:
        """Ids of active subscriptions whose end date has passed."""
        result = await self.db.execute(
            select(SubscriptionTable.id).where(
                SubscriptionTable.status == ACTIVE, SubscriptionTable.end_date < now
            )
        )
        return list(result.scalars().all())


__all__ = ["SubscriptionService"]
