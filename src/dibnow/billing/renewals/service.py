"""
Renewal sweeps.

Each cycle runs two independent passes: charge subscriptions due for
renewal, then expire active subscriptions past their end date. Every
subscription is processed in its own session so one tenant's failure never
aborts the sweep.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dibnow.billing.catalog.models import PlanTable
from dibnow.billing.db import utcnow
from dibnow.billing.exceptions import BillingError
from dibnow.billing.metrics import get_billing_metrics
from dibnow.billing.money import ZERO
from dibnow.billing.notifications.models import NotificationType
from dibnow.billing.notifications.service import NotificationSink, notify_tenant
from dibnow.billing.providers.base import ChargeProvider, ChargeResult
from dibnow.billing.providers.registry import ProviderRegistry
from dibnow.billing.providers.wallet import WalletChargeProvider
from dibnow.billing.settings import settings
from dibnow.billing.subscriptions.models import SubscriptionTable
from dibnow.billing.subscriptions.service import SubscriptionService
from dibnow.billing.wallet.ledger import LedgerService
from dibnow.billing.wallet.models import TransactionTable

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RenewalOutcome:
    subscription_id: str
    status: str  # renewed | failed | skipped
    tenant_id: str | None = None
    error: str | None = None


@dataclass
class RenewalCycleReport:
    """Result of one scheduler cycle."""

    started_at: datetime
    renewed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)

    def add(self, outcome: RenewalOutcome) -> None:
        getattr(self, outcome.status).append(outcome.subscription_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "renewed": len(self.renewed),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "expired": len(self.expired),
        }


class RenewalService:
    """Drives automated renewals through the provider registry."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        providers: ProviderRegistry,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.providers = providers
        self.notifier = notifier
        self.clock = clock or utcnow
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.billing.renewal_timeout_seconds
        )
        self.max_attempts = settings.billing.max_renew_attempts

    async def run_cycle(self) -> RenewalCycleReport:
        """Renewal sweep followed by the expiry sweep."""
        report = RenewalCycleReport(started_at=self.clock())
        for outcome in await self.sweep_renewals():
            report.add(outcome)
        report.expired.extend(await self.sweep_expired())
        logger.info("billing.renewals.cycle_complete", **report.to_dict())
        return report

    async def sweep_renewals(self) -> list[RenewalOutcome]:
        now = self.clock()
        async with self.session_factory() as session:
            candidate_ids = await SubscriptionService(
                session, clock=self.clock
            ).list_renewal_candidate_ids(now)
        logger.info("billing.renewals.candidates", count=len(candidate_ids))

        outcomes: list[RenewalOutcome] = []
        for subscription_id in candidate_ids:
            try:
                outcome = await self.renew_subscription(subscription_id)
            except Exception as e:
                logger.exception(
                    "billing.renewals.unexpected_error", subscription_id=subscription_id
                )
                outcome = RenewalOutcome(subscription_id, "failed", error=str(e))
            outcomes.append(outcome)
        return outcomes

    async def renew_subscription(self, subscription_id: str) -> RenewalOutcome:
        """Attempt one renewal if the subscription still qualifies."""
        async with self.session_factory() as session:
            subscriptions = SubscriptionService(session, clock=self.clock)

            subscription = await session.get(SubscriptionTable, subscription_id)
            # Re-check: an already renewed subscription left the window
            if subscription is None or not subscriptions.is_renewal_candidate(
                subscription, self.clock()
            ):
                return RenewalOutcome(subscription_id, "skipped")

            tenant_id = subscription.tenant_id
            plan = await session.get(PlanTable, subscription.plan_id)
            if plan is None:
                subscription.renew_attempts += 1
                await session.commit()
                logger.error(
                    "billing.renewals.plan_missing",
                    subscription_id=subscription_id,
                    plan_id=subscription.plan_id,
                )
                return RenewalOutcome(subscription_id, "failed", tenant_id, "plan not found")

            metrics = get_billing_metrics()
            metrics.record_renewal_attempt(tenant_id, subscription.payment_method)
            with metrics.trace_renewal(tenant_id, subscription_id):
                if plan.price == ZERO:
                    return await self._renew_free(session, subscription, plan)
                provider = self.providers.get(subscription.payment_method)
                if isinstance(provider, WalletChargeProvider):
                    return await self._renew_from_wallet(session, subscription, plan, provider)
                return await self._renew_through_provider(session, subscription, plan, provider)

    async def _renew_free(
        self, session: AsyncSession, subscription: SubscriptionTable, plan: PlanTable
    ) -> RenewalOutcome:
        """Zero-priced plans extend without charging anyone."""
        ledger = LedgerService(session, clock=self.clock)
        record = ledger.record_renewal(subscription, plan.price)
        return await self._apply(session, subscription, plan, None, record=record)

    async def _renew_from_wallet(
        self,
        session: AsyncSession,
        subscription: SubscriptionTable,
        plan: PlanTable,
        provider: WalletChargeProvider,
    ) -> RenewalOutcome:
        """Deduct and reactivate in one database transaction."""
        async with provider.locks.hold(subscription.tenant_id):
            result = await provider.charge(session, subscription, plan)
            if result.ok:
                return await self._apply(session, subscription, plan, result.payment_id)
        return await self._fail(session, subscription, plan, result.error)

    async def _renew_through_provider(
        self,
        session: AsyncSession,
        subscription: SubscriptionTable,
        plan: PlanTable,
        provider: ChargeProvider | None,
    ) -> RenewalOutcome:
        ledger = LedgerService(session, clock=self.clock)
        # Open the ledger record before any money moves
        record = ledger.record_renewal(subscription, plan.price)
        await session.commit()

        result = await self._charge(subscription, provider)
        if result.ok:
            return await self._apply(session, subscription, plan, result.payment_id, record=record)
        return await self._fail(session, subscription, plan, result.error, record=record)

    async def _apply(
        self,
        session: AsyncSession,
        subscription: SubscriptionTable,
        plan: PlanTable,
        payment_id: str | None,
        record: TransactionTable | None = None,
    ) -> RenewalOutcome:
        """Complete the renewal record and start the next period."""
        subscription_id = subscription.id
        tenant_id = subscription.tenant_id
        payment_method = subscription.payment_method
        record_id = record.id if record is not None else payment_id
        try:
            if record is not None:
                LedgerService(session, clock=self.clock).complete(record, payment_id)
            await SubscriptionService(session, clock=self.clock).activate(
                tenant_id,
                plan,
                payment_method=payment_method,
                payment_id=payment_id,
                amount=plan.price,
                currency=plan.currency,
                auto_renew=True,
                subscription=subscription,
            )
            await session.commit()
        except BillingError as e:
            # An external charge stays visible through its pending record
            await session.rollback()
            logger.error(
                "billing.renewals.not_applied",
                tenant_id=tenant_id,
                subscription_id=subscription_id,
                transaction_id=record_id,
                payment_id=payment_id,
                error=e.message,
            )
            return RenewalOutcome(subscription_id, "failed", tenant_id, e.message)

        get_billing_metrics().record_renewal_result(tenant_id, payment_method, True)
        logger.info(
            "billing.renewals.renewed",
            tenant_id=tenant_id,
            subscription_id=subscription_id,
            payment_id=payment_id,
        )
        await notify_tenant(
            self.notifier,
            tenant_id,
            "Subscription renewed",
            f"Your {plan.name} plan was renewed until {subscription.end_date:%Y-%m-%d}.",
            NotificationType.SUCCESS,
        )
        return RenewalOutcome(subscription_id, "renewed", tenant_id)

    async def _fail(
        self,
        session: AsyncSession,
        subscription: SubscriptionTable,
        plan: PlanTable,
        error: str | None,
        record: TransactionTable | None = None,
    ) -> RenewalOutcome:
        """Record a failed attempt against the subscription's retry budget."""
        ledger = LedgerService(session, clock=self.clock)
        if record is None:
            record = ledger.record_renewal(subscription, plan.price)
        ledger.fail(record, error)
        subscription.renew_attempts += 1
        await session.commit()

        tenant_id = subscription.tenant_id
        get_billing_metrics().record_renewal_result(
            tenant_id, subscription.payment_method, False, reason=error
        )
        logger.warning(
            "billing.renewals.failed",
            tenant_id=tenant_id,
            subscription_id=subscription.id,
            attempts=subscription.renew_attempts,
            error=error,
        )
        if subscription.renew_attempts >= self.max_attempts:
            await notify_tenant(
                self.notifier,
                tenant_id,
                "Subscription renewal failed",
                f"We could not renew your {plan.name} plan. "
                "Please update your payment method or renew manually.",
                NotificationType.WARNING,
            )
        return RenewalOutcome(subscription.id, "failed", tenant_id, error)

    async def _charge(
        self, subscription: SubscriptionTable, provider: ChargeProvider | None
    ) -> ChargeResult:
        """Call the provider with a bounded timeout; any error is a failure."""
        if provider is None:
            return ChargeResult.failure(f"no provider for {subscription.payment_method}")
        try:
            return await asyncio.wait_for(
                provider.renew(subscription.id), timeout=self.timeout_seconds
            )
        except TimeoutError:
            return ChargeResult.failure(f"provider timed out after {self.timeout_seconds}s")
        except Exception as e:
            logger.warning(
                "billing.renewals.provider_error",
                subscription_id=subscription.id,
                error=str(e),
            )
            return ChargeResult.failure(str(e) or e.__class__.__name__)

    async def sweep_expired(self) -> list[str]:
        """Expire active subscriptions past their end date."""
        now = self.clock()
        async with self.session_factory() as session:
            overdue = await SubscriptionService(session, clock=self.clock).list_overdue_ids(now)

        expired: list[str] = []
        for subscription_id in overdue:
            try:
                async with self.session_factory() as session:
                    subscriptions = SubscriptionService(session, clock=self.clock)
                    subscription = await session.get(SubscriptionTable, subscription_id)
                    if subscription is not None and await subscriptions.expire(
                        subscription, source="sweep"
                    ):
                        expired.append(subscription_id)
                    await session.commit()
            except Exception:
                logger.exception("billing.renewals.expire_failed", subscription_id=subscription_id)
        return expired


__all__ = ["RenewalOutcome", "RenewalCycleReport", "RenewalService"]
