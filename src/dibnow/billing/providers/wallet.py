"""
Wallet-funded renewals.

Unlike the external providers, the wallet settles in the billing database
itself. The renewal sweep therefore charges it inside the renewal's own
session: the wallet entry and the reactivated subscription commit together,
and no provider timeout can separate a committed deduction from its
renewal.
"""

from collections.abc import Callable
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.models import PlanTable
from dibnow.billing.providers.base import ChargeProvider, ChargeResult
from dibnow.billing.subscriptions.models import PaymentMethod, SubscriptionTable
from dibnow.billing.wallet.locks import WalletLockRegistry, wallet_locks
from dibnow.billing.wallet.models import TransactionType
from dibnow.billing.wallet.service import WalletService

logger = structlog.get_logger(__name__)


class WalletChargeProvider(ChargeProvider):
    """Renews by deducting the plan price from the tenant's wallet."""

    payment_method = PaymentMethod.WALLET

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        locks: WalletLockRegistry | None = None,
    ) -> None:
        self.clock = clock
        self.locks = locks or wallet_locks

    async def renew(self, subscription_id: str) -> ChargeResult:
        return ChargeResult.failure("wallet renewals settle inside the renewal transaction")

    async def charge(
        self, session: AsyncSession, subscription: SubscriptionTable, plan: PlanTable
    ) -> ChargeResult:
        """Append the renewal entry to the wallet without committing.

        The caller holds ``self.locks.hold(tenant_id)`` until it commits or
        rolls back. A declined charge leaves the session untouched.
        """
        wallets = WalletService(session, clock=self.clock, locks=self.locks)
        wallet = await wallets.lock_wallet_row(subscription.tenant_id)
        if wallet is None:
            return ChargeResult.failure("wallet not found")
        if wallet.currency != plan.currency:
            return ChargeResult.failure(
                f"wallet currency {wallet.currency} does not match plan currency {plan.currency}"
            )
        if wallet.balance < plan.price:
            logger.info(
                "billing.provider.wallet_renewal_declined",
                subscription_id=subscription.id,
                balance=str(wallet.balance),
                required=str(plan.price),
            )
            return ChargeResult.failure("insufficient wallet balance")

        entry = wallets.append_entry(
            wallet,
            TransactionType.RENEWAL,
            -plan.price,
            payment_method=PaymentMethod.WALLET.value,
            subscription_id=subscription.id,
            plan_id=plan.id,
            description=f"Renewal of {plan.name}",
        )
        await session.flush()
        return ChargeResult.success(entry.id)


__all__ = ["WalletChargeProvider"]
