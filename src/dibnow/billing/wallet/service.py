"""
Wallet ledger service.

Every balance change is paired with an appended ledger entry inside one
database transaction, under the tenant's wallet lock.
"""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from moneyed import Money
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.service import PlanCatalog
from dibnow.billing.db import utcnow
from dibnow.billing.exceptions import (
    InsufficientFundsError,
    InvalidInputError,
    TenantNotFoundError,
    WalletNotFoundError,
)
from dibnow.billing.metrics import get_billing_metrics
from dibnow.billing.money import (
    ZERO,
    money_handler,
    parse_amount,
    validate_amount,
    validate_currency,
)
from dibnow.billing.settings import settings
from dibnow.billing.subscriptions.models import PaymentMethod
from dibnow.billing.subscriptions.service import SubscriptionService
from dibnow.billing.tenants.models import TenantTable
from dibnow.billing.wallet.locks import WalletLockRegistry, wallet_locks
from dibnow.billing.wallet.models import (
    TransactionStatus,
    TransactionTable,
    TransactionType,
    WalletTable,
)

logger = structlog.get_logger(__name__)

# Statuses of wallet entries whose amount is part of the balance
LEDGER_STATUSES = (
    TransactionStatus.COMPLETED.value,
    TransactionStatus.REFUNDED.value,
    TransactionStatus.PARTIALLY_REFUNDED.value,
)

TOPUP_METHODS = frozenset(
    {PaymentMethod.STRIPE, PaymentMethod.PAYPAL, PaymentMethod.PAYFAST, PaymentMethod.MANUAL}
)


@dataclass(frozen=True)
class LedgerCheck:
    """Result of recomputing a wallet balance from its ledger."""

    tenant_id: str
    balance: Decimal
    ledger_sum: Decimal
    entries: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_sum


class WalletService:
    """Service for tenant wallets."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] | None = None,
        locks: WalletLockRegistry | None = None,
    ) -> None:
        self.db = db
        self.clock = clock or utcnow
        self.locks = locks or wallet_locks

    # ==================== Reads ====================

    async def get_wallet(self, tenant_id: str) -> WalletTable | None:
        result = await self.db.execute(
            select(WalletTable).where(WalletTable.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, tenant_id: str, currency: str | None = None) -> WalletTable:
        """Get the tenant's wallet, creating an empty one on first use."""
        async with self.locks.hold(tenant_id):
            wallet = await self.get_wallet(tenant_id)
            if wallet is None:
                wallet = WalletTable(
                    tenant_id=tenant_id,
                    balance=ZERO,
                    currency=validate_currency(currency or settings.billing.default_currency),
                    ledger_sequence=0,
                )
                self.db.add(wallet)
                await self.db.commit()
                logger.info("billing.wallet.created", tenant_id=tenant_id, currency=wallet.currency)
            return wallet

    async def balance(self, tenant_id: str) -> Money:
        """Current balance; zero in the default currency when no wallet exists."""
        wallet = await self.get_wallet(tenant_id)
        if wallet is None:
            return money_handler.create_money(ZERO, settings.billing.default_currency)
        return money_handler.create_money(wallet.balance, wallet.currency)

    async def list_transactions(self, tenant_id: str, limit: int = 100) -> list[TransactionTable]:
        """All transactions of the tenant, newest first."""
        result = await self.db.execute(
            select(TransactionTable)
            .where(TransactionTable.tenant_id == tenant_id)
            .order_by(TransactionTable.created_at.desc(), TransactionTable.sequence.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== Ledger primitives ====================

    async def lock_wallet_row(self, tenant_id: str) -> WalletTable | None:
        """Load the wallet with a row lock and fresh column values.

        Must be called while holding ``self.locks.hold(tenant_id)``.
        """
        result = await self.db.execute(
            select(WalletTable)
            .where(WalletTable.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def append_entry(
        self,
        wallet: WalletTable,
        transaction_type: TransactionType,
        amount: Decimal,
        **fields: Any,
    ) -> TransactionTable:
        """Apply ``amount`` to the balance and append the matching entry.

        The caller holds the wallet lock and commits.
        """
        wallet.ledger_sequence += 1
        wallet.balance = wallet.balance + amount
        entry = TransactionTable(
            tenant_id=wallet.tenant_id,
            wallet_id=wallet.id,
            sequence=wallet.ledger_sequence,
            transaction_type=transaction_type.value,
            amount=amount,
            currency=wallet.currency,
            status=TransactionStatus.COMPLETED.value,
            created_at=self.clock(),
            **fields,
        )
        self.db.add(entry)
        return entry

    @asynccontextmanager
    async def _rollback_on_error(self) -> AsyncIterator[None]:
        try:
            yield
        except Exception:
            await self.db.rollback()
            raise

    # ==================== Mutations ====================

    async def top_up(
        self,
        tenant_id: str,
        amount: Any,
        payment_method: PaymentMethod | str,
        payment_id: str | None = None,
        currency: str | None = None,
        description: str | None = None,
    ) -> TransactionTable:
        """Credit the wallet after an external payment cleared."""
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise InvalidInputError(
                "Unknown payment method", field="payment_method", value=payment_method
            )
        if method not in TOPUP_METHODS:
            raise InvalidInputError(
                "Wallet cannot be topped up from itself", field="payment_method", value=method.value
            )

        async with self.locks.hold(tenant_id):
            wallet = await self.lock_wallet_row(tenant_id)
            if wallet is not None:
                if currency and validate_currency(currency) != wallet.currency:
                    raise InvalidInputError(
                        f"Wallet currency is {wallet.currency}", field="currency", value=currency
                    )
                wallet_currency = wallet.currency
            else:
                wallet_currency = validate_currency(
                    currency or settings.billing.default_currency
                )
            value = parse_amount(amount, wallet_currency)

            async with self._rollback_on_error():
                if wallet is None:
                    wallet = WalletTable(
                        tenant_id=tenant_id,
                        balance=ZERO,
                        currency=wallet_currency,
                        ledger_sequence=0,
                    )
                    self.db.add(wallet)
                    await self.db.flush()
                entry = self.append_entry(
                    wallet,
                    TransactionType.WALLET_TOPUP,
                    value,
                    payment_method=method.value,
                    payment_id=payment_id,
                    description=description or "Wallet top-up",
                )
                await self.db.commit()

        get_billing_metrics().record_wallet_topup(tenant_id, wallet.currency)
        logger.info(
            "billing.wallet.topped_up",
            tenant_id=tenant_id,
            amount=str(value),
            balance=str(wallet.balance),
            transaction_id=entry.id,
        )
        return entry

    async def deduct(
        self,
        tenant_id: str,
        amount: Any,
        reason: str | None = None,
        plan_id: str | None = None,
    ) -> TransactionTable:
        """Debit the wallet, failing closed.

        With ``plan_id`` the deduction buys that plan: the entry is typed
        ``subscription`` and the tenant is activated on the plan in the same
        database transaction.
        """
        # Malformed amounts are rejected before the wallet is looked up
        requested = validate_amount(amount)
        async with self.locks.hold(tenant_id):
            wallet = await self.lock_wallet_row(tenant_id)
            if wallet is None:
                raise WalletNotFoundError(tenant_id)
            value = parse_amount(requested, wallet.currency)

            plan = None
            if plan_id is not None:
                plan = await PlanCatalog(self.db).require(plan_id)
                if plan.currency != wallet.currency or plan.price != value:
                    raise InvalidInputError(
                        f"Plan {plan.name} costs {plan.price} {plan.currency}",
                        field="amount",
                        value=amount,
                    )
                if await self.db.get(TenantTable, tenant_id) is None:
                    raise TenantNotFoundError(tenant_id)

            if wallet.balance < value:
                raise InsufficientFundsError(tenant_id, balance=wallet.balance, required=value)

            async with self._rollback_on_error():
                entry = self.append_entry(
                    wallet,
                    TransactionType.SUBSCRIPTION if plan else TransactionType.WALLET_DEDUCTION,
                    -value,
                    payment_method=PaymentMethod.WALLET.value,
                    plan_id=plan.id if plan else None,
                    description=reason or "Wallet deduction",
                )
                await self.db.flush()

                if plan is not None:
                    subscription = await SubscriptionService(self.db, clock=self.clock).activate(
                        tenant_id,
                        plan,
                        payment_method=PaymentMethod.WALLET,
                        payment_id=entry.id,
                        amount=value,
                        currency=wallet.currency,
                    )
                    entry.subscription_id = subscription.id

                await self.db.commit()

        get_billing_metrics().record_wallet_deduction(
            tenant_id, wallet.currency, entry.transaction_type
        )
        logger.info(
            "billing.wallet.deducted",
            tenant_id=tenant_id,
            amount=str(value),
            balance=str(wallet.balance),
            transaction_id=entry.id,
            plan_id=plan_id,
        )
        return entry

    async def verify_ledger(self, tenant_id: str) -> LedgerCheck:
        """Recompute the balance from the wallet's entries."""
        wallet = await self.get_wallet(tenant_id)
        if wallet is None:
            raise WalletNotFoundError(tenant_id)
        await self.db.refresh(wallet)

        result = await self.db.execute(
            select(TransactionTable.amount).where(
                TransactionTable.wallet_id == wallet.id,
                TransactionTable.status.in_(LEDGER_STATUSES),
            )
        )
        amounts = [Decimal(a) for a in result.scalars().all()]
        check = LedgerCheck(
            tenant_id=tenant_id,
            balance=Decimal(wallet.balance),
            ledger_sum=sum(amounts, ZERO),
            entries=len(amounts),
        )
        if not check.consistent:
            logger.error(
                "billing.wallet.ledger_mismatch",
                tenant_id=tenant_id,
                balance=str(check.balance),
                ledger_sum=str(check.ledger_sum),
            )
        return check


__all__ = ["LedgerCheck", "WalletService", "LEDGER_STATUSES"]
