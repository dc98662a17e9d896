"""
Provider-neutral ledger operations.

Renewal and manual-approval payments are recorded here without touching the
wallet balance; refunds reverse wallet entries through the wallet lock.
"""

from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.db import utcnow
from dibnow.billing.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidInputError,
    TransactionNotFoundError,
    WalletNotFoundError,
)
from dibnow.billing.logging import log_audit_event
from dibnow.billing.metrics import get_billing_metrics
from dibnow.billing.money import parse_amount
from dibnow.billing.settings import settings
from dibnow.billing.subscriptions.models import (
    PaymentMethod,
    SubscriptionStatus,
    SubscriptionTable,
)
from dibnow.billing.subscriptions.service import SubscriptionService
from dibnow.billing.wallet.locks import WalletLockRegistry, wallet_locks
from dibnow.billing.wallet.models import TransactionStatus, TransactionTable, TransactionType
from dibnow.billing.wallet.service import WalletService

logger = structlog.get_logger(__name__)

PENDING = TransactionStatus.PENDING.value
COMPLETED = TransactionStatus.COMPLETED.value
FAILED = TransactionStatus.FAILED.value


@dataclass(frozen=True)
class RenewalReport:
    """Operational snapshot of the renewal pipeline."""

    upcoming_renewals: int
    lapsed_retrying: int
    successful_renewals_today: int
    failed_renewals_today: int
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class LedgerService:
    """Records non-wallet payments and processes refunds."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] | None = None,
        locks: WalletLockRegistry | None = None,
    ) -> None:
        self.db = db
        self.clock = clock or utcnow
        self.locks = locks or wallet_locks

    async def get(self, transaction_id: str, tenant_id: str | None = None) -> TransactionTable:
        transaction = await self.db.get(TransactionTable, transaction_id)
        if transaction is None or (tenant_id is not None and transaction.tenant_id != tenant_id):
            raise TransactionNotFoundError(transaction_id)
        return transaction

    async def list_transactions(
        self,
        tenant_id: str | None = None,
        transaction_type: TransactionType | None = None,
        status: TransactionStatus | None = None,
        limit: int = 100,
    ) -> list[TransactionTable]:
        stmt = select(TransactionTable).order_by(TransactionTable.created_at.desc()).limit(limit)
        if tenant_id:
            stmt = stmt.where(TransactionTable.tenant_id == tenant_id)
        if transaction_type:
            stmt = stmt.where(TransactionTable.transaction_type == transaction_type.value)
        if status:
            stmt = stmt.where(TransactionTable.status == status.value)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # ==================== Payment records ====================

    def record_payment(
        self,
        tenant_id: str,
        transaction_type: TransactionType,
        amount: Decimal,
        currency: str,
        payment_method: PaymentMethod | str,
        status: TransactionStatus = TransactionStatus.PENDING,
        **fields: Any,
    ) -> TransactionTable:
        """Add a payment record that is not part of any wallet ledger."""
        transaction = TransactionTable(
            tenant_id=tenant_id,
            transaction_type=transaction_type.value,
            amount=amount,
            currency=currency,
            status=status.value,
            payment_method=PaymentMethod(payment_method).value,
            created_at=self.clock(),
            **fields,
        )
        self.db.add(transaction)
        return transaction

    def record_renewal(self, subscription: SubscriptionTable, amount: Decimal) -> TransactionTable:
        """Pending renewal record opened before the provider is charged."""
        return self.record_payment(
            subscription.tenant_id,
            TransactionType.RENEWAL,
            amount,
            subscription.currency,
            subscription.payment_method,
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            description=f"Automatic renewal of subscription {subscription.id}",
        )

    def complete(self, transaction: TransactionTable, payment_id: str | None) -> TransactionTable:
        self._ensure_pending(transaction, COMPLETED)
        transaction.status = COMPLETED
        transaction.payment_id = payment_id
        return transaction

    def fail(self, transaction: TransactionTable, reason: str | None) -> TransactionTable:
        self._ensure_pending(transaction, FAILED)
        transaction.status = FAILED
        transaction.extra_data = {**(transaction.extra_data or {}), "failure_reason": reason}
        return transaction

    def _ensure_pending(self, transaction: TransactionTable, requested: str) -> None:
        if transaction.status != PENDING:
            raise ConflictError(
                f"Transaction {transaction.id} is already {transaction.status}",
                current_state=transaction.status,
                requested_state=requested,
            )

    # ==================== Refunds ====================

    async def refund(
        self,
        transaction_id: str,
        amount: Any = None,
        reason: str | None = None,
        admin_id: str | None = None,
    ) -> TransactionTable:
        """Refund a completed transaction, fully or partially.

        The original keeps its amount and moves to ``refunded`` or
        ``partially_refunded``; a new ``refund`` entry records the money
        movement. Wallet entries are reversed on the wallet balance. A
        refunded subscription payment cancels that subscription.
        """
        located = await self.get(transaction_id)
        tenant_id = located.tenant_id

        async with self.locks.hold(tenant_id):
            original = (
                await self.db.execute(
                    select(TransactionTable)
                    .where(TransactionTable.id == transaction_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()

            if original.transaction_type == TransactionType.REFUND.value:
                raise InvalidInputError("Refund entries cannot be refunded", field="transaction_id")
            if original.status != COMPLETED:
                raise ConflictError(
                    "Only completed transactions can be refunded",
                    current_state=original.status,
                    requested_state=TransactionStatus.REFUNDED.value,
                    context={"transaction_id": transaction_id},
                )

            paid = abs(Decimal(original.amount))
            value = paid if amount is None else parse_amount(amount, original.currency)
            if value > paid:
                raise InvalidInputError(
                    f"Refund exceeds original amount {paid}", field="amount", value=amount
                )

            wallets = WalletService(self.db, clock=self.clock, locks=self.locks)
            wallet = None
            signed = -value
            if original.wallet_id is not None:
                wallet = await wallets.lock_wallet_row(tenant_id)
                if wallet is None:
                    raise WalletNotFoundError(tenant_id)
                # Reverse the original movement on the wallet
                signed = -value if original.amount > 0 else value
                if signed < 0 and wallet.balance < value:
                    raise InsufficientFundsError(tenant_id, balance=wallet.balance, required=value)

            now = self.clock()
            partial = value < paid
            refund_id = f"REF_{uuid4().hex[:16].upper()}"
            try:
                original.status = (
                    TransactionStatus.PARTIALLY_REFUNDED.value
                    if partial
                    else TransactionStatus.REFUNDED.value
                )
                original.refund_id = refund_id
                original.refund_amount = value
                original.refund_reason = reason
                original.refunded_at = now
                original.processed_by = admin_id

                entry_fields: dict[str, Any] = {
                    "payment_method": original.payment_method,
                    "payment_id": refund_id,
                    "refund_id": refund_id,
                    "refund_amount": value,
                    "refund_reason": reason,
                    "refunded_at": now,
                    "original_transaction_id": original.id,
                    "subscription_id": original.subscription_id,
                    "plan_id": original.plan_id,
                    "processed_by": admin_id,
                    "description": f"Refund for {original.description or original.id}",
                }
                if wallet is not None:
                    refund_entry = wallets.append_entry(
                        wallet, TransactionType.REFUND, signed, **entry_fields
                    )
                else:
                    refund_entry = TransactionTable(
                        tenant_id=tenant_id,
                        transaction_type=TransactionType.REFUND.value,
                        amount=signed,
                        currency=original.currency,
                        status=COMPLETED,
                        created_at=now,
                        **entry_fields,
                    )
                    self.db.add(refund_entry)
                await self.db.flush()

                if original.subscription_id and original.transaction_type in (
                    TransactionType.SUBSCRIPTION.value,
                    TransactionType.RENEWAL.value,
                ):
                    await self._cancel_refunded_subscription(original.subscription_id, admin_id)

                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        get_billing_metrics().record_refund(tenant_id, original.transaction_type, partial)
        log_audit_event(
            action="transaction.refunded",
            category="billing",
            user_id=admin_id,
            tenant_id=tenant_id,
            resource_type="transaction",
            resource_id=transaction_id,
            refund_id=refund_id,
            amount=str(value),
            partial=partial,
            reason=reason,
        )
        return refund_entry

    async def _cancel_refunded_subscription(
        self, subscription_id: str, admin_id: str | None
    ) -> None:
        subscription = await self.db.get(SubscriptionTable, subscription_id)
        if subscription is None or subscription.status == SubscriptionStatus.CANCELLED.value:
            return
        await SubscriptionService(self.db, clock=self.clock).mark_cancelled(
            subscription, actor_id=admin_id, reason="refunded"
        )

    # ==================== Reporting ====================

    async def renewal_report(self, now: datetime | None = None) -> RenewalReport:
        """Upcoming renewals and the last 24 hours of renewal outcomes."""
        now = now or self.clock()
        lookahead = now + timedelta(days=settings.billing.renewal_lookahead_days)
        grace_start = now - timedelta(days=settings.billing.renewal_grace_days)
        day_ago = now - timedelta(hours=24)

        async def count(*criteria: Any, model: Any = TransactionTable) -> int:
            result = await self.db.execute(select(func.count()).select_from(model).where(*criteria))
            return int(result.scalar() or 0)

        upcoming = await count(
            SubscriptionTable.status == SubscriptionStatus.ACTIVE.value,
            SubscriptionTable.auto_renew.is_(True),
            SubscriptionTable.end_date >= now,
            SubscriptionTable.end_date <= lookahead,
            model=SubscriptionTable,
        )
        lapsed = await count(
            SubscriptionTable.status == SubscriptionStatus.EXPIRED.value,
            SubscriptionTable.auto_renew.is_(True),
            SubscriptionTable.end_date >= grace_start,
            SubscriptionTable.renew_attempts < settings.billing.max_renew_attempts,
            model=SubscriptionTable,
        )
        succeeded = await count(
            TransactionTable.transaction_type == TransactionType.RENEWAL.value,
            TransactionTable.status == COMPLETED,
            TransactionTable.created_at >= day_ago,
        )
        failed = await count(
            TransactionTable.transaction_type == TransactionType.RENEWAL.value,
            TransactionTable.status == FAILED,
            TransactionTable.created_at >= day_ago,
        )
        return RenewalReport(
            upcoming_renewals=upcoming,
            lapsed_retrying=lapsed,
            successful_renewals_today=succeeded,
            failed_renewals_today=failed,
            timestamp=now,
        )


__all__ = ["LedgerService", "RenewalReport"]
