"""
Wallet and transaction ledger tables.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dibnow.billing.db import Base, StrictTenantMixin, TimestampMixin, UTCDateTime, generate_id


class TransactionType(str, Enum):
    """Kinds of ledger entries."""

    SUBSCRIPTION = "subscription"
    WALLET_TOPUP = "wallet_topup"
    REFUND = "refund"
    RENEWAL = "renewal"
    WALLET_DEDUCTION = "wallet_deduction"


class TransactionStatus(str, Enum):
    """Transaction lifecycle; everything but PENDING is terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class WalletTable(Base, TimestampMixin, StrictTenantMixin):
    """SQLAlchemy table for tenant wallets."""

    __tablename__ = "billing_wallets"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: generate_id("wal")
    )
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    # Last sequence number handed to a ledger entry of this wallet
    ledger_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("tenant_id", name="uq_billing_wallets_tenant"),)

    def __repr__(self) -> str:
        return f"<WalletTable(id={self.id}, tenant_id={self.tenant_id}, balance={self.balance})>"


class TransactionTable(Base, TimestampMixin, StrictTenantMixin):
    """SQLAlchemy table for ledger transactions.

    Entries with ``wallet_id`` set are the wallet's ledger; their signed
    amounts always sum to the wallet balance. Provider payments (renewals,
    manual approvals) are recorded without a wallet link.
    """

    __tablename__ = "billing_transactions"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: generate_id("txn")
    )
    wallet_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    sequence: Mapped[int | None] = mapped_column(Integer, nullable=True)

    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=TransactionStatus.PENDING.value
    )

    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Refund details (set on the original and on the refund entry)
    refund_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    original_transaction_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    subscription_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    plan_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    extra_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_billing_transactions_tenant_created", "tenant_id", "created_at"),
        Index("ix_billing_transactions_type_status", "transaction_type", "status"),
        UniqueConstraint("wallet_id", "sequence", name="uq_billing_transactions_wallet_seq"),
    )

    @property
    def is_terminal(self) -> bool:
        return TransactionStatus(self.status).is_terminal

    def __repr__(self) -> str:
        return (
            f"<TransactionTable(id={self.id}, type={self.transaction_type}, "
            f"amount={self.amount}, status={self.status})>"
        )


__all__ = ["TransactionType", "TransactionStatus", "WalletTable", "TransactionTable"]
