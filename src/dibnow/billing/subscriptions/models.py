"""
Subscription records.

A tenant keeps every historical subscription; the state machine in
``SubscriptionService`` guarantees at most one of them is active.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from dibnow.billing.db import Base, StrictTenantMixin, TimestampMixin, UTCDateTime, generate_id


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentMethod(str, Enum):
    """How a subscription (or transaction) is paid for."""

    STRIPE = "stripe"
    PAYPAL = "paypal"
    PAYFAST = "payfast"
    MANUAL = "manual"
    WALLET = "wallet"


class SubscriptionTable(Base, TimestampMixin, StrictTenantMixin):
    """SQLAlchemy table for tenant subscriptions."""

    __tablename__ = "billing_subscriptions"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: generate_id("sub")
    )
    plan_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.PENDING.value
    )
    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Renewal
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    renew_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_renewal_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    next_renewal_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("ix_billing_subscriptions_tenant_status", "tenant_id", "status"),
        Index("ix_billing_subscriptions_status_end", "status", "end_date"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<SubscriptionTable(id={self.id}, tenant_id={self.tenant_id}, "
            f"plan_id={self.plan_id}, status={self.status})>"
        )


__all__ = ["SubscriptionStatus", "PaymentMethod", "SubscriptionTable"]
