"""
Manual plan-change requests (bank transfer proof of payment).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dibnow.billing.db import Base, StrictTenantMixin, TimestampMixin, UTCDateTime, generate_id


class PlanRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    UNPAID = "unpaid"
    VOID = "void"


class ReconciliationStatus(str, Enum):
    """Whether an approval's side effects were applied."""

    NOT_REQUIRED = "not_required"
    APPLIED = "applied"
    NEEDS_RECONCILIATION = "needs_reconciliation"


class PlanRequestTable(Base, TimestampMixin, StrictTenantMixin):
    """SQLAlchemy table for plan requests."""

    __tablename__ = "billing_plan_requests"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: generate_id("preq")
    )
    shop_name: Mapped[str] = mapped_column(String(255), nullable=False)

    current_plan_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    current_plan_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    requested_plan_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_plan_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Human-supplied proof of payment
    transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")
    manual_method: Mapped[str] = mapped_column(String(50), nullable=False, default="Bank Transfer")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlanRequestStatus.PENDING.value
    )
    invoice_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.PENDING.value
    )
    reconciliation_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ReconciliationStatus.NOT_REQUIRED.value
    )
    admin_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    subscription_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_billing_plan_requests_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PlanRequestTable(id={self.id}, tenant_id={self.tenant_id}, "
            f"requested={self.requested_plan_name}, status={self.status})>"
        )


__all__ = [
    "PlanRequestStatus",
    "InvoiceStatus",
    "ReconciliationStatus",
    "PlanRequestTable",
]
