"""
Tenant plan state.

Only the billing-relevant projection of the tenant account lives here; the
account itself (credentials, profile) belongs to the auth layer.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from dibnow.billing.db import Base, TimestampMixin, UTCDateTime, generate_id


class TenantPlanStatus(str, Enum):
    """Plan status mirrored onto the tenant."""

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class TenantTable(Base, TimestampMixin):
    """SQLAlchemy table for tenants (shops)."""

    __tablename__ = "billing_tenants"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: generate_id("tnt")
    )
    shop_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Plan id, a legacy plan name string, or None
    plan_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    plan_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TenantPlanStatus.PENDING.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TenantPlanStatus.PENDING.value
    )
    plan_start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    plan_expire_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def set_plan_status(self, status: TenantPlanStatus) -> None:
        """Keep ``plan_status`` and ``status`` mirrored."""
        self.plan_status = status.value
        self.status = status.value

    def is_stale(self, now: datetime) -> bool:
        """Active on paper but already past its expiry date."""
        return (
            self.status == TenantPlanStatus.ACTIVE.value
            and self.plan_expire_date is not None
            and self.plan_expire_date < now
        )

    def __repr__(self) -> str:
        return f"<TenantTable(id={self.id}, plan_id={self.plan_id}, status={self.status})>"


__all__ = ["TenantPlanStatus", "TenantTable"]
