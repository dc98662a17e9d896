"""
Pydantic schemas for subscriptions.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionResponse(BaseModel):
    """Schema for subscription responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    plan_id: str
    status: str
    start_date: datetime | None
    end_date: datetime | None
    payment_method: str
    payment_id: str | None
    amount: Decimal
    currency: str
    auto_renew: bool
    renew_attempts: int
    last_renewal_date: datetime | None
    next_renewal_date: datetime | None
    cancelled_at: datetime | None


class TenantPlanResponse(BaseModel):
    """Schema for the tenant's plan state after lazy expiry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    plan_id: str | None
    plan_status: str
    plan_start_date: datetime | None
    plan_expire_date: datetime | None


class CurrentSubscriptionResponse(BaseModel):
    """Tenant plan state with its active subscription, if any."""

    tenant: TenantPlanResponse
    subscription: SubscriptionResponse | None = None


class CancelSubscriptionRequest(BaseModel):
    """Schema for cancelling a subscription."""

    reason: str | None = Field(None, max_length=500, description="Cancellation reason")


class AutoRenewUpdate(BaseModel):
    """Schema for toggling automated renewal."""

    enabled: bool = Field(description="Renew automatically before expiry")
