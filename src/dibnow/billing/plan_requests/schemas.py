"""
Pydantic schemas for plan requests.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from dibnow.billing.plan_requests.models import InvoiceStatus


class PlanRequestCreate(BaseModel):
    """Schema for submitting a manual plan request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    shop_name: str = Field(min_length=1, max_length=255, description="Shop name")
    current_plan_id: str | None = Field(None, description="Plan the tenant is on")
    current_plan_name: str | None = Field(None, description="Display name of the current plan")
    requested_plan_id: str = Field(min_length=1, description="Plan id (or name) requested")
    requested_plan_name: str = Field(min_length=1, description="Display name of requested plan")
    transaction_id: str = Field(
        min_length=1, max_length=255, description="Bank transfer reference"
    )
    amount: Decimal = Field(gt=0, description="Amount transferred")
    currency: str = Field("GBP", min_length=3, max_length=3, description="ISO currency code")
    manual_method: str = Field("Bank Transfer", description="How the payment was made")
    notes: str | None = Field(None, max_length=2000, description="Notes for the reviewer")


class PlanRequestDecision(BaseModel):
    """Schema for approving or denying a plan request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    admin_comment: str | None = Field(None, max_length=2000, description="Reviewer comment")
    invoice_status: InvoiceStatus | None = Field(
        None, description="Invoice status to record (defaults: paid on approve, void on deny)"
    )


class PlanRequestResponse(BaseModel):
    """Schema for plan request responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    shop_name: str
    current_plan_id: str | None
    current_plan_name: str | None
    requested_plan_id: str
    requested_plan_name: str
    transaction_id: str
    amount: Decimal
    currency: str
    manual_method: str
    notes: str | None
    status: str
    invoice_status: str
    reconciliation_status: str
    admin_comment: str | None
    processed_by: str | None
    processed_at: datetime | None
    subscription_id: str | None
    created_at: datetime
