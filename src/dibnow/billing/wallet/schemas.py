"""
Pydantic schemas for wallets and transactions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dibnow.billing.subscriptions.models import PaymentMethod


class BalanceResponse(BaseModel):
    """Schema for wallet balance responses."""

    tenant_id: str
    balance: Decimal
    currency: str
    formatted: str = Field(description="Balance formatted for display")


class TopUpRequest(BaseModel):
    """Schema for crediting a wallet after an external payment."""

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(gt=0, description="Amount to credit")
    payment_method: PaymentMethod = Field(description="Provider that collected the payment")
    payment_id: str | None = Field(None, max_length=255, description="Provider reference")
    currency: str | None = Field(None, min_length=3, max_length=3, description="ISO currency")
    description: str | None = Field(None, max_length=500)


class DeductRequest(BaseModel):
    """Schema for debiting a wallet."""

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(gt=0, description="Amount to debit")
    reason: str | None = Field(None, max_length=500, description="Shown on the ledger entry")
    plan_id: str | None = Field(None, description="Buy this plan with the deduction")


class TransactionResponse(BaseModel):
    """Schema for ledger transaction responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    wallet_id: str | None
    sequence: int | None
    transaction_type: str
    amount: Decimal
    currency: str
    status: str
    payment_method: str | None
    payment_id: str | None
    refund_id: str | None
    refund_amount: Decimal | None
    refund_reason: str | None
    refunded_at: datetime | None
    original_transaction_id: str | None
    subscription_id: str | None
    plan_id: str | None
    description: str | None
    processed_by: str | None
    extra_data: dict[str, Any]
    created_at: datetime


class TransactionListResponse(BaseModel):
    """Schema for transaction listings."""

    transactions: list[TransactionResponse]
    total: int


class LedgerCheckResponse(BaseModel):
    """Schema for ledger verification results."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    balance: Decimal
    ledger_sum: Decimal
    entries: int
    consistent: bool


class RefundRequest(BaseModel):
    """Schema for refunding a completed transaction."""

    amount: Decimal | None = Field(None, gt=0, description="Partial amount; full when omitted")
    reason: str | None = Field(None, max_length=500, description="Refund reason")
