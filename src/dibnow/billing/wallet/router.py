"""
Tenant wallet router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.api.dependencies import TenantId
from dibnow.billing.db import get_async_session
from dibnow.billing.money import money_handler
from dibnow.billing.wallet.schemas import (
    BalanceResponse,
    DeductRequest,
    TopUpRequest,
    TransactionListResponse,
    TransactionResponse,
)
from dibnow.billing.wallet.service import WalletService

router = APIRouter(prefix="/wallet")


def get_wallet_service(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> WalletService:
    """Dependency to get WalletService instance."""
    return WalletService(db)


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    tenant_id: TenantId,
    service: Annotated[WalletService, Depends(get_wallet_service)],
) -> BalanceResponse:
    """Current wallet balance (zero when the tenant has no wallet yet)."""
    money = await service.balance(tenant_id)
    return BalanceResponse(
        tenant_id=tenant_id,
        balance=money.amount,
        currency=money.currency.code,
        formatted=money_handler.format_money(money),
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    tenant_id: TenantId,
    service: Annotated[WalletService, Depends(get_wallet_service)],
    limit: int = Query(100, ge=1, le=500, description="Maximum entries returned"),
) -> TransactionListResponse:
    """Transaction history of the tenant, newest first."""
    transactions = await service.list_transactions(tenant_id, limit=limit)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        total=len(transactions),
    )


@router.post("/top-up", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def top_up(
    payload: TopUpRequest,
    tenant_id: TenantId,
    service: Annotated[WalletService, Depends(get_wallet_service)],
) -> TransactionResponse:
    """Credit the wallet after the payment provider confirmed the charge."""
    transaction = await service.top_up(
        tenant_id,
        payload.amount,
        payload.payment_method,
        payment_id=payload.payment_id,
        currency=payload.currency,
        description=payload.description,
    )
    return TransactionResponse.model_validate(transaction)


@router.post("/deduct", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def deduct(
    payload: DeductRequest,
    tenant_id: TenantId,
    service: Annotated[WalletService, Depends(get_wallet_service)],
) -> TransactionResponse:
    """
    Debit the wallet.

    With ``plan_id`` the deduction purchases that plan and activates it.
    """
    transaction = await service.deduct(
        tenant_id, payload.amount, reason=payload.reason, plan_id=payload.plan_id
    )
    return TransactionResponse.model_validate(transaction)
