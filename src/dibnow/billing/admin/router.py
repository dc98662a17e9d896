"""
Billing administration router.

Refunds, ledger inspection, usage and the renewal pipeline report.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.api.dependencies import AdminId
from dibnow.billing.db import get_async_session
from dibnow.billing.limits.schemas import ResourceUsage, UsageSummaryResponse
from dibnow.billing.limits.service import LimitEnforcer
from dibnow.billing.subscriptions.schemas import AutoRenewUpdate, SubscriptionResponse
from dibnow.billing.subscriptions.service import SubscriptionService
from dibnow.billing.wallet.ledger import LedgerService
from dibnow.billing.wallet.models import TransactionStatus, TransactionType
from dibnow.billing.wallet.schemas import (
    LedgerCheckResponse,
    RefundRequest,
    TransactionListResponse,
    TransactionResponse,
)
from dibnow.billing.wallet.service import WalletService

router = APIRouter(prefix="/admin")

DbSession = Annotated[AsyncSession, Depends(get_async_session)]


def get_ledger_service(db: DbSession) -> LedgerService:
    """Dependency to get LedgerService instance."""
    return LedgerService(db)


# ==================== Transactions ====================


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    admin_id: AdminId,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    tenant_id: str | None = Query(None, description="Filter by tenant"),
    transaction_type: TransactionType | None = Query(None, alias="type"),
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
) -> TransactionListResponse:
    transactions = await ledger.list_transactions(
        tenant_id=tenant_id,
        transaction_type=transaction_type,
        status=status_filter,
        limit=limit,
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        total=len(transactions),
    )


@router.post("/transactions/{transaction_id}/refund", response_model=TransactionResponse)
async def refund_transaction(
    transaction_id: str,
    admin_id: AdminId,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    payload: RefundRequest | None = None,
) -> TransactionResponse:
    """
    Refund a completed transaction, fully or partially.

    Returns the new refund entry.
    """
    refund = await ledger.refund(
        transaction_id,
        amount=payload.amount if payload else None,
        reason=payload.reason if payload else None,
        admin_id=admin_id,
    )
    return TransactionResponse.model_validate(refund)


@router.get("/tenants/{tenant_id}/ledger", response_model=LedgerCheckResponse)
async def verify_ledger(tenant_id: str, admin_id: AdminId, db: DbSession) -> LedgerCheckResponse:
    """Recompute a wallet balance from its ledger entries."""
    check = await WalletService(db).verify_ledger(tenant_id)
    return LedgerCheckResponse.model_validate(check)


# ==================== Tenants ====================


@router.get("/tenants/{tenant_id}/usage", response_model=UsageSummaryResponse)
async def tenant_usage(tenant_id: str, admin_id: AdminId, db: DbSession) -> UsageSummaryResponse:
    summary = await LimitEnforcer(db).usage_summary(tenant_id)
    return UsageSummaryResponse(
        tenant_id=tenant_id,
        usage={kind: ResourceUsage(**values) for kind, values in summary.items()},
    )


@router.put("/subscriptions/{subscription_id}/auto-renew", response_model=SubscriptionResponse)
async def set_auto_renew(
    subscription_id: str,
    payload: AutoRenewUpdate,
    admin_id: AdminId,
    db: DbSession,
) -> SubscriptionResponse:
    subscription = await SubscriptionService(db).set_auto_renew(
        subscription_id, payload.enabled, actor_id=admin_id
    )
    return SubscriptionResponse.model_validate(subscription)


# ==================== Renewals ====================


@router.get("/renewals/report")
async def renewal_report(
    admin_id: AdminId,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> dict[str, Any]:
    """Upcoming renewals and renewal outcomes of the last 24 hours."""
    report = await ledger.renewal_report()
    return report.to_dict()
