"""
Tenant subscription router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.api.dependencies import TenantId
from dibnow.billing.db import get_async_session
from dibnow.billing.subscriptions.schemas import (
    AutoRenewUpdate,
    CancelSubscriptionRequest,
    CurrentSubscriptionResponse,
    SubscriptionResponse,
    TenantPlanResponse,
)
from dibnow.billing.subscriptions.service import SubscriptionService

router = APIRouter(prefix="/subscriptions")


def get_subscription_service(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> SubscriptionService:
    """Dependency to get SubscriptionService instance."""
    return SubscriptionService(db)


@router.get("/current", response_model=CurrentSubscriptionResponse)
async def get_current_subscription(
    tenant_id: TenantId,
    service: Annotated[SubscriptionService, Depends(get_subscription_service)],
) -> CurrentSubscriptionResponse:
    """
    Current plan state of the tenant.

    Stale active subscriptions are expired before the state is returned.
    """
    tenant = await service.lazy_refresh(tenant_id)
    subscription = await service.get_active_for_tenant(tenant_id)
    return CurrentSubscriptionResponse(
        tenant=TenantPlanResponse.model_validate(tenant),
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
    )


@router.get("", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    tenant_id: TenantId,
    service: Annotated[SubscriptionService, Depends(get_subscription_service)],
) -> list[SubscriptionResponse]:
    """Subscription history of the tenant, newest first."""
    subscriptions = await service.list_for_tenant(tenant_id)
    return [SubscriptionResponse.model_validate(s) for s in subscriptions]


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: str,
    tenant_id: TenantId,
    service: Annotated[SubscriptionService, Depends(get_subscription_service)],
    payload: CancelSubscriptionRequest | None = None,
) -> SubscriptionResponse:
    """Cancel one of the tenant's subscriptions."""
    subscription = await service.cancel(
        subscription_id,
        tenant_id=tenant_id,
        actor_id=tenant_id,
        reason=payload.reason if payload else None,
    )
    return SubscriptionResponse.model_validate(subscription)


@router.put("/{subscription_id}/auto-renew", response_model=SubscriptionResponse)
async def update_auto_renew(
    subscription_id: str,
    payload: AutoRenewUpdate,
    tenant_id: TenantId,
    service: Annotated[SubscriptionService, Depends(get_subscription_service)],
) -> SubscriptionResponse:
    """Turn automated renewal on or off."""
    subscription = await service.set_auto_renew(
        subscription_id, payload.enabled, tenant_id=tenant_id, actor_id=tenant_id
    )
    return SubscriptionResponse.model_validate(subscription)
