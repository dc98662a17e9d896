"""
Quota router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.api.dependencies import TenantId
from dibnow.billing.db import get_async_session
from dibnow.billing.limits.schemas import (
    LimitDecisionResponse,
    ResourceUsage,
    UsageSummaryResponse,
)
from dibnow.billing.limits.service import LimitEnforcer

router = APIRouter(prefix="/limits")


def get_limit_enforcer(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> LimitEnforcer:
    """Dependency to get LimitEnforcer instance."""
    return LimitEnforcer(db)


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage(
    tenant_id: TenantId,
    enforcer: Annotated[LimitEnforcer, Depends(get_limit_enforcer)],
) -> UsageSummaryResponse:
    summary = await enforcer.usage_summary(tenant_id)
    return UsageSummaryResponse(
        tenant_id=tenant_id,
        usage={kind: ResourceUsage(**values) for kind, values in summary.items()},
    )


@router.get("/{resource_kind}", response_model=LimitDecisionResponse)
async def check_limit(
    resource_kind: str,
    tenant_id: TenantId,
    enforcer: Annotated[LimitEnforcer, Depends(get_limit_enforcer)],
) -> LimitDecisionResponse:
    """
    Whether the tenant may create one more ``resource_kind``.

    Denials are returned, not raised, so clients can show the upgrade prompt.
    """
    decision = await enforcer.authorize(tenant_id, resource_kind)
    return LimitDecisionResponse.model_validate(decision)
