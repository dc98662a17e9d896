"""
Plan catalog router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.schemas import PlanListResponse, PlanResponse
from dibnow.billing.catalog.service import PlanCatalog
from dibnow.billing.db import get_async_session

router = APIRouter(prefix="/plans")


def get_plan_catalog(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> PlanCatalog:
    """Dependency to get PlanCatalog instance."""
    return PlanCatalog(db)


@router.get("", response_model=PlanListResponse)
async def list_plans(
    catalog: Annotated[PlanCatalog, Depends(get_plan_catalog)],
) -> PlanListResponse:
    """List purchasable plans, cheapest first."""
    plans = await catalog.list_active()
    return PlanListResponse(
        plans=[PlanResponse.model_validate(plan) for plan in plans],
        total=len(plans),
    )


@router.get("/{plan_ref}", response_model=PlanResponse)
async def get_plan(
    plan_ref: str,
    catalog: Annotated[PlanCatalog, Depends(get_plan_catalog)],
) -> PlanResponse:
    """Get a plan by id or name."""
    plan = await catalog.require(plan_ref)
    return PlanResponse.model_validate(plan)
