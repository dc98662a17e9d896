"""
Plan request router.

Tenants submit requests; administrators approve, deny or reconcile them.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.api.dependencies import AdminId, TenantId, get_notifier
from dibnow.billing.db import get_async_session
from dibnow.billing.notifications.service import NotificationSink
from dibnow.billing.plan_requests.models import (
    InvoiceStatus,
    PlanRequestStatus,
    ReconciliationStatus,
)
from dibnow.billing.plan_requests.schemas import (
    PlanRequestCreate,
    PlanRequestDecision,
    PlanRequestResponse,
)
from dibnow.billing.plan_requests.service import PlanRequestService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/plan-requests")


def get_plan_request_service(
    db: Annotated[AsyncSession, Depends(get_async_session)],
    notifier: Annotated[NotificationSink | None, Depends(get_notifier)],
) -> PlanRequestService:
    """Dependency to get PlanRequestService instance."""
    return PlanRequestService(db, notifier=notifier)


ServiceDep = Annotated[PlanRequestService, Depends(get_plan_request_service)]


# ==================== Tenant Endpoints ====================


@router.post("", response_model=PlanRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_plan_request(
    payload: PlanRequestCreate,
    tenant_id: TenantId,
    service: ServiceDep,
) -> PlanRequestResponse:
    """Submit a manual (bank transfer) plan request."""
    request = await service.create(tenant_id, payload)
    return PlanRequestResponse.model_validate(request)


@router.get("/mine", response_model=list[PlanRequestResponse])
async def list_my_plan_requests(
    tenant_id: TenantId,
    service: ServiceDep,
) -> list[PlanRequestResponse]:
    requests = await service.list(tenant_id=tenant_id)
    return [PlanRequestResponse.model_validate(r) for r in requests]


# ==================== Admin Endpoints ====================


@router.get("", response_model=list[PlanRequestResponse])
async def list_plan_requests(
    admin_id: AdminId,
    service: ServiceDep,
    status_filter: PlanRequestStatus | None = Query(
        None, alias="status", description="Filter by status"
    ),
    reconciliation: ReconciliationStatus | None = Query(
        None, description="Filter by reconciliation status"
    ),
) -> list[PlanRequestResponse]:
    """List plan requests for review, newest first."""
    requests = await service.list(status=status_filter, reconciliation_status=reconciliation)
    return [PlanRequestResponse.model_validate(r) for r in requests]


@router.get("/{request_id}", response_model=PlanRequestResponse)
async def get_plan_request(
    request_id: str,
    admin_id: AdminId,
    service: ServiceDep,
) -> PlanRequestResponse:
    request = await service.get(request_id)
    return PlanRequestResponse.model_validate(request)


@router.post("/{request_id}/approve", response_model=PlanRequestResponse)
async def approve_plan_request(
    request_id: str,
    admin_id: AdminId,
    service: ServiceDep,
    payload: PlanRequestDecision | None = None,
) -> PlanRequestResponse:
    """
    Approve a pending request and activate the requested plan.

    A request whose tenant cannot be found stays approved with
    ``needs_reconciliation``.
    """
    decision = payload or PlanRequestDecision()
    request = await service.approve(
        request_id,
        admin_id,
        invoice_status=decision.invoice_status or InvoiceStatus.PAID,
        admin_comment=decision.admin_comment,
    )
    return PlanRequestResponse.model_validate(request)


@router.post("/{request_id}/deny", response_model=PlanRequestResponse)
async def deny_plan_request(
    request_id: str,
    admin_id: AdminId,
    service: ServiceDep,
    payload: PlanRequestDecision | None = None,
) -> PlanRequestResponse:
    decision = payload or PlanRequestDecision()
    request = await service.deny(
        request_id,
        admin_id,
        admin_comment=decision.admin_comment,
        invoice_status=decision.invoice_status or InvoiceStatus.VOID,
    )
    return PlanRequestResponse.model_validate(request)


@router.post("/{request_id}/reconcile", response_model=PlanRequestResponse)
async def reconcile_plan_request(
    request_id: str,
    admin_id: AdminId,
    service: ServiceDep,
) -> PlanRequestResponse:
    """Apply an approved request that could not be applied at approval time."""
    request = await service.reconcile(request_id, admin_id)
    logger.info("billing.plan_request.reconciled", request_id=request_id, admin_id=admin_id)
    return PlanRequestResponse.model_validate(request)
