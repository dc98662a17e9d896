"""
Shared FastAPI dependencies.

Authentication happens upstream; the gateway forwards the resolved tenant
in ``X-Tenant-ID`` and the administrator in ``X-Admin-ID``.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.models import ResourceKind
from dibnow.billing.db import get_async_session
from dibnow.billing.exceptions import PlanInactiveError
from dibnow.billing.limits.service import LimitDecision, LimitEnforcer
from dibnow.billing.notifications.service import NotificationSink
from dibnow.billing.subscriptions.service import SubscriptionService
from dibnow.billing.tenants.models import TenantPlanStatus, TenantTable


async def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header(alias="X-Tenant-ID")] = None,
) -> str:
    """Tenant on whose behalf the request is made."""
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Tenant-ID header is required",
        )
    return x_tenant_id


async def get_admin_id(
    x_admin_id: Annotated[str | None, Header(alias="X-Admin-ID")] = None,
) -> str:
    """Administrator performing a privileged operation."""
    if not x_admin_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator privileges required",
        )
    return x_admin_id


def get_notifier(request: Request) -> NotificationSink | None:
    return getattr(request.app.state, "notifier", None)


async def require_active_plan(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> TenantTable:
    """Apply lazy expiry, then reject tenants whose plan is not active."""
    tenant = await SubscriptionService(db).lazy_refresh(tenant_id)
    if tenant.plan_status != TenantPlanStatus.ACTIVE.value:
        raise PlanInactiveError(tenant_id, tenant.plan_status)
    return tenant


def require_capacity(
    resource_kind: str | ResourceKind,
) -> Callable[..., Awaitable[LimitDecision]]:
    """Dependency factory guarding creation of one more ``resource_kind``.

    Example:
        @router.post("/brands", dependencies=[Depends(require_capacity("brands"))])
    """

    async def _require_capacity(
        tenant_id: Annotated[str, Depends(get_tenant_id)],
        db: Annotated[AsyncSession, Depends(get_async_session)],
    ) -> LimitDecision:
        return await LimitEnforcer(db).enforce(tenant_id, resource_kind)

    return _require_capacity


TenantId = Annotated[str, Depends(get_tenant_id)]
AdminId = Annotated[str, Depends(get_admin_id)]
DbSession = Annotated[AsyncSession, Depends(get_async_session)]

__all__ = [
    "get_tenant_id",
    "get_admin_id",
    "get_notifier",
    "require_active_plan",
    "require_capacity",
    "TenantId",
    "AdminId",
    "DbSession",
]
