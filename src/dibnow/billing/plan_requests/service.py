"""
Plan-request approval workflow.

A request moves once from pending to approved or denied. Approval applies
the same tenant-plan mutation as a successful renewal, with a manual
subscription whose payment reference is the tenant-supplied transfer id.
"""

from collections.abc import Callable
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dibnow.billing.catalog.models import PlanTable, PlanTerms
from dibnow.billing.catalog.service import PlanCatalog
from dibnow.billing.db import utcnow
from dibnow.billing.exceptions import (
    ConflictError,
    PlanRequestNotFoundError,
    TenantNotFoundError,
)
from dibnow.billing.logging import log_audit_event
from dibnow.billing.metrics import get_billing_metrics
from dibnow.billing.money import parse_amount, validate_currency
from dibnow.billing.notifications.models import NotificationType
from dibnow.billing.notifications.service import NotificationSink, notify_admins, notify_tenant
from dibnow.billing.plan_requests.models import (
    InvoiceStatus,
    PlanRequestStatus,
    PlanRequestTable,
    ReconciliationStatus,
)
from dibnow.billing.plan_requests.schemas import PlanRequestCreate
from dibnow.billing.settings import settings
from dibnow.billing.subscriptions.models import PaymentMethod
from dibnow.billing.subscriptions.service import SubscriptionService
from dibnow.billing.tenants.models import TenantTable
from dibnow.billing.wallet.ledger import LedgerService
from dibnow.billing.wallet.models import TransactionStatus, TransactionType

logger = structlog.get_logger(__name__)

PENDING = PlanRequestStatus.PENDING.value


class PlanRequestService:
    """Service for manual plan requests."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock or utcnow

    async def create(self, tenant_id: str, data: PlanRequestCreate) -> PlanRequestTable:
        """Submit a request on behalf of ``tenant_id``."""
        if await self.db.get(TenantTable, tenant_id) is None:
            raise TenantNotFoundError(tenant_id)
        currency = validate_currency(data.currency)
        request = PlanRequestTable(
            tenant_id=tenant_id,
            shop_name=data.shop_name,
            current_plan_id=data.current_plan_id,
            current_plan_name=data.current_plan_name,
            requested_plan_id=data.requested_plan_id,
            requested_plan_name=data.requested_plan_name,
            transaction_id=data.transaction_id,
            amount=parse_amount(data.amount, currency),
            currency=currency,
            manual_method=data.manual_method,
            notes=data.notes,
            created_at=self.clock(),
        )
        self.db.add(request)
        await self.db.commit()

        logger.info(
            "billing.plan_request.created",
            tenant_id=tenant_id,
            request_id=request.id,
            requested_plan=data.requested_plan_name,
        )
        await notify_admins(
            self.notifier,
            "New Plan Request",
            f"{data.shop_name} requested {data.requested_plan_name} "
            f"({request.amount} {currency}, ref {data.transaction_id})",
        )
        return request

    async def get(self, request_id: str, tenant_id: str | None = None) -> PlanRequestTable:
        request = await self.db.get(PlanRequestTable, request_id)
        if request is None or (tenant_id is not None and request.tenant_id != tenant_id):
            raise PlanRequestNotFoundError(request_id)
        return request

    async def list(
        self,
        status: PlanRequestStatus | None = None,
        tenant_id: str | None = None,
        reconciliation_status: ReconciliationStatus | None = None,
    ) -> list[PlanRequestTable]:
        stmt = select(PlanRequestTable).order_by(PlanRequestTable.created_at.desc())
        if status:
            stmt = stmt.where(PlanRequestTable.status == status.value)
        if tenant_id:
            stmt = stmt.where(PlanRequestTable.tenant_id == tenant_id)
        if reconciliation_status:
            stmt = stmt.where(
                PlanRequestTable.reconciliation_status == reconciliation_status.value
            )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _decide(
        self,
        request_id: str,
        status: PlanRequestStatus,
        admin_id: str,
        invoice_status: InvoiceStatus,
        admin_comment: str | None,
    ) -> PlanRequestTable:
        """Move a pending request to ``status``; exactly one caller wins."""
        request = await self.get(request_id)
        result = await self.db.execute(
            update(PlanRequestTable)
            .where(PlanRequestTable.id == request_id, PlanRequestTable.status == PENDING)
            .values(
                status=status.value,
                invoice_status=invoice_status.value,
                admin_comment=admin_comment,
                processed_by=admin_id,
                processed_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(request)
        if result.rowcount == 0:
            raise ConflictError(
                f"Plan request {request_id} is already {request.status}",
                current_state=request.status,
                requested_state=status.value,
                context={"request_id": request_id},
            )
        return request

    async def approve(
        self,
        request_id: str,
        admin_id: str,
        invoice_status: InvoiceStatus = InvoiceStatus.PAID,
        admin_comment: str | None = None,
    ) -> PlanRequestTable:
        """Approve a pending request and apply the plan change.

        When the requesting tenant no longer exists the request stays
        approved with ``needs_reconciliation`` and administrators are
        alerted; ``reconcile`` applies it later.
        """
        try:
            request = await self._decide(
                request_id, PlanRequestStatus.APPROVED, admin_id, invoice_status, admin_comment
            )
            applied = await self._apply(request, admin_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        get_billing_metrics().record_plan_request_decision(PlanRequestStatus.APPROVED.value)
        log_audit_event(
            action="plan_request.approved",
            category="billing",
            user_id=admin_id,
            tenant_id=request.tenant_id,
            resource_type="plan_request",
            resource_id=request_id,
            requested_plan=request.requested_plan_name,
            reconciliation_status=request.reconciliation_status,
        )
        if applied:
            await self._notify_applied(request)
        else:
            await self._alert_unapplied(request)
        return request

    async def deny(
        self,
        request_id: str,
        admin_id: str,
        admin_comment: str | None = None,
        invoice_status: InvoiceStatus = InvoiceStatus.VOID,
    ) -> PlanRequestTable:
        """Deny a pending request. Tenant, wallet and subscriptions are untouched."""
        try:
            request = await self._decide(
                request_id, PlanRequestStatus.DENIED, admin_id, invoice_status, admin_comment
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        get_billing_metrics().record_plan_request_decision(PlanRequestStatus.DENIED.value)
        log_audit_event(
            action="plan_request.denied",
            category="billing",
            user_id=admin_id,
            tenant_id=request.tenant_id,
            resource_type="plan_request",
            resource_id=request_id,
            admin_comment=admin_comment,
        )
        await notify_tenant(
            self.notifier,
            request.tenant_id,
            "Plan Request Denied",
            f"Your request for the {request.requested_plan_name} plan was denied."
            + (f" Reason: {admin_comment}" if admin_comment else ""),
            NotificationType.WARNING,
        )
        return request

    async def reconcile(self, request_id: str, admin_id: str) -> PlanRequestTable:
        """Apply an approved request whose tenant was missing at approval time."""
        request = await self.get(request_id)
        if (
            request.status != PlanRequestStatus.APPROVED.value
            or request.reconciliation_status != ReconciliationStatus.NEEDS_RECONCILIATION.value
        ):
            raise ConflictError(
                f"Plan request {request_id} does not need reconciliation",
                current_state=f"{request.status}/{request.reconciliation_status}",
                requested_state=ReconciliationStatus.APPLIED.value,
            )
        try:
            applied = await self._apply(request, admin_id)
            if not applied:
                raise TenantNotFoundError(request.tenant_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        log_audit_event(
            action="plan_request.reconciled",
            category="billing",
            user_id=admin_id,
            tenant_id=request.tenant_id,
            resource_type="plan_request",
            resource_id=request_id,
        )
        await self._notify_applied(request)
        return request

    async def _resolve_plan(self, request: PlanRequestTable) -> PlanTable | PlanTerms:
        catalog = PlanCatalog(self.db)
        plan = await catalog.find(request.requested_plan_id) or await catalog.find(
            request.requested_plan_name
        )
        if plan is not None:
            return plan
        logger.warning(
            "billing.plan_request.plan_unresolved",
            request_id=request.id,
            requested_plan_id=request.requested_plan_id,
            fallback_days=settings.billing.fallback_plan_duration_days,
        )
        return PlanTerms(
            id=request.requested_plan_id,
            name=request.requested_plan_name,
            price=request.amount,
            currency=request.currency,
            duration_days=settings.billing.fallback_plan_duration_days,
        )

    async def _apply(self, request: PlanRequestTable, admin_id: str) -> bool:
        """Activate the requested plan. Returns False when the tenant is missing."""
        if await self.db.get(TenantTable, request.tenant_id) is None:
            request.reconciliation_status = ReconciliationStatus.NEEDS_RECONCILIATION.value
            await self.db.flush()
            logger.error(
                "billing.plan_request.tenant_missing",
                request_id=request.id,
                tenant_id=request.tenant_id,
            )
            return False

        plan = await self._resolve_plan(request)
        subscription = await SubscriptionService(self.db, clock=self.clock).activate(
            request.tenant_id,
            plan,
            payment_method=PaymentMethod.MANUAL,
            payment_id=request.transaction_id,
            amount=request.amount,
            currency=request.currency,
            auto_renew=False,
        )
        LedgerService(self.db, clock=self.clock).record_payment(
            request.tenant_id,
            TransactionType.SUBSCRIPTION,
            request.amount,
            request.currency,
            PaymentMethod.MANUAL,
            status=TransactionStatus.COMPLETED,
            payment_id=request.transaction_id,
            subscription_id=subscription.id,
            plan_id=plan.id,
            processed_by=admin_id,
            description=f"Manual approval of {plan.name} ({request.manual_method})",
        )
        request.reconciliation_status = ReconciliationStatus.APPLIED.value
        request.subscription_id = subscription.id
        await self.db.flush()
        logger.info(
            "billing.plan_request.applied",
            request_id=request.id,
            tenant_id=request.tenant_id,
            plan=plan.name,
            subscription_id=subscription.id,
            expires=subscription.end_date.isoformat() if subscription.end_date else None,
        )
        return True

    async def _notify_applied(self, request: PlanRequestTable) -> None:
        await notify_tenant(
            self.notifier,
            request.tenant_id,
            "Plan Request Approved",
            f"Your upgrade to {request.requested_plan_name} is now active.",
            NotificationType.SUCCESS,
        )
        await notify_admins(
            self.notifier,
            "Plan Request Approved",
            f"{request.shop_name} moved to {request.requested_plan_name}.",
            NotificationType.SUCCESS,
        )

    async def _alert_unapplied(self, request: PlanRequestTable) -> None:
        await notify_admins(
            self.notifier,
            "Plan Request Needs Reconciliation",
            f"Request {request.id} was approved but tenant {request.tenant_id} was not found; "
            "the plan change has not been applied.",
            NotificationType.ERROR,
        )


__all__ = ["PlanRequestService"]
