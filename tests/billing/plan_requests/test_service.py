"""
Tests for the manual plan-request workflow.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from dibnow.billing.exceptions import (
    ConflictError,
    InvalidInputError,
    PlanRequestNotFoundError,
    TenantNotFoundError,
)
from dibnow.billing.notifications.models import GLOBAL_TARGET, NotificationType
from dibnow.billing.notifications.service import DatabaseNotificationSink
from dibnow.billing.plan_requests.models import (
    InvoiceStatus,
    PlanRequestStatus,
    ReconciliationStatus,
)
from dibnow.billing.plan_requests.schemas import PlanRequestCreate
from dibnow.billing.plan_requests.service import PlanRequestService
from dibnow.billing.subscriptions.models import (
    PaymentMethod,
    SubscriptionStatus,
    SubscriptionTable,
)
from dibnow.billing.tenants.models import TenantPlanStatus, TenantTable
from dibnow.billing.wallet.models import TransactionTable, TransactionType, WalletTable

pytestmark = pytest.mark.integration


def _request_data(**overrides) -> PlanRequestCreate:
    data = {
        "shop_name": "Fix-It Phones",
        "current_plan_name": "FREE TRIAL",
        "requested_plan_id": "GOLD",
        "requested_plan_name": "GOLD",
        "transaction_id": "BT-2025-0001",
        "amount": Decimal("7.00"),
        "currency": "GBP",
    }
    data.update(overrides)
    return PlanRequestCreate(**data)


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(async_session, notifier, clock) -> PlanRequestService:
    return PlanRequestService(async_session, notifier=notifier, clock=clock)


async def _subscriptions(async_session, tenant_id: str) -> list[SubscriptionTable]:
    result = await async_session.execute(
        select(SubscriptionTable).where(SubscriptionTable.tenant_id == tenant_id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestCreate:
    async def test_create_notifies_admins(self, service, notifier, tenant_factory):
        tenant = await tenant_factory()

        request = await service.create(tenant.id, _request_data())

        assert request.status == PlanRequestStatus.PENDING.value
        assert request.invoice_status == InvoiceStatus.PENDING.value
        assert request.amount == Decimal("7.00")
        notifier.notify.assert_awaited_once()
        target, title, message, _ = notifier.notify.await_args.args
        assert target == GLOBAL_TARGET
        assert title == "New Plan Request"
        assert "BT-2025-0001" in message

    async def test_create_for_unknown_tenant(self, service):
        with pytest.raises(TenantNotFoundError):
            await service.create("tnt_missing", _request_data())

    async def test_create_rejects_bad_currency(self, service, tenant_factory):
        tenant = await tenant_factory()
        with pytest.raises(InvalidInputError):
            await service.create(tenant.id, _request_data(currency="XXY"))

    async def test_tenant_scoped_lookup(self, service, tenant_factory):
        tenant = await tenant_factory()
        request = await service.create(tenant.id, _request_data())

        assert (await service.get(request.id, tenant_id=tenant.id)).id == request.id
        with pytest.raises(PlanRequestNotFoundError):
            await service.get(request.id, tenant_id="tnt_other")


@pytest.mark.asyncio
class TestApprove:
    async def test_gold_approval_activates_manual_subscription(
        self, service, notifier, async_session, plans, tenant_factory
    ):
        tenant = await tenant_factory(plan_id=plans["FREE TRIAL"].id)
        request = await service.create(tenant.id, _request_data())
        notifier.reset_mock()

        approved = await service.approve(request.id, admin_id="adm_1")

        assert approved.status == PlanRequestStatus.APPROVED.value
        assert approved.invoice_status == InvoiceStatus.PAID.value
        assert approved.processed_by == "adm_1"
        assert approved.reconciliation_status == ReconciliationStatus.APPLIED.value

        (subscription,) = [
            s
            for s in await _subscriptions(async_session, tenant.id)
            if s.status == SubscriptionStatus.ACTIVE.value
        ]
        assert approved.subscription_id == subscription.id
        assert subscription.plan_id == plans["GOLD"].id
        assert subscription.payment_method == PaymentMethod.MANUAL.value
        assert subscription.payment_id == "BT-2025-0001"
        assert subscription.auto_renew is False
        assert subscription.end_date == datetime(2025, 1, 31, tzinfo=UTC)

        tenant = await async_session.get(TenantTable, tenant.id)
        assert tenant.plan_id == plans["GOLD"].id
        assert tenant.status == TenantPlanStatus.ACTIVE.value
        assert tenant.plan_expire_date == datetime(2025, 1, 31, tzinfo=UTC)

        result = await async_session.execute(
            select(TransactionTable).where(TransactionTable.tenant_id == tenant.id)
        )
        (payment,) = result.scalars().all()
        assert payment.transaction_type == TransactionType.SUBSCRIPTION.value
        assert payment.wallet_id is None
        assert payment.subscription_id == subscription.id
        assert (await async_session.execute(select(WalletTable))).scalars().all() == []

        targets = [call.args[0] for call in notifier.notify.await_args_list]
        assert targets == [tenant.id, GLOBAL_TARGET]
        assert notifier.notify.await_args_list[0].args[1] == "Plan Request Approved"

    async def test_approval_replaces_existing_subscription(
        self, service, async_session, plans, tenant_factory, clock
    ):
        from dibnow.billing.subscriptions.service import SubscriptionService

        tenant = await tenant_factory()
        await SubscriptionService(async_session, clock=clock).activate(
            tenant.id, plans["BASIC"], PaymentMethod.STRIPE, auto_renew=True
        )
        await async_session.commit()
        request = await service.create(tenant.id, _request_data())

        await service.approve(request.id, admin_id="adm_1")

        statuses = sorted(s.status for s in await _subscriptions(async_session, tenant.id))
        assert statuses == ["active", "cancelled"]

    async def test_second_approval_conflicts(self, service, plans, tenant_factory, async_session):
        tenant = await tenant_factory()
        request = await service.create(tenant.id, _request_data())
        await service.approve(request.id, admin_id="adm_1")
        # a failed decision rolls the session back and expires loaded rows
        tenant_id, request_id = tenant.id, request.id

        with pytest.raises(ConflictError):
            await service.approve(request_id, admin_id="adm_2")
        with pytest.raises(ConflictError):
            await service.deny(request_id, admin_id="adm_2")

        assert len(await _subscriptions(async_session, tenant_id)) == 1
        assert (await service.get(request_id)).processed_by == "adm_1"

    async def test_unresolved_plan_uses_fallback_duration(
        self, service, async_session, plans, tenant_factory
    ):
        tenant = await tenant_factory()
        request = await service.create(
            tenant.id,
            _request_data(requested_plan_id="plan_retired", requested_plan_name="LEGACY GOLD"),
        )

        await service.approve(request.id, admin_id="adm_1")

        (subscription,) = await _subscriptions(async_session, tenant.id)
        assert subscription.plan_id == "plan_retired"
        assert subscription.end_date == datetime(2025, 1, 31, tzinfo=UTC)
        assert subscription.amount == Decimal("7.00")

    async def test_unknown_request(self, service):
        with pytest.raises(PlanRequestNotFoundError):
            await service.approve("preq_missing", admin_id="adm_1")


@pytest.mark.asyncio
class TestMissingTenant:
    async def _orphaned_request(self, service, async_session, tenant_factory):
        tenant = await tenant_factory()
        request = await service.create(tenant.id, _request_data())
        await async_session.delete(tenant)
        await async_session.commit()
        return tenant.id, request

    async def test_approval_flags_reconciliation(
        self, service, notifier, async_session, plans, tenant_factory
    ):
        tenant_id, request = await self._orphaned_request(service, async_session, tenant_factory)
        notifier.reset_mock()

        approved = await service.approve(request.id, admin_id="adm_1")

        assert approved.status == PlanRequestStatus.APPROVED.value
        assert approved.reconciliation_status == ReconciliationStatus.NEEDS_RECONCILIATION.value
        assert approved.subscription_id is None
        assert await _subscriptions(async_session, tenant_id) == []

        notifier.notify.assert_awaited_once()
        target, title, _, kind = notifier.notify.await_args.args
        assert target == GLOBAL_TARGET
        assert title == "Plan Request Needs Reconciliation"
        assert kind == NotificationType.ERROR

        pending = await service.list(
            reconciliation_status=ReconciliationStatus.NEEDS_RECONCILIATION
        )
        assert [r.id for r in pending] == [request.id]

    async def test_reconcile_after_tenant_returns(
        self, service, async_session, plans, tenant_factory
    ):
        tenant_id, request = await self._orphaned_request(service, async_session, tenant_factory)
        request_id, gold_id = request.id, plans["GOLD"].id
        await service.approve(request_id, admin_id="adm_1")

        with pytest.raises(TenantNotFoundError):
            await service.reconcile(request_id, admin_id="adm_1")

        async_session.add(TenantTable(id=tenant_id, shop_name="Fix-It Phones"))
        await async_session.commit()
        reconciled = await service.reconcile(request_id, admin_id="adm_1")

        assert reconciled.reconciliation_status == ReconciliationStatus.APPLIED.value
        (subscription,) = await _subscriptions(async_session, tenant_id)
        assert subscription.plan_id == gold_id

        with pytest.raises(ConflictError):
            await service.reconcile(request_id, admin_id="adm_1")

    async def test_reconcile_requires_flagged_request(self, service, tenant_factory):
        tenant = await tenant_factory()
        request = await service.create(tenant.id, _request_data())
        with pytest.raises(ConflictError):
            await service.reconcile(request.id, admin_id="adm_1")


@pytest.mark.asyncio
class TestDeny:
    async def test_deny_mutates_nothing_else(
        self, service, notifier, async_session, plans, tenant_factory
    ):
        tenant = await tenant_factory(plan_id=plans["BASIC"].id)
        request = await service.create(tenant.id, _request_data())
        notifier.reset_mock()

        denied = await service.deny(request.id, admin_id="adm_1", admin_comment="No transfer")

        assert denied.status == PlanRequestStatus.DENIED.value
        assert denied.invoice_status == InvoiceStatus.VOID.value
        assert denied.admin_comment == "No transfer"
        assert await _subscriptions(async_session, tenant.id) == []
        tenant = await async_session.get(TenantTable, tenant.id)
        assert tenant.plan_id == plans["BASIC"].id
        transactions = await async_session.execute(select(TransactionTable))
        assert transactions.scalars().all() == []

        target, title, message, kind = notifier.notify.await_args.args
        assert (target, title, kind) == (tenant.id, "Plan Request Denied", NotificationType.WARNING)
        assert "Reason: No transfer" in message

    async def test_list_by_status(self, service, tenant_factory):
        tenant = await tenant_factory()
        first = await service.create(tenant.id, _request_data())
        second = await service.create(tenant.id, _request_data(transaction_id="BT-2"))
        await service.deny(first.id, admin_id="adm_1")

        pending = await service.list(status=PlanRequestStatus.PENDING)
        assert [r.id for r in pending] == [second.id]
        assert len(await service.list(tenant_id=tenant.id)) == 2


@pytest.mark.asyncio
class TestWithDatabaseNotifications:
    async def test_approval_notifications_are_stored(
        self, async_session, session_factory, plans, tenant_factory, clock
    ):
        sink = DatabaseNotificationSink(session_factory)
        service = PlanRequestService(async_session, notifier=sink, clock=clock)
        tenant = await tenant_factory()
        request = await service.create(tenant.id, _request_data())

        await service.approve(request.id, admin_id="adm_1")

        tenant_inbox = await sink.list_for(tenant.id)
        admin_inbox = await sink.list_for(GLOBAL_TARGET, unread_only=True)
        assert [n.title for n in tenant_inbox] == ["Plan Request Approved"]
        assert sorted(n.title for n in admin_inbox) == ["New Plan Request", "Plan Request Approved"]
