"""
End-to-end tests for the billing HTTP API.
"""

from decimal import Decimal

import pytest
from fastapi import Depends

from dibnow.billing.api.dependencies import require_active_plan, require_capacity
from dibnow.billing.tenants.models import TenantPlanStatus
from tests.billing.api.conftest import API

pytestmark = pytest.mark.integration


def _tenant(tenant_id: str) -> dict[str, str]:
    return {"X-Tenant-ID": tenant_id}


ADMIN = {"X-Admin-ID": "adm_1"}


@pytest.mark.asyncio
class TestHealthAndIdentity:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["scheduler_running"] is False

    async def test_tenant_header_required(self, client):
        response = await client.get(f"{API}/wallet/balance")
        assert response.status_code == 401

    async def test_admin_header_required(self, client, tenant_factory):
        tenant = await tenant_factory()
        response = await client.get(f"{API}/plan-requests", headers=_tenant(tenant.id))
        assert response.status_code == 403


@pytest.mark.asyncio
class TestPlans:
    async def test_list_plans_cheapest_first(self, client, plans):
        response = await client.get(f"{API}/plans")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 4
        assert [p["name"] for p in body["plans"]] == ["FREE TRIAL", "BASIC", "PREMIUM", "GOLD"]
        assert body["plans"][3]["limits"]["brands"] == 50

    async def test_unknown_plan_renders_billing_error(self, client, plans):
        response = await client.get(f"{API}/plans/PLATINUM")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "PLAN_NOT_FOUND"
        assert body["context"] == {"plan": "PLATINUM"}
        assert body["recovery_hint"]


@pytest.mark.asyncio
class TestWalletApi:
    async def test_top_up_deduct_and_history(self, client, tenant_factory):
        tenant = await tenant_factory()
        headers = _tenant(tenant.id)

        top_up = await client.post(
            f"{API}/wallet/top-up",
            json={
                "amount": "25.00",
                "payment_method": "stripe",
                "payment_id": "pi_1",
                "currency": "GBP",
            },
            headers=headers,
        )
        assert top_up.status_code == 201
        assert top_up.json()["transaction_type"] == "wallet_topup"

        deduct = await client.post(
            f"{API}/wallet/deduct", json={"amount": "5", "reason": "SMS"}, headers=headers
        )
        assert deduct.status_code == 201

        balance = (await client.get(f"{API}/wallet/balance", headers=headers)).json()
        assert Decimal(balance["balance"]) == Decimal("20")
        assert balance["currency"] == "GBP"
        assert "20.00" in balance["formatted"]

        history = (await client.get(f"{API}/wallet/transactions", headers=headers)).json()
        assert history["total"] == 2

    async def test_insufficient_funds_is_402(self, client, tenant_factory):
        tenant = await tenant_factory()
        headers = _tenant(tenant.id)
        await client.post(
            f"{API}/wallet/top-up",
            json={"amount": "1", "payment_method": "paypal", "currency": "GBP"},
            headers=headers,
        )

        response = await client.post(f"{API}/wallet/deduct", json={"amount": "2"}, headers=headers)

        assert response.status_code == 402
        assert response.json()["error_code"] == "INSUFFICIENT_FUNDS"

    async def test_validation_error_is_422(self, client, tenant_factory):
        tenant = await tenant_factory()
        response = await client.post(
            f"{API}/wallet/top-up",
            json={"amount": "-3", "payment_method": "stripe"},
            headers=_tenant(tenant.id),
        )
        assert response.status_code == 422


@pytest.mark.asyncio
class TestLimitsApi:
    async def test_decision_and_usage(self, client, plans, tenant_factory):
        tenant = await tenant_factory(plan_id=plans["BASIC"].id)

        decision = await client.get(f"{API}/limits/brands", headers=_tenant(tenant.id))
        assert decision.status_code == 200
        assert decision.json()["plan_name"] == "BASIC"
        assert decision.json()["limit"] == 5

        usage = await client.get(f"{API}/limits/usage", headers=_tenant(tenant.id))
        assert set(usage.json()["usage"]) >= {"brands", "repairsPerMonth"}

    async def test_malformed_kind_is_400(self, client, plans, tenant_factory):
        tenant = await tenant_factory()
        response = await client.get(f"{API}/limits/9lives", headers=_tenant(tenant.id))
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_INPUT"


@pytest.mark.asyncio
class TestPlanRequestApi:
    async def test_submit_and_approve(self, client, plans, tenant_factory):
        tenant = await tenant_factory(plan_id=plans["FREE TRIAL"].id)
        headers = _tenant(tenant.id)

        created = await client.post(
            f"{API}/plan-requests",
            json={
                "shop_name": "Fix-It Phones",
                "requested_plan_id": plans["GOLD"].id,
                "requested_plan_name": "GOLD",
                "transaction_id": "BT-77",
                "amount": "7.00",
            },
            headers=headers,
        )
        assert created.status_code == 201
        request_id = created.json()["id"]

        mine = await client.get(f"{API}/plan-requests/mine", headers=headers)
        assert [r["id"] for r in mine.json()] == [request_id]

        approved = await client.post(f"{API}/plan-requests/{request_id}/approve", headers=ADMIN)
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert approved.json()["reconciliation_status"] == "applied"

        again = await client.post(f"{API}/plan-requests/{request_id}/approve", headers=ADMIN)
        assert again.status_code == 409
        assert again.json()["error_code"] == "CONFLICT"

        current = await client.get(f"{API}/subscriptions/current", headers=headers)
        assert current.status_code == 200
        assert current.json()["subscription"]["payment_id"] == "BT-77"
        assert current.json()["tenant"]["plan_id"] == plans["GOLD"].id

    async def test_deny_with_comment(self, client, plans, tenant_factory):
        tenant = await tenant_factory()
        created = await client.post(
            f"{API}/plan-requests",
            json={
                "shop_name": "Fix-It Phones",
                "requested_plan_id": "BASIC",
                "requested_plan_name": "BASIC",
                "transaction_id": "BT-1",
                "amount": "2",
            },
            headers=_tenant(tenant.id),
        )

        denied = await client.post(
            f"{API}/plan-requests/{created.json()['id']}/deny",
            json={"admin_comment": "Transfer not received"},
            headers=ADMIN,
        )

        assert denied.status_code == 200
        assert denied.json()["invoice_status"] == "void"
        listed = await client.get(f"{API}/plan-requests?status=denied", headers=ADMIN)
        assert len(listed.json()) == 1


@pytest.mark.asyncio
class TestAdminApi:
    async def test_refund_and_ledger_check(self, client, tenant_factory):
        tenant = await tenant_factory()
        headers = _tenant(tenant.id)
        top_up = await client.post(
            f"{API}/wallet/top-up",
            json={"amount": "10", "payment_method": "stripe", "currency": "GBP"},
            headers=headers,
        )

        refund = await client.post(
            f"{API}/admin/transactions/{top_up.json()['id']}/refund",
            json={"amount": "4", "reason": "goodwill"},
            headers=ADMIN,
        )
        assert refund.status_code == 200
        assert Decimal(refund.json()["amount"]) == Decimal("-4")

        check = await client.get(f"{API}/admin/tenants/{tenant.id}/ledger", headers=ADMIN)
        assert check.json()["consistent"] is True
        assert Decimal(check.json()["balance"]) == Decimal("6")

    async def test_renewal_report(self, client):
        response = await client.get(f"{API}/admin/renewals/report", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["upcoming_renewals"] == 0


@pytest.mark.asyncio
class TestGuards:
    async def test_capacity_and_active_plan_guards(self, app, client, plans, tenant_factory):
        @app.get("/guarded", dependencies=[Depends(require_capacity("brands"))])
        async def guarded(tenant=Depends(require_active_plan)) -> dict[str, str]:
            return {"tenant": tenant.id}

        tenant = await tenant_factory(plan_id=plans["GOLD"].id)
        response = await client.get("/guarded", headers=_tenant(tenant.id))
        assert response.status_code == 200

        expired = await tenant_factory(status=TenantPlanStatus.EXPIRED)
        response = await client.get("/guarded", headers=_tenant(expired.id))
        assert response.status_code == 402
