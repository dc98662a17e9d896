"""
Tests for wallet balances and the wallet ledger.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select

from dibnow.billing.exceptions import (
    InsufficientFundsError,
    InvalidInputError,
    PlanNotFoundError,
    WalletNotFoundError,
)
from dibnow.billing.subscriptions.models import PaymentMethod, SubscriptionTable
from dibnow.billing.tenants.models import TenantPlanStatus, TenantTable
from dibnow.billing.wallet.models import TransactionStatus, TransactionTable, TransactionType
from dibnow.billing.wallet.service import WalletService

pytestmark = pytest.mark.unit


@pytest.fixture
def wallet_service(async_session, clock, wallet_locks) -> WalletService:
    return WalletService(async_session, clock=clock, locks=wallet_locks)


@pytest.mark.asyncio
class TestTopUp:
    async def test_first_top_up_creates_wallet(self, wallet_service, tenant_factory):
        tenant = await tenant_factory()

        entry = await wallet_service.top_up(
            tenant.id, "20.00", PaymentMethod.STRIPE, payment_id="pi_1", currency="GBP"
        )

        assert entry.transaction_type == TransactionType.WALLET_TOPUP.value
        assert entry.status == TransactionStatus.COMPLETED.value
        assert entry.amount == Decimal("20.00")
        assert entry.sequence == 1
        balance = await wallet_service.balance(tenant.id)
        assert balance.amount == Decimal("20.00")
        assert balance.currency.code == "GBP"

    async def test_entries_are_sequenced(self, wallet_service, tenant_factory):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 5, "paypal", currency="GBP")
        await wallet_service.top_up(tenant.id, 7, "payfast", currency="GBP")
        await wallet_service.deduct(tenant.id, 3, reason="SMS bundle")

        entries = await wallet_service.list_transactions(tenant.id)
        assert sorted(e.sequence for e in entries) == [1, 2, 3]
        assert (await wallet_service.balance(tenant.id)).amount == Decimal("9")

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", "1.234", "NaN", "Infinity", None, True])
    async def test_invalid_amounts(self, wallet_service, tenant_factory, amount):
        tenant = await tenant_factory()
        with pytest.raises(InvalidInputError):
            await wallet_service.top_up(tenant.id, amount, PaymentMethod.STRIPE, currency="GBP")
        assert await wallet_service.get_wallet(tenant.id) is None

    async def test_wallet_cannot_fund_itself(self, wallet_service, tenant_factory):
        tenant = await tenant_factory()
        with pytest.raises(InvalidInputError):
            await wallet_service.top_up(tenant.id, 5, PaymentMethod.WALLET)

    async def test_currency_mismatch(self, wallet_service, tenant_factory):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 5, PaymentMethod.STRIPE, currency="GBP")
        with pytest.raises(InvalidInputError):
            await wallet_service.top_up(tenant.id, 5, PaymentMethod.STRIPE, currency="EUR")


@pytest.mark.asyncio
class TestDeduct:
    async def test_deduct_records_negative_entry(self, wallet_service, tenant_factory):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 10, PaymentMethod.STRIPE, currency="GBP")

        entry = await wallet_service.deduct(tenant.id, "2.50", reason="Label printing")

        assert entry.transaction_type == TransactionType.WALLET_DEDUCTION.value
        assert entry.amount == Decimal("-2.50")
        assert entry.payment_method == PaymentMethod.WALLET.value
        assert (await wallet_service.balance(tenant.id)).amount == Decimal("7.50")

    async def test_insufficient_funds_leaves_state_unchanged(
        self, wallet_service, tenant_factory, async_session
    ):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 4, PaymentMethod.STRIPE, currency="GBP")

        with pytest.raises(InsufficientFundsError) as exc_info:
            await wallet_service.deduct(tenant.id, 5)

        assert exc_info.value.status_code == 402
        assert exc_info.value.required == Decimal("5")
        assert (await wallet_service.balance(tenant.id)).amount == Decimal("4")
        assert len(await wallet_service.list_transactions(tenant.id)) == 1
        assert (await wallet_service.verify_ledger(tenant.id)).consistent

    async def test_deduct_without_wallet(self, wallet_service, tenant_factory):
        tenant = await tenant_factory()
        with pytest.raises(WalletNotFoundError):
            await wallet_service.deduct(tenant.id, 1)

    @pytest.mark.parametrize("amount", [-5, 0, "abc", None])
    async def test_invalid_amount_is_rejected_before_wallet_lookup(
        self, wallet_service, tenant_factory, amount
    ):
        tenant = await tenant_factory()
        with pytest.raises(InvalidInputError) as exc_info:
            await wallet_service.deduct(tenant.id, amount)
        assert exc_info.value.context["field"] == "amount"
        assert await wallet_service.get_wallet(tenant.id) is None

    async def test_concurrent_deductions_never_overdraw(
        self, session_factory, tenant_factory, wallet_locks, clock
    ):
        tenant = await tenant_factory()
        async with session_factory() as session:
            await WalletService(session, clock=clock, locks=wallet_locks).top_up(
                tenant.id, 45, PaymentMethod.STRIPE, currency="GBP"
            )

        async def deduct() -> TransactionTable:
            async with session_factory() as session:
                service = WalletService(session, clock=clock, locks=wallet_locks)
                return await service.deduct(tenant.id, 10)

        results = await asyncio.gather(*(deduct() for _ in range(5)), return_exceptions=True)

        successes = [r for r in results if isinstance(r, TransactionTable)]
        failures = [r for r in results if isinstance(r, InsufficientFundsError)]
        assert len(successes) == 4
        assert len(failures) == 1

        async with session_factory() as session:
            service = WalletService(session, clock=clock, locks=wallet_locks)
            assert (await service.balance(tenant.id)).amount == Decimal("5")
            check = await service.verify_ledger(tenant.id)
        assert check.consistent
        assert check.entries == 5


@pytest.mark.asyncio
class TestPlanPurchase:
    async def test_purchase_activates_plan(
        self, wallet_service, plans, tenant_factory, async_session
    ):
        tenant = await tenant_factory(status=TenantPlanStatus.EXPIRED)
        await wallet_service.top_up(tenant.id, 10, PaymentMethod.STRIPE, currency="GBP")

        entry = await wallet_service.deduct(tenant.id, 5, plan_id=plans["PREMIUM"].id)

        assert entry.transaction_type == TransactionType.SUBSCRIPTION.value
        assert entry.plan_id == plans["PREMIUM"].id
        subscription = await async_session.get(SubscriptionTable, entry.subscription_id)
        assert subscription.payment_method == PaymentMethod.WALLET.value
        assert subscription.payment_id == entry.id
        tenant = await async_session.get(TenantTable, tenant.id)
        assert tenant.plan_id == plans["PREMIUM"].id
        assert tenant.status == TenantPlanStatus.ACTIVE.value
        assert (await wallet_service.verify_ledger(tenant.id)).consistent

    async def test_purchase_by_plan_name(self, wallet_service, plans, tenant_factory):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 10, PaymentMethod.STRIPE, currency="GBP")
        entry = await wallet_service.deduct(tenant.id, 2, plan_id="basic")
        assert entry.plan_id == plans["BASIC"].id

    async def test_amount_must_match_price(
        self, wallet_service, plans, tenant_factory, async_session
    ):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 10, PaymentMethod.STRIPE, currency="GBP")

        with pytest.raises(InvalidInputError):
            await wallet_service.deduct(tenant.id, 4, plan_id=plans["PREMIUM"].id)

        result = await async_session.execute(select(SubscriptionTable))
        assert result.scalars().all() == []
        assert (await wallet_service.balance(tenant.id)).amount == Decimal("10")

    async def test_unknown_plan(self, wallet_service, plans, tenant_factory):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 10, PaymentMethod.STRIPE, currency="GBP")
        with pytest.raises(PlanNotFoundError):
            await wallet_service.deduct(tenant.id, 5, plan_id="PLATINUM")


@pytest.mark.asyncio
class TestLedgerVerification:
    async def test_detects_tampered_balance(self, wallet_service, tenant_factory, async_session):
        tenant = await tenant_factory()
        await wallet_service.top_up(tenant.id, 10, PaymentMethod.STRIPE, currency="GBP")
        wallet = await wallet_service.get_wallet(tenant.id)
        wallet.balance = Decimal("99")
        await async_session.commit()

        check = await wallet_service.verify_ledger(tenant.id)

        assert not check.consistent
        assert check.ledger_sum == Decimal("10")

    async def test_missing_wallet(self, wallet_service):
        with pytest.raises(WalletNotFoundError):
            await wallet_service.verify_ledger("tnt_missing")

    async def test_balance_without_wallet_is_zero(self, wallet_service):
        balance = await wallet_service.balance("tnt_missing")
        assert balance.amount == Decimal("0")
