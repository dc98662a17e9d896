"""
Billing test fixtures.

Every test gets its own SQLite database file so sessions opened by the
code under test are isolated exactly as they are against PostgreSQL.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dibnow.billing.catalog.models import PlanTable
from dibnow.billing.catalog.service import PlanCatalog
from dibnow.billing.models import Base
from dibnow.billing.tenants.models import TenantPlanStatus, TenantTable
from dibnow.billing.wallet.locks import WalletLockRegistry
from tests.billing.helpers import FrozenClock


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.sqlite'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def async_session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def wallet_locks() -> WalletLockRegistry:
    return WalletLockRegistry()


@pytest_asyncio.fixture
async def plans(async_session) -> dict[str, PlanTable]:
    """The default catalog, keyed by plan name."""
    catalog = PlanCatalog(async_session)
    await catalog.seed_defaults()
    await async_session.commit()
    return {plan.name: plan for plan in await catalog.list_active()}


@pytest.fixture
def tenant_factory(async_session) -> Callable[..., Awaitable[TenantTable]]:
    """Create tenants directly in the database."""

    async def _create(
        plan_id: str | None = None,
        status: TenantPlanStatus = TenantPlanStatus.ACTIVE,
        plan_expire_date: datetime | None = None,
        **fields: Any,
    ) -> TenantTable:
        tenant = TenantTable(
            shop_name=fields.pop("shop_name", "Fix-It Phones"),
            email=fields.pop("email", "owner@fixit.example"),
            plan_id=plan_id,
            plan_status=status.value,
            status=status.value,
            plan_expire_date=plan_expire_date,
            **fields,
        )
        async_session.add(tenant)
        await async_session.commit()
        return tenant

    return _create
