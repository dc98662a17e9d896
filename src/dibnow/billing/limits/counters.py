"""
Resource usage counters.

Each CRUD module that owns a quota'd resource registers a counter for its
resource kind. The enforcer recomputes usage from the authoritative table on
every check; there is no reservation side table.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dibnow.billing.catalog.models import ResourceKind


@runtime_checkable
class ResourceCounter(Protocol):
    """Counts a tenant's existing resources of one kind."""

    async def count(
        self, tenant_id: str, kind: ResourceKind, since: datetime | None = None
    ) -> int: ...


class ModelCounter:
    """Counter backed by a SQLAlchemy model with tenant and creation columns."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: Any,
        tenant_column: str = "tenant_id",
        created_column: str = "created_at",
    ) -> None:
        self.session_factory = session_factory
        self.model = model
        self.tenant_column = tenant_column
        self.created_column = created_column

    async def count(
        self, tenant_id: str, kind: ResourceKind, since: datetime | None = None
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(getattr(self.model, self.tenant_column) == tenant_id)
        )
        if since is not None:
            stmt = stmt.where(getattr(self.model, self.created_column) >= since)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar() or 0)


class CounterRegistry:
    """Maps resource kinds to the counter that measures them."""

    def __init__(self) -> None:
        self._counters: dict[ResourceKind, ResourceCounter] = {}

    def register(self, kind: ResourceKind, counter: ResourceCounter) -> None:
        self._counters[kind] = counter

    def unregister(self, kind: ResourceKind) -> None:
        self._counters.pop(kind, None)

    def get(self, kind: ResourceKind) -> ResourceCounter | None:
        return self._counters.get(kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._counters


# Process-wide registry populated by resource modules at import time
counter_registry = CounterRegistry()


__all__ = ["ResourceCounter", "ModelCounter", "CounterRegistry", "counter_registry"]
