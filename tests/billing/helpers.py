"""Test doubles shared by the billing tests."""

from datetime import UTC, datetime, timedelta

from dibnow.billing.catalog.models import ResourceKind
from dibnow.billing.providers.base import ChargeProvider, ChargeResult
from dibnow.billing.subscriptions.models import PaymentMethod

FIXED_NOW = datetime(2025, 1, 1, tzinfo=UTC)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FixedCounter:
    """Resource counter returning canned counts and recording its calls."""

    def __init__(self, count: int = 0) -> None:
        self.value = count
        self.calls: list[tuple[str, ResourceKind, datetime | None]] = []

    async def count(self, tenant_id: str, kind: ResourceKind, since: datetime | None) -> int:
        self.calls.append((tenant_id, kind, since))
        return self.value


class ScriptedProvider(ChargeProvider):
    """Charge provider answering from a script of results."""

    def __init__(self, payment_method: PaymentMethod, *results: ChargeResult) -> None:
        self.payment_method = payment_method
        self.results = list(results)
        self.calls: list[str] = []

    async def renew(self, subscription_id: str) -> ChargeResult:
        self.calls.append(subscription_id)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]
