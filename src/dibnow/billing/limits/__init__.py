"""Plan quota enforcement."""

from dibnow.billing.limits.counters import (
    CounterRegistry,
    ModelCounter,
    ResourceCounter,
    counter_registry,
)
from dibnow.billing.limits.service import LimitDecision, LimitEnforcer, month_start

__all__ = [
    "CounterRegistry",
    "ModelCounter",
    "ResourceCounter",
    "counter_registry",
    "LimitDecision",
    "LimitEnforcer",
    "month_start",
]
