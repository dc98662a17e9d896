"""
Plan catalog tables and quota vocabulary.

The catalog is the only tenant-independent billing entity.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dibnow.billing.db import Base, TimestampMixin, generate_id

# Canonical "no cap" quota value
UNLIMITED = -1


class ResourceKind(str, Enum):
    """Closed set of tenant resources governed by plan quotas."""

    BRANDS = "brands"
    INVENTORY_ITEMS = "inventoryItems"
    CATEGORIES = "categories"
    TEAM_MEMBERS = "teamMembers"
    REPAIRS_PER_MONTH = "repairsPerMonth"

    @property
    def is_month_bounded(self) -> bool:
        """Usage for this kind is counted from the start of the current month."""
        return self is ResourceKind.REPAIRS_PER_MONTH

    @classmethod
    def lookup(cls, value: str) -> "ResourceKind | None":
        try:
            return cls(value)
        except ValueError:
            return None


def normalize_limit(raw: Any, unlimited_threshold: int = 999) -> int:
    """Map a stored quota value onto an int quota or ``UNLIMITED``.

    Legacy catalog rows express "no cap" as a missing key, ``None``, any
    negative number or a large sentinel (>= ``unlimited_threshold``). Only
    plain non-negative integers below the threshold are real caps.
    """
    if raw is None or isinstance(raw, bool):
        return UNLIMITED
    if isinstance(raw, float):
        if not raw.is_integer():
            return UNLIMITED
        raw = int(raw)
    if not isinstance(raw, int):
        return UNLIMITED
    if raw < 0 or raw >= unlimited_threshold:
        return UNLIMITED
    return raw


class PlanTable(Base, TimestampMixin):
    """SQLAlchemy table for subscription plans."""

    __tablename__ = "billing_plans"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: generate_id("plan")
    )
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)

    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # resource kind -> quota; may also hold boolean feature flags (aiDiagnostics)
    limits: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def limit_for(self, kind: ResourceKind, unlimited_threshold: int = 999) -> int:
        """Effective quota for ``kind``; ``UNLIMITED`` when uncapped."""
        return normalize_limit((self.limits or {}).get(kind.value), unlimited_threshold)

    def has_feature_flag(self, flag: str) -> bool:
        return (self.limits or {}).get(flag) is True

    def __repr__(self) -> str:
        return f"<PlanTable(id={self.id}, name={self.name}, price={self.price})>"


@dataclass(frozen=True)
class PlanTerms:
    """Billing terms used to activate a subscription when no catalog row resolves."""

    id: str
    name: str
    price: Decimal
    currency: str
    duration_days: int


__all__ = ["UNLIMITED", "ResourceKind", "normalize_limit", "PlanTable", "PlanTerms"]
