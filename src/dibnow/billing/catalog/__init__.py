"""Plan catalog."""

from dibnow.billing.catalog.models import (
    UNLIMITED,
    PlanTable,
    PlanTerms,
    ResourceKind,
    normalize_limit,
)
from dibnow.billing.catalog.service import DEFAULT_PLANS, PlanCatalog

__all__ = [
    "UNLIMITED",
    "PlanTable",
    "PlanTerms",
    "ResourceKind",
    "normalize_limit",
    "DEFAULT_PLANS",
    "PlanCatalog",
]
