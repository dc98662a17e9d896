"""Manual plan requests and their approval workflow."""

from dibnow.billing.plan_requests.models import (
    InvoiceStatus,
    PlanRequestStatus,
    PlanRequestTable,
    ReconciliationStatus,
)
from dibnow.billing.plan_requests.service import PlanRequestService

__all__ = [
    "InvoiceStatus",
    "PlanRequestStatus",
    "PlanRequestTable",
    "ReconciliationStatus",
    "PlanRequestService",
]
