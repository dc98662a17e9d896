"""Tenant plan state."""

from dibnow.billing.tenants.models import TenantPlanStatus, TenantTable

__all__ = ["TenantPlanStatus", "TenantTable"]
