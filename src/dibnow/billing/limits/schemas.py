"""
Pydantic schemas for quota checks.
"""

from pydantic import BaseModel, ConfigDict, Field


class LimitDecisionResponse(BaseModel):
    """Schema for a quota decision."""

    model_config = ConfigDict(from_attributes=True)

    allowed: bool
    resource_kind: str
    limit: int = Field(description="Quota, -1 when unlimited")
    current_count: int | None
    plan_name: str | None
    upgrade_message: str | None = None


class ResourceUsage(BaseModel):
    """Quota and usage of one resource kind."""

    limit: int
    current_count: int | None


class UsageSummaryResponse(BaseModel):
    """Schema for a tenant's quota usage."""

    tenant_id: str
    usage: dict[str, ResourceUsage]
