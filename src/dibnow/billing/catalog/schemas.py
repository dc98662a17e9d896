"""
Pydantic schemas for the plan catalog.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PlanResponse(BaseModel):
    """Schema for plan responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    price: Decimal
    currency: str
    duration_days: int = Field(description="Days a subscription to this plan lasts")
    features: list[str]
    limits: dict[str, Any] = Field(description="Quota per resource kind and feature flags")
    is_active: bool


class PlanListResponse(BaseModel):
    """Schema for the list of purchasable plans."""

    plans: list[PlanResponse]
    total: int
