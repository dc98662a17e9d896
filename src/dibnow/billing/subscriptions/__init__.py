"""Tenant subscriptions and their state machine."""

from dibnow.billing.subscriptions.models import (
    PaymentMethod,
    SubscriptionStatus,
    SubscriptionTable,
)
from dibnow.billing.subscriptions.service import SubscriptionService

__all__ = ["PaymentMethod", "SubscriptionStatus", "SubscriptionTable", "SubscriptionService"]
