"""
Import every table so ``Base.metadata`` is complete.

Used by ``create_all_tables_async`` and the Alembic environment.
"""

from dibnow.billing.catalog.models import PlanTable
from dibnow.billing.db import Base
from dibnow.billing.notifications.models import NotificationTable
from dibnow.billing.plan_requests.models import PlanRequestTable
from dibnow.billing.subscriptions.models import SubscriptionTable
from dibnow.billing.tenants.models import TenantTable
from dibnow.billing.wallet.models import TransactionTable, WalletTable

__all__ = [
    "Base",
    "NotificationTable",
    "PlanRequestTable",
    "PlanTable",
    "SubscriptionTable",
    "TenantTable",
    "TransactionTable",
    "WalletTable",
]
