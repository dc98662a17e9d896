"""In-app notifications."""

from dibnow.billing.notifications.models import (
    GLOBAL_TARGET,
    NotificationTable,
    NotificationType,
)
from dibnow.billing.notifications.service import (
    DatabaseNotificationSink,
    NotificationSink,
    notify_admins,
    notify_tenant,
)

__all__ = [
    "GLOBAL_TARGET",
    "NotificationTable",
    "NotificationType",
    "DatabaseNotificationSink",
    "NotificationSink",
    "notify_admins",
    "notify_tenant",
]
