"""
In-app notifications addressed to a tenant or to all administrators.
"""

from enum import Enum

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dibnow.billing.db import Base, TimestampMixin, generate_id

# Target used for notifications meant for administrators
GLOBAL_TARGET = "global"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationTable(Base, TimestampMixin):
    """SQLAlchemy table for notifications."""

    __tablename__ = "billing_notifications"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: generate_id("ntf")
    )
    # Tenant id or GLOBAL_TARGET
    target: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NotificationType.INFO.value
    )
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


__all__ = ["GLOBAL_TARGET", "NotificationType", "NotificationTable"]
