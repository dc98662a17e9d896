"""
Notification sink.

Fire-and-forget: a failing sink is logged and never breaks the billing
operation that triggered it.
"""

from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dibnow.billing.notifications.models import (
    GLOBAL_TARGET,
    NotificationTable,
    NotificationType,
)

logger = structlog.get_logger(__name__)


class NotificationSink(Protocol):
    async def notify(
        self,
        target: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
    ) -> None: ...


class DatabaseNotificationSink:
    """Stores notifications in their own session, outside the caller's transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def notify(
        self,
        target: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
    ) -> None:
        try:
            async with self.session_factory() as session:
                session.add(
                    NotificationTable(target=target, title=title, message=message, type=type.value)
                )
                await session.commit()
        except Exception as e:
            logger.error(
                "billing.notification.failed", target=target, title=title, error=str(e)
            )
            return
        logger.debug("billing.notification.sent", target=target, title=title)

    async def list_for(self, target: str, unread_only: bool = False) -> list[NotificationTable]:
        async with self.session_factory() as session:
            stmt = (
                select(NotificationTable)
                .where(NotificationTable.target == target)
                .order_by(NotificationTable.created_at.desc())
            )
            if unread_only:
                stmt = stmt.where(NotificationTable.read.is_(False))
            result = await session.execute(stmt)
            return list(result.scalars().all())


async def notify_tenant(
    sink: NotificationSink | None,
    tenant_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
) -> None:
    if sink is not None:
        await sink.notify(tenant_id, title, message, type)


async def notify_admins(
    sink: NotificationSink | None,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
) -> None:
    if sink is not None:
        await sink.notify(GLOBAL_TARGET, title, message, type)


__all__ = ["NotificationSink", "DatabaseNotificationSink", "notify_tenant", "notify_admins"]
