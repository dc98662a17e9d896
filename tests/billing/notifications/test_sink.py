"""
Tests for the notification sink.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import update

from dibnow.billing.notifications.models import GLOBAL_TARGET, NotificationTable, NotificationType
from dibnow.billing.notifications.service import (
    DatabaseNotificationSink,
    notify_admins,
    notify_tenant,
)

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
class TestDatabaseNotificationSink:
    async def test_stores_and_lists_by_target(self, session_factory):
        sink = DatabaseNotificationSink(session_factory)

        await sink.notify("tnt_1", "Renewed", "Your plan was renewed", NotificationType.SUCCESS)
        await sink.notify("tnt_2", "Hello", "Other tenant")

        stored = await sink.list_for("tnt_1")
        assert len(stored) == 1
        assert stored[0].title == "Renewed"
        assert stored[0].type == "success"
        assert stored[0].read is False

    async def test_unread_only(self, session_factory):
        sink = DatabaseNotificationSink(session_factory)
        await sink.notify("tnt_1", "First", "one")
        await sink.notify("tnt_1", "Second", "two")

        async with session_factory() as session:
            await session.execute(
                update(NotificationTable)
                .where(NotificationTable.title == "First")
                .values(read=True)
            )
            await session.commit()

        unread = await sink.list_for("tnt_1", unread_only=True)
        assert [n.title for n in unread] == ["Second"]
        assert len(await sink.list_for("tnt_1")) == 2

    async def test_failure_does_not_propagate(self):
        def broken_factory():
            raise RuntimeError("database unavailable")

        sink = DatabaseNotificationSink(broken_factory)

        await sink.notify("tnt_1", "Lost", "never stored")


@pytest.mark.asyncio
class TestNotifyHelpers:
    async def test_tenant_target(self):
        sink = AsyncMock()
        await notify_tenant(sink, "tnt_1", "Title", "Body", NotificationType.WARNING)
        sink.notify.assert_awaited_once_with("tnt_1", "Title", "Body", NotificationType.WARNING)

    async def test_admin_target(self):
        sink = AsyncMock()
        await notify_admins(sink, "Alert", "Body", NotificationType.ERROR)
        sink.notify.assert_awaited_once_with(GLOBAL_TARGET, "Alert", "Body", NotificationType.ERROR)

    async def test_without_sink(self):
        await notify_tenant(None, "tnt_1", "Title", "Body")
        await notify_admins(None, "Title", "Body")
