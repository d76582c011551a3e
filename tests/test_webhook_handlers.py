"""
What each webhook handler writes once an event has been verified.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from conftest import add_integration
from database.models import Activity
from utils.schemas import SyncStatus, ToolSource
from webhooks.base import RawWebhookRequest, WebhookEvent
from webhooks.dispatch import dispatch_webhook_event
from webhooks.google import GoogleWebhookHandler
from webhooks.linear import LinearWebhookHandler
from webhooks.notion import NotionWebhookHandler

OTHER_ORG = "33333333-3333-3333-3333-333333333333"


async def _activities(db):
    return (await db.execute(select(Activity).order_by(Activity.created_at))).scalars().all()


class TestLinearHandler:
    @pytest.mark.asyncio
    async def test_issue_created_only_for_matching_org(self, db):
        await add_integration(db, ToolSource.LINEAR, metadata={"organization_id": "lin-1"})
        await add_integration(db, ToolSource.LINEAR, organization_id=OTHER_ORG, metadata={"organization_id": "lin-2"})
        event = WebhookEvent(
            source=ToolSource.LINEAR,
            event_type="Issue",
            payload={
                "action": "create",
                "organizationId": "lin-1",
                "data": {"id": "i1", "identifier": "ENG-1", "title": "Bug", "state": {"name": "Todo"}},
            },
        )

        written = await LinearWebhookHandler().handle(event, db)
        await db.commit()

        assert written == 1
        rows = await _activities(db)
        assert [r.action for r in rows] == ["webhook.issue_created"]
        assert rows[0].metadata_["issue_key"] == "ENG-1"
        assert rows[0].metadata_["source"] == "LINEAR"

    @pytest.mark.asyncio
    async def test_user_removed_queues_resync(self, db):
        integration = await add_integration(
            db, ToolSource.LINEAR, metadata={"organization_id": "lin-1"}, sync_status=SyncStatus.ERROR
        )
        event = WebhookEvent(
            source=ToolSource.LINEAR,
            event_type="User",
            payload={"action": "remove", "organizationId": "lin-1", "data": {"id": "u1", "email": "a@b.c"}},
        )

        await LinearWebhookHandler().handle(event, db)
        await db.commit()

        await db.refresh(integration)
        assert integration.sync_status == SyncStatus.IDLE
        assert integration.last_synced_at is not None
        assert [r.action for r in await _activities(db)] == ["webhook.user_removed"]

    @pytest.mark.asyncio
    async def test_unhandled_entity_writes_nothing(self, db):
        await add_integration(db, ToolSource.LINEAR, metadata={"organization_id": "lin-1"})
        event = WebhookEvent(source=ToolSource.LINEAR, event_type="Cycle", payload={"organizationId": "lin-1"})
        assert await LinearWebhookHandler().handle(event, db) == 0


class TestNotionHandler:
    @pytest.mark.asyncio
    async def test_page_deleted_marks_cleanup(self, db):
        await add_integration(db, ToolSource.NOTION, metadata={"workspace_id": "ws-1"})
        handler = NotionWebhookHandler()
        event = handler.normalize(
            RawWebhookRequest(),
            {
                "type": "page.deleted",
                "workspace_id": "ws-1",
                "data": {
                    "id": "p1",
                    "properties": {"Name": {"type": "title", "title": [{"plain_text": "Roadmap"}]}},
                },
            },
        )

        written = await handler.handle(event, db)
        await db.commit()

        assert written == 1
        rows = {r.action: r for r in await _activities(db)}
        assert set(rows) == {"webhook.page_deleted", "webhook.page_deleted_cleanup"}
        assert rows["webhook.page_deleted"].metadata_["title"] == "Roadmap"
        assert rows["webhook.page_deleted_cleanup"].metadata_["marked_for_cleanup"] is True

    @pytest.mark.asyncio
    async def test_workspace_plan_change_resets_sync(self, db):
        integration = await add_integration(
            db,
            ToolSource.NOTION,
            metadata={"workspace_id": "ws-1"},
            last_synced_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        event = WebhookEvent(
            source=ToolSource.NOTION,
            event_type="workspace",
            payload={"action": "updated", "workspace_id": "ws-1", "data": {"id": "ws-1", "plan": "enterprise"}},
        )

        await NotionWebhookHandler().handle(event, db)
        await db.commit()

        await db.refresh(integration)
        assert integration.last_synced_at is None
        actions = [r.action for r in await _activities(db)]
        assert "audit.triggered_by_webhook" in actions

    @pytest.mark.asyncio
    async def test_other_workspace_ignored(self, db):
        await add_integration(db, ToolSource.NOTION, metadata={"workspace_id": "ws-1"})
        event = WebhookEvent(
            source=ToolSource.NOTION, event_type="page", payload={"action": "updated", "workspace_id": "ws-9"}
        )
        assert await NotionWebhookHandler().handle(event, db) == 0


class TestGoogleHandler:
    @pytest.mark.asyncio
    async def test_sync_message_ignored(self, db):
        await add_integration(db, ToolSource.GOOGLE, metadata={"webhook": {"channel_id": "c1", "resource_id": "r1"}})
        event = WebhookEvent(source=ToolSource.GOOGLE, event_type="sync", payload={"channel_id": "c1"})
        assert await GoogleWebhookHandler().handle(event, db) == 0

    @pytest.mark.asyncio
    async def test_change_matches_channel(self, db):
        await add_integration(db, ToolSource.GOOGLE, metadata={"webhook": {"channel_id": "c1", "resource_id": "r1"}})
        event = WebhookEvent(
            source=ToolSource.GOOGLE, event_type="change", payload={"channel_id": "c1", "resource_id": "r1"}
        )
        assert await GoogleWebhookHandler().handle(event, db) == 1
        await db.commit()
        assert [r.action for r in await _activities(db)] == ["webhook.drive_changed"]

    @pytest.mark.asyncio
    async def test_malformed_row_skipped(self, db):
        await add_integration(
            db,
            ToolSource.GOOGLE,
            organization_id=OTHER_ORG,
            metadata={"webhook": {"watchChannelId": "c1", "watchResourceId": "r1"}},
        )
        await add_integration(db, ToolSource.GOOGLE, metadata={"webhook": {"channel_id": "c1", "resource_id": "r1"}})
        event = WebhookEvent(
            source=ToolSource.GOOGLE, event_type="change", payload={"channel_id": "c1", "resource_id": "r1"}
        )
        assert await GoogleWebhookHandler().handle(event, db) == 1


class TestDispatch:
    @pytest.mark.asyncio
    async def test_commits_handler_writes(self, session_factory, db, monkeypatch):
        monkeypatch.setattr("webhooks.dispatch.async_session_factory", session_factory)
        await add_integration(db, ToolSource.LINEAR, metadata={"organization_id": "lin-1"})
        event = WebhookEvent(
            source=ToolSource.LINEAR,
            event_type="Comment",
            payload={"action": "create", "organizationId": "lin-1", "data": {"id": "c1"}},
        )

        assert await dispatch_webhook_event(event) == 1
        assert [r.action for r in await _activities(db)] == ["webhook.comment_added"]

    @pytest.mark.asyncio
    async def test_handler_failure_is_logged_not_raised(self, session_factory, monkeypatch):
        monkeypatch.setattr("webhooks.dispatch.async_session_factory", session_factory)
        event = WebhookEvent(source=ToolSource.LINEAR, event_type="Issue", payload={})

        with patch.object(LinearWebhookHandler, "handle", AsyncMock(side_effect=RuntimeError("boom"))):
            assert await dispatch_webhook_event(event) == 0
