"""
Notion webhooks.

``notion-signature`` is a hex HMAC-SHA256 over ``"{timestamp}.{body}"``
where the timestamp comes from ``notion-timestamp`` and must fall inside the
replay window.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from database.helpers import record_activity
from database.models import IntegrationCredential
from utils.schemas import SyncStatus, ToolSource
from webhooks.base import (
    RawWebhookRequest,
    WebhookEvent,
    WebhookHandler,
    hmac_sha256_hex,
    signatures_match,
)

logger = logging.getLogger(__name__)

_CLEANUP_GRACE = timedelta(days=30)

_ACTIONS: Dict[str, Dict[str, str]] = {
    "page": {
        "created": "webhook.page_created",
        "updated": "webhook.page_updated",
        "deleted": "webhook.page_deleted",
        "restored": "webhook.page_restored",
    },
    "database": {
        "created": "webhook.database_created",
        "updated": "webhook.database_updated",
        "deleted": "webhook.database_deleted",
    },
    "user": {
        "added": "webhook.user_added",
        "removed": "webhook.user_removed",
        "updated": "webhook.user_updated",
    },
}
_FALLBACK = {
    "page": "webhook.page_changed",
    "database": "webhook.database_changed",
    "block": "webhook.block_changed",
    "user": "webhook.user_changed",
    "workspace": "webhook.workspace_changed",
}


def _title(properties: Optional[Dict[str, Any]]) -> str:
    for prop in (properties or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            parts = prop.get("title") or []
            if parts and parts[0].get("plain_text"):
                return parts[0]["plain_text"]
    return "Untitled"


def _details(entity: str, data: Dict[str, Any]) -> Dict[str, Any]:
    edited_by = (data.get("last_edited_by") or {}).get("id")
    if entity in ("page", "database"):
        return {
            f"{entity}_id": data.get("id"),
            "title": _title(data.get("properties")),
            "parent": data.get("parent"),
            "last_edited_by": edited_by,
        }
    if entity == "block":
        return {"block_id": data.get("id"), "type": data.get("type"), "parent": data.get("parent"), "last_edited_by": edited_by}
    if entity == "user":
        return {
            "user_id": data.get("id"),
            "email": (data.get("person") or {}).get("email"),
            "name": data.get("name"),
            "type": data.get("type"),
        }
    if entity == "workspace":
        return {"workspace_id": data.get("id"), "name": data.get("name"), "domain": data.get("domain")}
    return {}


class NotionWebhookHandler(WebhookHandler):
    source = ToolSource.NOTION

    def verify(self, raw: RawWebhookRequest) -> bool:
        secret = config.notion_webhook_secret
        if not secret:
            logger.error("NOTION_WEBHOOK_SECRET not configured")
            return False
        timestamp = raw.header("notion-timestamp")
        if not self._within_replay_window(timestamp):
            logger.warning("Notion webhook timestamp outside replay window")
            return False
        expected = hmac_sha256_hex(secret, timestamp.encode() + b"." + raw.body)
        return signatures_match(expected, raw.header("notion-signature"))

    def normalize(self, raw: RawWebhookRequest, payload: Dict[str, Any]) -> WebhookEvent:
        # Accept both {"type": "page", "action": "created"} and {"type": "page.created"}.
        event_type = str(payload.get("type") or "unknown")
        data = dict(payload)
        if "." in event_type:
            event_type, action = event_type.split(".", 1)
            data.setdefault("action", action)
        return WebhookEvent(source=self.source, event_type=event_type, payload=data)

    async def handle(self, event: WebhookEvent, session: AsyncSession) -> int:
        entity = event.event_type
        if entity not in _FALLBACK:
            logger.warning("Unhandled Notion event: %s", entity)
            return 0

        action = event.payload.get("action")
        data = event.payload.get("data") or event.payload.get("entity") or {}
        workspace_id = event.payload.get("workspace_id")
        integrations = await self._matching_integrations(
            session, lambda meta: meta.workspace_id is not None and meta.workspace_id == workspace_id
        )
        name = _ACTIONS.get(entity, {}).get(action) or _FALLBACK[entity]
        written = await self._record(session, integrations, name, {**_details(entity, data), "action": action})

        for integration in integrations:
            org_id = integration.organization_id
            if entity == "page" and action == "deleted":
                await record_activity(
                    session,
                    org_id,
                    "webhook.page_deleted_cleanup",
                    {
                        "source": self.source.value,
                        "page_id": data.get("id"),
                        "marked_for_cleanup": True,
                        "cleanup_eligible_at": (datetime.now(timezone.utc) + _CLEANUP_GRACE).isoformat(),
                    },
                )
            elif entity == "user" and action in ("added", "removed"):
                await _reset_sync(session, org_id, full=False)
            elif entity == "workspace" and action == "updated" and data.get("plan"):
                await _reset_sync(session, org_id, full=True)
                await record_activity(
                    session,
                    org_id,
                    "audit.triggered_by_webhook",
                    {"source": self.source.value, "reason": "workspace_plan_changed"},
                )
        return written


async def _reset_sync(session: AsyncSession, organization_id, *, full: bool) -> None:
    """Queue the integration for the next audit; ``full`` also forgets the last sync time."""
    await session.execute(
        update(IntegrationCredential)
        .where(
            IntegrationCredential.organization_id == organization_id,
            IntegrationCredential.source == ToolSource.NOTION,
            IntegrationCredential.is_active.is_(True),
        )
        .values(
            sync_status=SyncStatus.IDLE,
            last_synced_at=None if full else datetime.now(timezone.utc),
        )
    )
