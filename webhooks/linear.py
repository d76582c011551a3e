"""
Linear webhooks (``linear-signature``: hex HMAC-SHA256 of the body).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
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

_ACTIONS: Dict[str, Dict[str, str]] = {
    "Issue": {"create": "webhook.issue_created", "update": "webhook.issue_updated", "remove": "webhook.issue_deleted"},
    "Project": {
        "create": "webhook.project_created",
        "update": "webhook.project_updated",
        "remove": "webhook.project_deleted",
    },
    "User": {"create": "webhook.user_added", "remove": "webhook.user_removed"},
}
_FALLBACK = {
    "Issue": "webhook.issue_changed",
    "Project": "webhook.project_changed",
    "Team": "webhook.team_changed",
    "Comment": "webhook.comment_added",
}


def _details(entity: str, data: Dict[str, Any]) -> Dict[str, Any]:
    if entity == "Issue":
        return {
            "issue_id": data.get("id"),
            "issue_key": data.get("identifier"),
            "title": data.get("title"),
            "state": (data.get("state") or {}).get("name"),
            "assignee": (data.get("assignee") or {}).get("email"),
        }
    if entity == "Project":
        return {"project_id": data.get("id"), "name": data.get("name"), "state": data.get("state")}
    if entity == "User":
        return {
            "user_id": data.get("id"),
            "email": data.get("email"),
            "name": data.get("name"),
            "is_active": data.get("active"),
        }
    if entity == "Team":
        return {"team_id": data.get("id"), "name": data.get("name"), "key": data.get("key")}
    if entity == "Comment":
        return {
            "comment_id": data.get("id"),
            "issue_id": (data.get("issue") or {}).get("id"),
            "user_id": (data.get("user") or {}).get("id"),
            "user_email": (data.get("user") or {}).get("email"),
        }
    return {}


class LinearWebhookHandler(WebhookHandler):
    source = ToolSource.LINEAR

    def verify(self, raw: RawWebhookRequest) -> bool:
        secret = config.linear_webhook_secret
        if not secret:
            logger.error("LINEAR_WEBHOOK_SECRET not configured")
            return False
        return signatures_match(hmac_sha256_hex(secret, raw.body), raw.header("linear-signature"))

    async def handle(self, event: WebhookEvent, session: AsyncSession) -> int:
        entity = event.event_type
        action = event.payload.get("action")
        if entity not in _FALLBACK and entity != "User":
            logger.info("Unhandled Linear event: %s", entity)
            return 0
        if entity == "User" and action not in ("create", "remove"):
            return 0

        linear_org = event.payload.get("organizationId")
        integrations = await self._matching_integrations(
            session, lambda meta: meta.organization_id is not None and meta.organization_id == linear_org
        )
        name = _ACTIONS.get(entity, {}).get(action) or _FALLBACK[entity]
        details = {**_details(entity, event.payload.get("data") or {}), "action": action}
        written = await self._record(session, integrations, name, details)

        if entity == "User":
            for integration in integrations:
                await _mark_for_resync(session, integration.organization_id)
        return written


async def _mark_for_resync(session: AsyncSession, organization_id) -> None:
    """Seat counts changed; let the next scheduled audit pick the integration up."""
    await session.execute(
        update(IntegrationCredential)
        .where(
            IntegrationCredential.organization_id == organization_id,
            IntegrationCredential.source == ToolSource.LINEAR,
            IntegrationCredential.is_active.is_(True),
        )
        .values(sync_status=SyncStatus.IDLE, last_synced_at=datetime.now(timezone.utc))
    )
