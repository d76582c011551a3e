"""
Google Drive push notifications (``changes.watch`` channels).

Drive sends the details in headers and usually an empty body.  The channel
token we set at registration comes back in ``X-Goog-Channel-Token``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from utils.schemas import ToolSource
from webhooks.base import RawWebhookRequest, WebhookEvent, WebhookHandler, signatures_match

logger = logging.getLogger(__name__)

_CHANGE_STATES = {"add", "remove", "update", "trash", "untrash", "change"}


class GoogleWebhookHandler(WebhookHandler):
    source = ToolSource.GOOGLE

    def verify(self, raw: RawWebhookRequest) -> bool:
        expected = config.google_webhook_token
        if not expected:
            logger.error("GOOGLE_WEBHOOK_TOKEN not configured")
            return False
        return signatures_match(expected, raw.header("x-goog-channel-token"))

    def normalize(self, raw: RawWebhookRequest, payload: Dict[str, Any]) -> WebhookEvent:
        data = dict(payload)
        data.update(
            {
                "channel_id": raw.header("x-goog-channel-id"),
                "resource_id": raw.header("x-goog-resource-id"),
                "resource_uri": raw.header("x-goog-resource-uri"),
                "message_number": raw.header("x-goog-message-number"),
            }
        )
        return WebhookEvent(
            source=self.source,
            event_type=raw.header("x-goog-resource-state") or "unknown",
            payload=data,
        )

    async def handle(self, event: WebhookEvent, session: AsyncSession) -> int:
        if event.event_type == "sync":
            logger.debug("Google channel %s sync message", event.payload.get("channel_id"))
            return 0
        if event.event_type not in _CHANGE_STATES:
            logger.info("Unhandled Google event: %s", event.event_type)
            return 0

        channel_id = event.payload.get("channel_id")
        resource_id = event.payload.get("resource_id")

        def _matches(meta) -> bool:
            hook = meta.webhook
            return hook is not None and (hook.channel_id == channel_id or hook.resource_id == resource_id)

        integrations = await self._matching_integrations(session, _matches)
        return await self._record(
            session,
            integrations,
            "webhook.drive_changed",
            {"state": event.event_type, "channel_id": channel_id, "resource_id": resource_id},
        )
