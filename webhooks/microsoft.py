"""
Microsoft Graph change notifications.

A new subscription is validated by echoing ``validationToken`` as plain
text.  Each notification carries the ``clientState`` we chose when the
subscription was created.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from utils.schemas import ToolSource
from webhooks.base import RawWebhookRequest, WebhookEvent, WebhookHandler, signatures_match

logger = logging.getLogger(__name__)


class MicrosoftWebhookHandler(WebhookHandler):
    source = ToolSource.MICROSOFT

    def handshake(self, raw: RawWebhookRequest) -> Optional[str]:
        token = raw.query_params.get("validationToken")
        if token:
            return token
        payload = raw.json_body()
        if isinstance(payload, dict) and payload.get("validationToken"):
            return str(payload["validationToken"])
        return None

    def verify(self, raw: RawWebhookRequest) -> bool:
        expected = config.microsoft_webhook_client_state
        if not expected:
            logger.error("MICROSOFT_WEBHOOK_CLIENT_STATE not configured")
            return False
        payload = raw.json_body()
        if not isinstance(payload, dict):
            return False
        notifications = payload.get("value")
        if not isinstance(notifications, list) or not notifications:
            return False
        return all(
            isinstance(n, dict) and signatures_match(expected, n.get("clientState"))
            for n in notifications
        )

    def normalize(self, raw: RawWebhookRequest, payload: Dict[str, Any]) -> WebhookEvent:
        notifications = payload.get("value") or [{}]
        return WebhookEvent(
            source=self.source,
            event_type=str(notifications[0].get("changeType") or "notification"),
            payload=payload,
        )

    async def handle(self, event: WebhookEvent, session: AsyncSession) -> int:
        written = 0
        for notification in event.payload.get("value") or []:
            subscription_id = notification.get("subscriptionId")
            integrations = await self._matching_integrations(
                session,
                lambda meta: meta.webhook is not None and meta.webhook.subscription_id == subscription_id,
            )
            written += await self._record(
                session,
                integrations,
                f"webhook.{notification.get('changeType', 'updated')}",
                {"resource": notification.get("resource"), "subscription_id": subscription_id},
            )
        return written
