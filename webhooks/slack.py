"""
Slack Events API webhooks.

Signature: ``v0=`` + HMAC-SHA256(signing secret, ``v0:{timestamp}:{body}``)
in ``X-Slack-Signature``, with ``X-Slack-Request-Timestamp`` inside the
replay window.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from utils.schemas import ToolSource
from webhooks.base import (
    RawWebhookRequest,
    WebhookEvent,
    WebhookHandler,
    hmac_sha256_hex,
    signatures_match,
)

logger = logging.getLogger(__name__)

_EVENT_KINDS = {
    "file_created": "file",
    "file_deleted": "file",
    "file_shared": "file",
    "channel_created": "channel",
    "channel_deleted": "channel",
    "channel_archive": "channel",
    "user_change": "user",
    "team_join": "user",
}


class SlackWebhookHandler(WebhookHandler):
    source = ToolSource.SLACK

    def handshake(self, raw: RawWebhookRequest) -> Optional[str]:
        payload = raw.json_body()
        if isinstance(payload, dict) and payload.get("type") == "url_verification":
            logger.info("Slack URL verification challenge received")
            return str(payload.get("challenge", ""))
        return None

    def verify(self, raw: RawWebhookRequest) -> bool:
        secret = config.slack_signing_secret
        if not secret:
            logger.error("SLACK_SIGNING_SECRET not configured")
            return False
        timestamp = raw.header("x-slack-request-timestamp")
        if not self._within_replay_window(timestamp):
            logger.warning("Slack webhook timestamp outside replay window")
            return False
        basestring = b"v0:" + timestamp.encode() + b":" + raw.body
        expected = "v0=" + hmac_sha256_hex(secret, basestring)
        return signatures_match(expected, raw.header("x-slack-signature"))

    def normalize(self, raw: RawWebhookRequest, payload: Dict[str, Any]) -> WebhookEvent:
        event = payload.get("event") or {}
        data = dict(event)
        if payload.get("team_id"):
            data.setdefault("team_id", payload["team_id"])
        return WebhookEvent(
            source=self.source,
            event_type=str(event.get("type") or payload.get("type") or "unknown"),
            payload=data or payload,
        )

    async def handle(self, event: WebhookEvent, session: AsyncSession) -> int:
        kind = _EVENT_KINDS.get(event.event_type)
        if kind is None:
            logger.warning("Unhandled Slack event: %s", event.event_type)
            return 0

        team_id = event.payload.get("team_id") or event.payload.get("team")
        integrations = await self._matching_integrations(
            session, lambda meta: meta.team_id is not None and meta.team_id == team_id
        )
        for integration in integrations:
            logger.info(
                "Queuing incremental sync for %s in org %s", kind, integration.organization_id
            )
        return await self._record(
            session, integrations, f"webhook.{kind}_changed", {"event_type": event.event_type, "data": event.payload}
        )
