"""
Dropbox app webhooks.

Notifications only say *which accounts* changed; the body is signed with
the app secret (``X-Dropbox-Signature``, hex HMAC-SHA256).  The GET
``?challenge=`` handshake is answered by the route.
"""

from __future__ import annotations

import logging

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


class DropboxWebhookHandler(WebhookHandler):
    source = ToolSource.DROPBOX

    def verify(self, raw: RawWebhookRequest) -> bool:
        secret = config.dropbox_app_secret
        if not secret:
            logger.error("DROPBOX_APP_SECRET not configured")
            return False
        return signatures_match(hmac_sha256_hex(secret, raw.body), raw.header("x-dropbox-signature"))

    async def handle(self, event: WebhookEvent, session: AsyncSession) -> int:
        accounts = (event.payload.get("list_folder") or {}).get("accounts") or []
        written = 0
        for account in accounts:
            integrations = await self._matching_integrations(
                session, lambda meta: meta.account_id is not None and meta.account_id == account
            )
            written += await self._record(session, integrations, "webhook.files_changed", {"account": account})
        return written
