"""
GoogleConnector — Google Drive / Workspace over the REST APIs.

Restore un-trashes a Drive file; webhooks are Drive ``changes.watch``
channels that must be stopped explicitly on disconnect.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Optional

from config.settings import config
from connectors.base import BaseConnector
from connectors.exceptions import NotFoundError, ProviderError
from utils.schemas import Capability, RestoreFileCommand, ToolSource, WebhookRegistration

logger = logging.getLogger(__name__)

# Google endpoints
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_DRIVE_API = "https://www.googleapis.com/drive/v3"


class GoogleConnector(BaseConnector):
    """Connector for Google Drive."""

    source = ToolSource.GOOGLE
    display_name = "Google Drive"
    capabilities = frozenset(
        {
            Capability.REFRESH_TOKEN,
            Capability.TEST_CONNECTION,
            Capability.RESTORE_FILE,
            Capability.WEBHOOKS,
        }
    )

    async def _exchange_refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        return await self._post_token_grant(
            _GOOGLE_TOKEN_URL,
            data={
                "client_id": config.google_client_id,
                "client_secret": config.google_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )

    async def _verify_credentials(self) -> bool:
        resp = await self._send(
            "GET", f"{_DRIVE_API}/about", params={"fields": "user"}, headers=self._bearer()
        )
        self._check(resp, "connection test")
        return True

    async def _restore(self, command: RestoreFileCommand) -> None:
        """Move a trashed Drive file back out of the trash."""
        resp = await self._send(
            "PATCH",
            f"{_DRIVE_API}/files/{command.external_id}",
            params={"supportsAllDrives": "true", "fields": "id,trashed"},
            json={"trashed": False},
            headers=self._bearer(),
        )
        if resp.status_code == 404:
            raise NotFoundError(
                f"File {command.name} not found in Google Drive. It may have been permanently deleted.",
                source=self.source.value,
            )
        self._check(resp, "file restore")
        logger.info("Restored Google Drive file %s (%s)", command.name, command.external_id)

    async def _register_webhook(self, callback_url: str) -> Optional[WebhookRegistration]:
        headers = self._bearer()
        resp = self._check(
            await self._send(
                "GET",
                f"{_DRIVE_API}/changes/startPageToken",
                params={"supportsAllDrives": "true"},
                headers=headers,
            ),
            "start page token lookup",
        )
        page_token = self._json(resp, "start page token lookup").get("startPageToken")
        if not page_token:
            raise ProviderError("Google Drive did not return a start page token", source=self.source.value)

        expiration_ms = int(time.time() * 1000) + config.google_watch_ttl_days * 86_400_000
        body = {
            "id": str(uuid.uuid4()),
            "type": "web_hook",
            "address": callback_url,
            "expiration": str(expiration_ms),  # Drive wants a string here
        }
        if config.google_webhook_token:
            body["token"] = config.google_webhook_token

        resp = self._check(
            await self._send(
                "POST",
                f"{_DRIVE_API}/changes/watch",
                params={"pageToken": page_token, "supportsAllDrives": "true"},
                json=body,
                headers=headers,
            ),
            "webhook registration",
        )
        channel = self._json(resp, "webhook registration")
        logger.info("Registered Google Drive watch channel %s", channel.get("id"))
        return WebhookRegistration(
            channel_id=channel.get("id"),
            resource_id=channel.get("resourceId"),
            expiration=str(channel["expiration"]) if channel.get("expiration") else None,
        )

    async def _unregister_webhook(self) -> None:
        webhook = self.metadata.webhook
        if webhook is None:
            return
        resp = await self._send(
            "POST",
            f"{_DRIVE_API}/channels/stop",
            json={"id": webhook.channel_id, "resourceId": webhook.resource_id},
            headers=self._bearer(),
        )
        if resp.status_code == 404:
            logger.info("Google watch channel %s already expired", webhook.channel_id)
            return
        self._check(resp, "webhook unregistration")
        logger.info("Stopped Google Drive watch channel %s", webhook.channel_id)
