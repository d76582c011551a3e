"""
MicrosoftConnector — OneDrive / SharePoint through Microsoft Graph.

Webhooks are Graph subscriptions on the user's drive root; each carries the
configured ``clientState`` so inbound notifications can be authenticated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from config.settings import config
from connectors.base import BaseConnector
from connectors.exceptions import NotFoundError
from utils.schemas import Capability, RestoreFileCommand, ToolSource, WebhookRegistration

logger = logging.getLogger(__name__)

_MS_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
_GRAPH_API = "https://graph.microsoft.com/v1.0"


class MicrosoftConnector(BaseConnector):
    """Connector for Microsoft 365 files."""

    source = ToolSource.MICROSOFT
    display_name = "Microsoft 365"
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
            _MS_TOKEN_URL,
            data={
                "client_id": config.microsoft_client_id,
                "client_secret": config.microsoft_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
                "scope": "https://graph.microsoft.com/.default offline_access",
            },
        )

    async def _verify_credentials(self) -> bool:
        resp = await self._send("GET", f"{_GRAPH_API}/me", headers=self._bearer())
        self._check(resp, "connection test")
        return True

    async def _restore(self, command: RestoreFileCommand) -> None:
        """
        Restore a driveItem from the recycle bin.

        Graph only exposes this for OneDrive; once the item leaves the recycle
        bin (93 days) it is gone for good.
        """
        drive_id = command.original_metadata.get("drive_id")
        item_path = (
            f"/drives/{drive_id}/items/{command.external_id}"
            if drive_id
            else f"/me/drive/items/{command.external_id}"
        )
        body: Dict[str, Any] = {}
        parent_id = command.original_metadata.get("parent_id")
        if parent_id:
            body["parentReference"] = {"id": parent_id}

        resp = await self._send(
            "POST", f"{_GRAPH_API}{item_path}/restore", json=body, headers=self._bearer()
        )
        if resp.status_code == 404:
            raise NotFoundError(
                f"File {command.name} is no longer in the Microsoft recycle bin.",
                source=self.source.value,
            )
        self._check(resp, "file restore")
        logger.info("Restored Microsoft file %s (%s)", command.name, command.external_id)

    async def _register_webhook(self, callback_url: str) -> Optional[WebhookRegistration]:
        expiration = datetime.now(timezone.utc) + timedelta(days=config.microsoft_subscription_ttl_days)
        body = {
            "changeType": "updated",
            "notificationUrl": callback_url,
            "resource": "/me/drive/root",
            "expirationDateTime": expiration.isoformat().replace("+00:00", "Z"),
            "clientState": config.microsoft_webhook_client_state,
        }
        resp = self._check(
            await self._send("POST", f"{_GRAPH_API}/subscriptions", json=body, headers=self._bearer()),
            "webhook registration",
        )
        data = self._json(resp, "webhook registration")
        logger.info("Registered Microsoft Graph subscription %s", data.get("id"))
        return WebhookRegistration(
            subscription_id=data.get("id"),
            resource=data.get("resource"),
            expiration=data.get("expirationDateTime"),
        )

    async def _unregister_webhook(self) -> None:
        webhook = self.metadata.webhook
        if webhook is None:
            return
        resp = await self._send(
            "DELETE",
            f"{_GRAPH_API}/subscriptions/{webhook.subscription_id}",
            headers=self._bearer(),
        )
        if resp.status_code == 404:
            logger.info("Microsoft subscription %s already gone", webhook.subscription_id)
            return
        self._check(resp, "webhook unregistration")
        logger.info("Deleted Microsoft Graph subscription %s", webhook.subscription_id)
