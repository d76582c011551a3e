"""
DropboxConnector — Dropbox user / team accounts.

Archived files are moved into an archive folder, so restoring is a move back
to the original path.  Dropbox webhooks are configured once per app in the
App Console, which makes per-integration registration a no-op.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from config.settings import config
from connectors.base import BaseConnector
from connectors.exceptions import NotFoundError, ProviderError
from utils.schemas import Capability, RestoreFileCommand, ToolSource, WebhookRegistration

logger = logging.getLogger(__name__)

_DROPBOX_TOKEN_URL = "https://api.dropbox.com/oauth2/token"
_DROPBOX_API = "https://api.dropboxapi.com/2"


class DropboxConnector(BaseConnector):
    """Connector for Dropbox."""

    source = ToolSource.DROPBOX
    display_name = "Dropbox"
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
            _DROPBOX_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": config.dropbox_client_id,
                "client_secret": config.dropbox_client_secret,
            },
        )

    async def _verify_credentials(self) -> bool:
        resp = await self._send(
            "POST", f"{_DROPBOX_API}/users/get_current_account", headers=self._bearer()
        )
        self._check(resp, "connection test")
        return True

    async def _restore(self, command: RestoreFileCommand) -> None:
        """Move a file from the archive folder back to where it came from."""
        archive_path = command.original_metadata.get("archive_path") or command.external_id
        if not command.original_path:
            raise NotFoundError(
                f"Original path for {command.name} is unknown; cannot restore.",
                source=self.source.value,
            )

        resp = await self._send(
            "POST",
            f"{_DROPBOX_API}/files/move_v2",
            json={
                "from_path": archive_path,
                "to_path": command.original_path,
                "autorename": False,
            },
            headers=self._bearer(),
        )
        if resp.status_code == 409:
            try:
                summary = str(resp.json().get("error_summary", ""))
            except (ValueError, AttributeError):
                summary = ""
            if summary.startswith("from_lookup"):
                raise NotFoundError(
                    f"File {command.name} not found in archive. It may have been permanently deleted.",
                    source=self.source.value,
                )
            raise ProviderError(
                f"Cannot restore: {summary or 'conflict'} at {command.original_path}",
                source=self.source.value,
                status_code=409,
            )
        self._check(resp, "file restore")
        logger.info("Restored Dropbox file from %s to %s", archive_path, command.original_path)

    async def _register_webhook(self, callback_url: str) -> Optional[WebhookRegistration]:
        # App-level webhook: nothing to create per integration.
        return WebhookRegistration(app_level=True)

    async def _unregister_webhook(self) -> None:
        return None
