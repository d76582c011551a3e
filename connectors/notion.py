"""
NotionConnector — Notion public integration.

Notion access tokens do not expire and there is no refresh grant.  Archived
pages are soft-deleted (``archived: true``) and can be put back by flipping
the flag.
"""

from __future__ import annotations

import logging
from typing import Dict

from connectors.base import BaseConnector
from connectors.exceptions import NotFoundError
from utils.schemas import Capability, RestoreFileCommand, ToolSource

logger = logging.getLogger(__name__)

_NOTION_API = "https://api.notion.com/v1"
_NOTION_VERSION = "2022-06-28"


class NotionConnector(BaseConnector):
    """Connector for a Notion workspace."""

    source = ToolSource.NOTION
    display_name = "Notion"
    capabilities = frozenset({Capability.TEST_CONNECTION, Capability.RESTORE_FILE})

    def _headers(self) -> Dict[str, str]:
        return {**self._bearer(), "Notion-Version": _NOTION_VERSION}

    async def _verify_credentials(self) -> bool:
        resp = await self._send("GET", f"{_NOTION_API}/users/me", headers=self._headers())
        self._check(resp, "connection test")
        return True

    async def _restore(self, command: RestoreFileCommand) -> None:
        resp = await self._send(
            "GET", f"{_NOTION_API}/pages/{command.external_id}", headers=self._headers()
        )
        if resp.status_code == 404:
            raise NotFoundError(
                f"Page {command.name} not found. It may have been permanently deleted.",
                source=self.source.value,
            )
        page = self._json(self._check(resp, "page lookup"), "page lookup")
        if not page.get("archived"):
            logger.info("Page %s (%s) is not archived", command.name, command.external_id)
            return

        resp = await self._send(
            "PATCH",
            f"{_NOTION_API}/pages/{command.external_id}",
            json={"archived": False},
            headers=self._headers(),
        )
        self._check(resp, "page restore")
        logger.info("Restored Notion page %s (%s) from archive", command.name, command.external_id)
