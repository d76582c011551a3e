"""
FigmaConnector — Figma REST API.
"""

from __future__ import annotations

from connectors.base import BaseConnector
from utils.schemas import Capability, ToolSource

_FIGMA_API = "https://api.figma.com/v1"


class FigmaConnector(BaseConnector):
    """Connector for a Figma account."""

    source = ToolSource.FIGMA
    display_name = "Figma"
    capabilities = frozenset({Capability.TEST_CONNECTION})

    async def _verify_credentials(self) -> bool:
        resp = await self._send("GET", f"{_FIGMA_API}/me", headers=self._bearer())
        self._check(resp, "connection test")
        return bool(self._json(resp, "connection test").get("id"))
