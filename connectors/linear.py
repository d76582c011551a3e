"""
LinearConnector — Linear GraphQL API.
"""

from __future__ import annotations

import logging

from connectors.base import BaseConnector
from utils.schemas import Capability, ToolSource

logger = logging.getLogger(__name__)

_LINEAR_GRAPHQL = "https://api.linear.app/graphql"


class LinearConnector(BaseConnector):
    """Connector for a Linear organization."""

    source = ToolSource.LINEAR
    display_name = "Linear"
    capabilities = frozenset({Capability.TEST_CONNECTION})

    async def _verify_credentials(self) -> bool:
        resp = await self._send(
            "POST",
            _LINEAR_GRAPHQL,
            json={"query": "{ viewer { id } }"},
            headers=self._bearer(),
        )
        self._check(resp, "connection test")
        data = self._json(resp, "connection test")
        # GraphQL auth failures can still come back as HTTP 200.
        if data.get("errors"):
            logger.warning("Linear rejected credentials: %s", data["errors"][0].get("message"))
            return False
        return bool((data.get("data") or {}).get("viewer"))
