"""
JiraConnector — Jira Cloud through the Atlassian OAuth 2.0 (3LO) gateway.

Requests go to ``https://api.atlassian.com/ex/jira/{cloud_id}``; the cloud id
is captured during the OAuth callback and stored in the integration metadata.
Atlassian rotates refresh tokens on every use.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from config.settings import config
from connectors.base import BaseConnector
from connectors.exceptions import ConfigurationError
from utils.schemas import Capability, ConnectorCredentials, ToolSource

logger = logging.getLogger(__name__)

_ATLASSIAN_TOKEN_URL = "https://auth.atlassian.com/oauth/token"
_ATLASSIAN_API = "https://api.atlassian.com/ex/jira"


class JiraConnector(BaseConnector):
    """Connector for a Jira Cloud site."""

    source = ToolSource.JIRA
    display_name = "Jira"
    capabilities = frozenset({Capability.REFRESH_TOKEN, Capability.TEST_CONNECTION})

    def __init__(self, credentials: ConnectorCredentials, **kwargs: Any) -> None:
        super().__init__(credentials, **kwargs)
        if not self.metadata.cloud_id:
            raise ConfigurationError(
                "Jira cloud_id is missing from the integration metadata; reconnect Jira.",
                source=self.source.value,
            )
        self.base_url = f"{_ATLASSIAN_API}/{self.metadata.cloud_id}"

    async def _exchange_refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        return await self._post_token_grant(
            _ATLASSIAN_TOKEN_URL,
            json={
                "grant_type": "refresh_token",
                "client_id": config.jira_client_id,
                "client_secret": config.jira_client_secret,
                "refresh_token": refresh_token,
            },
        )

    async def _verify_credentials(self) -> bool:
        resp = await self._send(
            "GET",
            f"{self.base_url}/rest/api/3/myself",
            headers={**self._bearer(), "Accept": "application/json"},
        )
        self._check(resp, "connection test")
        return bool(self._json(resp, "connection test").get("accountId"))
