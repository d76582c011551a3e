"""
SlackConnector — Slack Web API.

Slack answers HTTP 200 for almost everything and reports failures through
the ``ok`` / ``error`` fields of the JSON body.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from config.settings import config
from connectors.base import BaseConnector
from connectors.exceptions import AuthError, ProviderError
from utils.schemas import Capability, ToolSource

logger = logging.getLogger(__name__)

_SLACK_API = "https://slack.com/api"

# Errors that mean the token itself is unusable.
_AUTH_ERRORS = {
    "invalid_auth",
    "not_authed",
    "token_revoked",
    "token_expired",
    "account_inactive",
    "invalid_refresh_token",
    "invalid_grant",
}


class SlackConnector(BaseConnector):
    """Connector for a Slack workspace."""

    source = ToolSource.SLACK
    display_name = "Slack"
    capabilities = frozenset({Capability.REFRESH_TOKEN, Capability.TEST_CONNECTION})

    async def _call(self, method: str, **kwargs: Any) -> Dict[str, Any]:
        resp = self._check(await self._send("POST", f"{_SLACK_API}/{method}", **kwargs), method)
        return self._json(resp, method)

    async def _exchange_refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        data = await self._call(
            "oauth.v2.access",
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": config.slack_client_id,
                "client_secret": config.slack_client_secret,
            },
        )
        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            raise AuthError(f"Failed to refresh Slack token: {error}", source=self.source.value)
        return data

    async def _verify_credentials(self) -> bool:
        data = await self._call("auth.test", headers=self._bearer())
        if data.get("ok"):
            return True
        error = data.get("error", "unknown_error")
        if error in _AUTH_ERRORS:
            logger.warning("Slack credentials rejected: %s", error)
            return False
        raise ProviderError(f"Slack auth.test failed: {error}", source=self.source.value)
