"""
BaseConnector — uniform interface over one organization's account at a
third-party provider.

Every provider (Google, Slack, Notion, …) subclasses this, declares which
``Capability`` values it implements, and fills in the matching ``_``-prefixed
hooks.  The public methods here do the bookkeeping shared by all providers:
capability checks, proactive token refresh, status-code → exception mapping
and bounded HTTP timeouts.

Connectors never touch the database; callers persist whatever changed on
``connector.credentials`` after a call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Optional

import httpx

from config.settings import config
from connectors.exceptions import (
    AuthError,
    NotFoundError,
    ProviderError,
    UnsupportedOperationError,
)
from connectors.metadata import parse_metadata
from utils.schemas import (
    Capability,
    ConnectorCredentials,
    RestoreFileCommand,
    ToolSource,
    WebhookRegistration,
)

logger = logging.getLogger(__name__)

_EXPIRY_BUFFER = timedelta(minutes=5)

_CAPABILITY_LABELS = {
    Capability.REFRESH_TOKEN: "Token refresh",
    Capability.TEST_CONNECTION: "Connection testing",
    Capability.RESTORE_FILE: "File restore",
    Capability.WEBHOOKS: "Webhook registration",
}


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class BaseConnector(ABC):
    """Abstract base for all provider connectors."""

    source: ToolSource
    display_name: str = ""
    capabilities: FrozenSet[Capability] = frozenset({Capability.TEST_CONNECTION})

    def __init__(
        self,
        credentials: ConnectorCredentials,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.credentials = credentials
        self.metadata = parse_metadata(self.source, credentials.metadata)
        self._transport = transport

    # ── Capabilities ────────────────────────────────────────────────────

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def _require(self, capability: Capability) -> None:
        if capability not in self.capabilities:
            raise UnsupportedOperationError(
                f"{_CAPABILITY_LABELS[capability]} is not supported for {self.display_name}.",
                source=self.source.value,
            )

    # ── Public operations ───────────────────────────────────────────────

    async def refresh_token(self) -> str:
        """
        Exchange the stored refresh token for a new access token.

        Updates ``self.credentials`` (access token, expiry and, for providers
        that rotate them, the refresh token) and returns the new access token.
        """
        self._require(Capability.REFRESH_TOKEN)
        if not self.credentials.refresh_token:
            raise AuthError(
                f"No refresh token available for {self.display_name}",
                source=self.source.value,
            )

        data = await self._exchange_refresh_token(self.credentials.refresh_token)
        access_token = data.get("access_token")
        if not access_token:
            raise AuthError(
                f"{self.display_name} did not return an access token",
                source=self.source.value,
            )

        self.credentials.access_token = access_token
        self.credentials.expires_at = datetime.now(timezone.utc) + timedelta(
            seconds=int(data.get("expires_in") or config.default_token_ttl_seconds)
        )
        if data.get("refresh_token"):
            self.credentials.refresh_token = data["refresh_token"]
        logger.info("Refreshed %s token for org %s", self.source.value, self.credentials.organization_id)
        return access_token

    async def test_connection(self) -> bool:
        """
        Confirm the stored credentials currently work.

        Returns False when the provider says the credentials are invalid;
        raises ``ProviderError`` only for transport or server failures.
        """
        self._require(Capability.TEST_CONNECTION)
        try:
            await self.ensure_valid_token()
            return await self._verify_credentials()
        except AuthError as exc:
            logger.warning("%s connection test failed: %s", self.display_name, exc)
            return False

    async def restore_file(self, command: RestoreFileCommand) -> None:
        """Re-create or un-delete a previously archived item."""
        self._require(Capability.RESTORE_FILE)
        await self.ensure_valid_token()
        await self._restore(command)

    async def register_webhook(self, callback_url: str) -> Optional[WebhookRegistration]:
        """
        Create a change-notification subscription pointing at ``callback_url``.

        Returns the descriptor to store in ``metadata.webhook``.
        """
        self._require(Capability.WEBHOOKS)
        await self.ensure_valid_token()
        return await self._register_webhook(callback_url)

    async def unregister_webhook(self) -> None:
        """Cancel the subscription described by ``metadata.webhook`` (if any)."""
        self._require(Capability.WEBHOOKS)
        await self.ensure_valid_token()
        await self._unregister_webhook()

    # ── Provider hooks ──────────────────────────────────────────────────

    async def _exchange_refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        raise UnsupportedOperationError(
            f"Token refresh is not supported for {self.display_name}.",
            source=self.source.value,
        )

    @abstractmethod
    async def _verify_credentials(self) -> bool:
        """Cheapest read-only call that proves the credentials work."""

    async def _restore(self, command: RestoreFileCommand) -> None:
        raise UnsupportedOperationError(
            f"File restore is not supported for {self.display_name}.",
            source=self.source.value,
        )

    async def _register_webhook(self, callback_url: str) -> Optional[WebhookRegistration]:
        raise UnsupportedOperationError(
            f"Webhook registration is not supported for {self.display_name}.",
            source=self.source.value,
        )

    async def _unregister_webhook(self) -> None:
        raise UnsupportedOperationError(
            f"Webhook registration is not supported for {self.display_name}.",
            source=self.source.value,
        )

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_token_expired(self) -> bool:
        """True if the access token expires within the next five minutes."""
        if not self.credentials.expires_at:
            return False
        return _as_utc(self.credentials.expires_at) - datetime.now(timezone.utc) < _EXPIRY_BUFFER

    async def ensure_valid_token(self) -> None:
        """Refresh ahead of a call when the token is about to expire."""
        if (
            self.is_token_expired()
            and self.credentials.refresh_token
            and self.supports(Capability.REFRESH_TOKEN)
        ):
            await self.refresh_token()

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=config.provider_http_timeout,
            transport=self._transport,
            **kwargs,
        )

    def _bearer(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.credentials.access_token}"}

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Perform one provider call, wrapping transport failures."""
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                f"{self.display_name} request timed out: {exc}", source=self.source.value
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                f"{self.display_name} request failed: {exc}", source=self.source.value
            ) from exc

    def _check(self, resp: httpx.Response, action: str) -> httpx.Response:
        """Map a non-2xx response onto the connector error taxonomy."""
        if resp.is_success:
            return resp
        detail = resp.text[:300]
        message = f"{self.display_name} {action} failed ({resp.status_code}): {detail}"
        if resp.status_code in (401, 403):
            raise AuthError(message, source=self.source.value)
        if resp.status_code in (404, 410):
            raise NotFoundError(message, source=self.source.value)
        raise ProviderError(message, source=self.source.value, status_code=resp.status_code)

    def _json(self, resp: httpx.Response, action: str) -> Dict[str, Any]:
        """Decode a JSON object body; a 2xx carrying anything else (gateway HTML) is a provider failure."""
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.display_name} {action} returned a non-JSON body ({resp.status_code}): {resp.text[:300]}",
                source=self.source.value,
                status_code=resp.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise ProviderError(
                f"{self.display_name} {action} returned an unexpected body: {resp.text[:300]}",
                source=self.source.value,
                status_code=resp.status_code,
            )
        return data

    async def _post_token_grant(
        self,
        token_url: str,
        *,
        data: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, str]] = None,
        auth: Optional[tuple] = None,
    ) -> Dict[str, Any]:
        """
        POST a refresh grant to a token endpoint.

        400/401 answers (``invalid_grant`` and friends) mean the grant is dead
        and the user must re-authorize.
        """
        resp = await self._send(
            "POST",
            token_url,
            data=data,
            json=json,
            auth=auth,
            headers={"Accept": "application/json"},
        )
        if resp.status_code in (400, 401):
            raise AuthError(
                f"Failed to refresh {self.display_name} token: {resp.text[:300]}",
                source=self.source.value,
            )
        self._check(resp, "token refresh")
        return self._json(resp, "token refresh")
