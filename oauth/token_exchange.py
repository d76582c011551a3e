"""
Authorization-code → token exchange, plus the per-source lookups that fill
the integration's metadata (Slack team, Notion workspace, Jira cloud id, …).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from config.settings import config
from connectors.exceptions import AuthError, ProviderError
from oauth.config import OAuthConfig
from utils.schemas import TokenGrant, ToolSource

logger = logging.getLogger(__name__)

_JIRA_RESOURCES_URL = "https://api.atlassian.com/oauth/token/accessible-resources"
_LINEAR_GRAPHQL_URL = "https://api.linear.app/graphql"


async def _post(
    client: httpx.AsyncClient, source: ToolSource, url: str, **kwargs: Any
) -> httpx.Response:
    try:
        return await client.post(url, **kwargs)
    except httpx.HTTPError as exc:
        raise ProviderError(
            f"Token exchange with {source.value} failed: {exc}", source=source.value
        ) from exc


def _raise_for_exchange(resp: httpx.Response, source: ToolSource) -> None:
    if resp.is_success:
        return
    message = f"Token exchange failed ({resp.status_code}): {resp.text[:300]}"
    if resp.status_code in (400, 401, 403):
        raise AuthError(message, source=source.value)
    raise ProviderError(message, source=source.value, status_code=resp.status_code)


def _decode(resp: httpx.Response, source: ToolSource) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise ProviderError(
            f"Token exchange with {source.value} returned a non-JSON body ({resp.status_code}): {resp.text[:300]}",
            source=source.value,
            status_code=resp.status_code,
        ) from exc


async def exchange_code(
    source: ToolSource,
    code: str,
    cfg: OAuthConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TokenGrant:
    """
    Redeem ``code`` at the provider's token endpoint.

    Raises ``AuthError`` when the provider rejects the code and
    ``ProviderError`` on transport or server failures.
    """
    async with httpx.AsyncClient(timeout=config.provider_http_timeout, transport=transport) as client:
        if source == ToolSource.NOTION:
            resp = await _post(
                client,
                source,
                cfg.token_url,
                json={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": cfg.redirect_uri,
                },
                auth=(cfg.client_id, cfg.client_secret),
            )
        else:
            resp = await _post(
                client,
                source,
                cfg.token_url,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": cfg.client_id,
                    "client_secret": cfg.client_secret,
                    "redirect_uri": cfg.redirect_uri,
                },
                headers={"Accept": "application/json"},
            )
        _raise_for_exchange(resp, source)
        data = _decode(resp, source)
        if not isinstance(data, dict):
            raise ProviderError(f"{source.value} returned an unexpected token body", source=source.value)

        if source == ToolSource.SLACK and not data.get("ok", False):
            raise AuthError(f"Slack OAuth error: {data.get('error', 'unknown')}", source=source.value)

        access_token = data.get("access_token")
        if not access_token:
            raise AuthError(f"{source.value} did not return an access token", source=source.value)

        metadata = await _collect_metadata(client, source, access_token, data)

    expires_in = data.get("expires_in")
    # Slack and Notion tokens do not expire.
    if source in (ToolSource.SLACK, ToolSource.NOTION):
        expires_in = None

    logger.info("Exchanged authorization code for %s", source.value)
    return TokenGrant(
        access_token=access_token,
        refresh_token=None if source == ToolSource.NOTION else data.get("refresh_token"),
        expires_in=int(expires_in) if expires_in else None,
        scopes=list(cfg.scopes),
        metadata=metadata,
    )


async def _collect_metadata(
    client: httpx.AsyncClient,
    source: ToolSource,
    access_token: str,
    data: Dict[str, Any],
) -> Dict[str, Any]:
    if source == ToolSource.SLACK:
        team = data.get("team") or {}
        return {"team_id": team.get("id"), "team_name": team.get("name")}

    if source == ToolSource.NOTION:
        return {
            "workspace_id": data.get("workspace_id"),
            "workspace_name": data.get("workspace_name"),
            "bot_id": data.get("bot_id"),
        }

    if source == ToolSource.DROPBOX:
        return {"account_id": data.get("account_id")}

    if source == ToolSource.FIGMA:
        return {"user_id": data.get("user_id_string") or data.get("user_id")}

    if source == ToolSource.JIRA:
        metadata: Dict[str, Any] = {"scope": data.get("scope")}
        try:
            resp = await client.get(
                _JIRA_RESOURCES_URL,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Jira resource lookup failed: {exc}", source=source.value) from exc
        _raise_for_exchange(resp, source)
        resources = _decode(resp, source)
        if not isinstance(resources, list):
            resources = []
        if resources:
            metadata["cloud_id"] = resources[0].get("id")
            metadata["site_url"] = resources[0].get("url")
        else:
            logger.warning("Jira token has no accessible resources")
        return metadata

    if source == ToolSource.LINEAR:
        try:
            resp = await client.post(
                _LINEAR_GRAPHQL_URL,
                json={"query": "{ organization { id } }"},
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Linear organization lookup failed: {exc}", source=source.value) from exc
        _raise_for_exchange(resp, source)
        body = _decode(resp, source)
        org = ((body.get("data") if isinstance(body, dict) else None) or {}).get("organization") or {}
        return {"organization_id": org.get("id")}

    return {}
