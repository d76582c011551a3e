"""
OAuth authorize / callback routes, end to end against a mocked token endpoint.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy import select

from config.settings import config
from conftest import ORG_ID, add_integration
from connectors.encryption import decrypt_token
from database.models import Activity, IntegrationCredential
from utils.schemas import SyncStatus, ToolSource


@pytest.fixture
def slack_app(monkeypatch):
    monkeypatch.setattr(config, "slack_client_id", "slack-id")
    monkeypatch.setattr(config, "slack_client_secret", "slack-secret")
    monkeypatch.setattr(config, "app_url", "https://app.example.com")


def _slack_token_response(request: httpx.Request) -> httpx.Response:
    assert str(request.url) == "https://slack.com/api/oauth.v2.access"
    return httpx.Response(
        200,
        json={
            "ok": True,
            "access_token": "xoxb-new",
            "team": {"id": "T1", "name": "Acme"},
        },
    )


async def _authorize_state(client, auth_headers, source="slack") -> str:
    resp = await client.get(f"/api/v1/oauth/{source}/authorize", headers=auth_headers)
    assert resp.status_code == 307
    return parse_qs(urlparse(resp.headers["location"]).query)["state"][0]


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_redirects_to_consent(self, client, auth_headers, slack_app):
        resp = await client.get("/api/v1/oauth/slack/authorize", headers=auth_headers)
        assert resp.status_code == 307
        location = urlparse(resp.headers["location"])
        assert location.netloc == "slack.com"
        params = parse_qs(location.query)
        assert params["client_id"] == ["slack-id"]
        assert len(params["state"][0]) >= 32

    @pytest.mark.asyncio
    async def test_requires_auth(self, client, slack_app):
        resp = await client.get("/api/v1/oauth/slack/authorize")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_source_400(self, client, auth_headers):
        resp = await client.get("/api/v1/oauth/trello/authorize", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid source"}

    @pytest.mark.asyncio
    async def test_missing_credentials_redirects_with_error(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr(config, "figma_client_id", "")
        monkeypatch.setattr(config, "app_url", "https://app.example.com")
        resp = await client.get("/api/v1/oauth/figma/authorize", headers=auth_headers)
        assert resp.status_code == 307
        location = resp.headers["location"]
        assert location.startswith("https://app.example.com/dashboard/settings?tab=integrations&error=")
        assert "not%20configured" in location


class TestCallback:
    @pytest.mark.asyncio
    async def test_full_flow_stores_integration(self, client, db, auth_headers, provider, slack_app):
        state = await _authorize_state(client, auth_headers)
        provider.handler = _slack_token_response

        resp = await client.get("/api/v1/oauth/slack/callback", params={"code": "c0de", "state": state})
        assert resp.status_code == 307
        assert resp.headers["location"].endswith("&success=SLACK%20connected%20successfully")

        sent = parse_qs(provider.requests[0].content.decode())
        assert sent["code"] == ["c0de"]
        assert sent["redirect_uri"] == ["http://localhost:8000/api/v1/oauth/slack/callback"]

        integration = (await db.execute(select(IntegrationCredential))).scalar_one()
        assert str(integration.organization_id) == ORG_ID
        assert integration.source == ToolSource.SLACK
        assert decrypt_token(integration.access_token) == "xoxb-new"
        assert integration.expires_at is None
        assert integration.metadata_ == {"team_id": "T1", "team_name": "Acme"}
        actions = [a.action for a in (await db.execute(select(Activity))).scalars()]
        assert actions == ["integration.added"]

    @pytest.mark.asyncio
    async def test_state_cannot_be_reused(self, client, auth_headers, provider, slack_app):
        state = await _authorize_state(client, auth_headers)
        provider.handler = _slack_token_response

        first = await client.get("/api/v1/oauth/slack/callback", params={"code": "a", "state": state})
        assert "success=" in first.headers["location"]

        second = await client.get("/api/v1/oauth/slack/callback", params={"code": "b", "state": state})
        assert "error=Invalid%20or%20expired%20state" in second.headers["location"]
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_source_mismatch(self, client, auth_headers, provider, slack_app):
        state = await _authorize_state(client, auth_headers)
        resp = await client.get("/api/v1/oauth/google/callback", params={"code": "a", "state": state})
        assert "error=Source%20mismatch" in resp.headers["location"]
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_provider_error_param(self, client):
        resp = await client.get("/api/v1/oauth/slack/callback", params={"error": "access_denied"})
        assert resp.headers["location"].endswith("&error=access_denied")

    @pytest.mark.asyncio
    async def test_missing_code(self, client):
        resp = await client.get("/api/v1/oauth/slack/callback", params={"state": "abc"})
        assert "error=Missing%20code%20or%20state" in resp.headers["location"]

    @pytest.mark.asyncio
    async def test_rejected_code_redirects_with_error(self, client, db, auth_headers, provider, slack_app):
        state = await _authorize_state(client, auth_headers)
        provider.handler = lambda request: httpx.Response(200, json={"ok": False, "error": "invalid_code"})

        resp = await client.get("/api/v1/oauth/slack/callback", params={"code": "bad", "state": state})
        assert "error=Slack%20OAuth%20error%3A%20invalid_code" in resp.headers["location"]
        assert (await db.execute(select(IntegrationCredential))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_reconnect_reactivates_record(self, client, db, auth_headers, provider, slack_app):
        existing = await add_integration(
            db, ToolSource.SLACK, is_active=False, sync_status=SyncStatus.ERROR, last_error="revoked"
        )
        state = await _authorize_state(client, auth_headers)
        provider.handler = _slack_token_response

        await client.get("/api/v1/oauth/slack/callback", params={"code": "c", "state": state})

        await db.refresh(existing)
        assert existing.is_active is True
        assert existing.sync_status == SyncStatus.IDLE
        assert existing.last_error is None
        rows = (await db.execute(select(IntegrationCredential))).scalars().all()
        assert len(rows) == 1
