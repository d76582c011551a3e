"""
Tests for OAuth configuration lookup and authorization URL construction.
"""

from urllib.parse import parse_qs, urlparse

import pytest

from config.settings import config
from connectors.exceptions import ConfigurationError
from oauth.authorize import build_authorization_url
from oauth.config import OAuthConfig, get_oauth_config
from utils.schemas import ToolSource


@pytest.fixture
def credentials(monkeypatch):
    for source in ToolSource:
        prefix = source.value.lower()
        monkeypatch.setattr(config, f"{prefix}_client_id", f"{prefix}-id")
        monkeypatch.setattr(config, f"{prefix}_client_secret", f"{prefix}-secret")
    monkeypatch.setattr(config, "oauth_redirect_base", "https://hygiene.example.com")
    monkeypatch.setattr(config, "slack_user_scopes", [])


def _query(url: str):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestOAuthConfig:
    def test_redirect_uri_per_source(self, credentials):
        cfg = get_oauth_config(ToolSource.GOOGLE)
        assert cfg.redirect_uri == "https://hygiene.example.com/api/v1/oauth/google/callback"
        assert cfg.client_id == "google-id"
        assert cfg.token_url == "https://oauth2.googleapis.com/token"

    def test_missing_credentials_raise(self, credentials, monkeypatch):
        monkeypatch.setattr(config, "figma_client_secret", "")
        with pytest.raises(ConfigurationError):
            get_oauth_config(ToolSource.FIGMA)

    def test_every_source_has_config(self, credentials):
        for source in ToolSource:
            assert get_oauth_config(source).authorization_url.startswith("https://")


class TestAuthorizationUrl:
    def test_google(self, credentials):
        url = build_authorization_url(ToolSource.GOOGLE, get_oauth_config(ToolSource.GOOGLE), "st")
        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert "access_type=offline&prompt=consent" in url
        params = _query(url)
        assert params["state"] == "st"
        assert params["response_type"] == "code"
        assert params["include_granted_scopes"] == "true"
        assert params["scope"].split(" ") == get_oauth_config(ToolSource.GOOGLE).scopes

    def test_dropbox_has_no_scope(self, credentials):
        url = build_authorization_url(ToolSource.DROPBOX, get_oauth_config(ToolSource.DROPBOX), "st")
        params = _query(url)
        assert "scope" not in params
        assert params["token_access_type"] == "offline"
        assert params["force_reapprove"] == "true"

    def test_notion_owner_and_no_scope(self, credentials):
        params = _query(build_authorization_url(ToolSource.NOTION, get_oauth_config(ToolSource.NOTION), "st"))
        assert params["owner"] == "user"
        assert "scope" not in params

    def test_slack_comma_scopes_and_user_scope_omitted_when_empty(self, credentials):
        params = _query(build_authorization_url(ToolSource.SLACK, get_oauth_config(ToolSource.SLACK), "st"))
        assert "," in params["scope"]
        assert "user_scope" not in params

    def test_slack_user_scope_when_configured(self, credentials, monkeypatch):
        monkeypatch.setattr(config, "slack_user_scopes", ["users:read", "files:read"])
        params = _query(build_authorization_url(ToolSource.SLACK, get_oauth_config(ToolSource.SLACK), "st"))
        assert params["user_scope"] == "users:read,files:read"

    def test_jira_and_linear_extras(self, credentials):
        jira = _query(build_authorization_url(ToolSource.JIRA, get_oauth_config(ToolSource.JIRA), "st"))
        assert jira["audience"] == "api.atlassian.com"
        assert jira["scope"] == "read:jira-user read:jira-work offline_access"

        linear = _query(build_authorization_url(ToolSource.LINEAR, get_oauth_config(ToolSource.LINEAR), "st"))
        assert linear["actor"] == "application"
        assert linear["scope"] == "read"

    def test_microsoft_response_mode(self, credentials):
        params = _query(build_authorization_url(ToolSource.MICROSOFT, get_oauth_config(ToolSource.MICROSOFT), "st"))
        assert params["response_mode"] == "query"
        assert "offline_access" in params["scope"].split(" ")

    def test_space_encoded_as_percent20(self):
        cfg = OAuthConfig(
            client_id="id",
            client_secret="secret",
            authorization_url="https://auth.example.com/authorize",
            token_url="https://auth.example.com/token",
            redirect_uri="https://app/cb",
            scopes=["a", "b"],
        )
        assert "scope=a%20b" in build_authorization_url(ToolSource.MICROSOFT, cfg, "st")
