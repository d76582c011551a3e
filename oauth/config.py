"""
OAuth endpoint and scope configuration per provider.

Client id / secret come from ``config.<source>_client_id`` and
``config.<source>_client_secret``; everything else is static.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from config.settings import config
from connectors.exceptions import ConfigurationError
from utils.schemas import ToolSource


class OAuthConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    authorization_url: str
    token_url: str
    redirect_uri: str
    scopes: List[str] = Field(default_factory=list)
    user_scopes: List[str] = Field(default_factory=list)


# (authorization_url, token_url, scopes)
_ENDPOINTS: Dict[ToolSource, tuple] = {
    ToolSource.SLACK: (
        "https://slack.com/oauth/v2/authorize",
        "https://slack.com/api/oauth.v2.access",
        [
            "files:read",
            "users:read",
            "channels:read",
            "groups:read",
            "team:read",
            "files:write",
            "channels:manage",
        ],
    ),
    ToolSource.GOOGLE: (
        "https://accounts.google.com/o/oauth2/v2/auth",
        "https://oauth2.googleapis.com/token",
        [
            "https://www.googleapis.com/auth/drive.readonly",
            "https://www.googleapis.com/auth/admin.directory.user.readonly",
            "https://www.googleapis.com/auth/admin.directory.group.readonly",
        ],
    ),
    ToolSource.MICROSOFT: (
        "https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        "https://login.microsoftonline.com/common/oauth2/v2.0/token",
        [
            "Files.Read.All",
            "Sites.Read.All",
            "User.Read.All",
            "Directory.Read.All",
            "offline_access",
        ],
    ),
    ToolSource.NOTION: (
        "https://api.notion.com/v1/oauth/authorize",
        "https://api.notion.com/v1/oauth/token",
        [],
    ),
    ToolSource.DROPBOX: (
        "https://www.dropbox.com/oauth2/authorize",
        "https://api.dropboxapi.com/oauth2/token",
        ["files.metadata.read", "files.content.read", "sharing.read", "team_data.member"],
    ),
    ToolSource.FIGMA: (
        "https://www.figma.com/oauth",
        "https://www.figma.com/api/oauth/token",
        ["file_read"],
    ),
    ToolSource.LINEAR: (
        "https://linear.app/oauth/authorize",
        "https://api.linear.app/oauth/token",
        ["read"],
    ),
    ToolSource.JIRA: (
        "https://auth.atlassian.com/authorize",
        "https://auth.atlassian.com/oauth/token",
        ["read:jira-user", "read:jira-work", "offline_access"],
    ),
}


def redirect_uri_for(source: ToolSource) -> str:
    base = config.oauth_redirect_base.rstrip("/")
    return f"{base}/api/v1/oauth/{source.value.lower()}/callback"


def get_oauth_config(source: ToolSource) -> OAuthConfig:
    """
    Resolve the OAuth configuration for ``source``.

    Raises ``ConfigurationError`` when the source is unknown or its client
    credentials are not set in the environment.
    """
    entry = _ENDPOINTS.get(source)
    if entry is None:
        raise ConfigurationError(f"OAuth config not found for {source}", source=str(source))

    client_id, client_secret = config.provider_credentials(source.value)
    if not client_id or not client_secret:
        raise ConfigurationError(
            f"OAuth client credentials for {source.value} are not configured",
            source=source.value,
        )

    authorization_url, token_url, scopes = entry
    return OAuthConfig(
        client_id=client_id,
        client_secret=client_secret,
        authorization_url=authorization_url,
        token_url=token_url,
        redirect_uri=redirect_uri_for(source),
        scopes=list(scopes),
        user_scopes=list(config.slack_user_scopes) if source == ToolSource.SLACK else [],
    )
