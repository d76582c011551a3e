"""
Per-source shapes of ``IntegrationCredential.metadata``.

The stored column is plain JSON; ``parse_metadata`` turns it into the model
for the record's source so webhook code works against typed fields.  Keys a
model does not know about are preserved so nothing is lost on write-back.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from connectors.exceptions import ConfigurationError
from utils.schemas import ToolSource


class _Metadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class GoogleWebhook(BaseModel):
    channel_id: str
    resource_id: str
    expiration: Optional[str] = None


class MicrosoftWebhook(BaseModel):
    subscription_id: str
    resource: Optional[str] = None
    expiration: Optional[str] = None


class DropboxWebhook(BaseModel):
    app_level: bool = True


class GoogleMetadata(_Metadata):
    webhook: Optional[GoogleWebhook] = None


class MicrosoftMetadata(_Metadata):
    webhook: Optional[MicrosoftWebhook] = None


class DropboxMetadata(_Metadata):
    account_id: Optional[str] = None
    webhook: Optional[DropboxWebhook] = None


class SlackMetadata(_Metadata):
    team_id: Optional[str] = None
    team_name: Optional[str] = None


class NotionMetadata(_Metadata):
    workspace_id: Optional[str] = None
    workspace_name: Optional[str] = None
    bot_id: Optional[str] = None


class JiraMetadata(_Metadata):
    cloud_id: Optional[str] = None
    site_url: Optional[str] = None
    scope: Optional[str] = None


class LinearMetadata(_Metadata):
    organization_id: Optional[str] = None


class FigmaMetadata(_Metadata):
    user_id: Optional[str] = None


METADATA_MODELS: Dict[ToolSource, Type[_Metadata]] = {
    ToolSource.GOOGLE: GoogleMetadata,
    ToolSource.MICROSOFT: MicrosoftMetadata,
    ToolSource.DROPBOX: DropboxMetadata,
    ToolSource.SLACK: SlackMetadata,
    ToolSource.NOTION: NotionMetadata,
    ToolSource.JIRA: JiraMetadata,
    ToolSource.LINEAR: LinearMetadata,
    ToolSource.FIGMA: FigmaMetadata,
}


def parse_metadata(source: ToolSource, data: Optional[Dict[str, Any]]) -> _Metadata:
    """Validate a stored metadata dict against the model for ``source``."""
    try:
        return METADATA_MODELS[source].model_validate(data or {})
    except ValidationError as exc:
        raise ConfigurationError(f"Stored {source.value} metadata is invalid: {exc}", source=source.value) from exc
