"""
Pydantic schemas for the connector service.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════════


class ToolSource(str, Enum):
    GOOGLE = "GOOGLE"
    MICROSOFT = "MICROSOFT"
    DROPBOX = "DROPBOX"
    SLACK = "SLACK"
    FIGMA = "FIGMA"
    LINEAR = "LINEAR"
    JIRA = "JIRA"
    NOTION = "NOTION"

    @classmethod
    def parse(cls, value: str) -> Optional["ToolSource"]:
        """Case-insensitive lookup; ``None`` for unknown names."""
        try:
            return cls(value.upper())
        except (ValueError, AttributeError):
            return None


class SyncStatus(str, Enum):
    IDLE = "IDLE"
    SYNCING = "SYNCING"
    ERROR = "ERROR"


class ArchiveStatus(str, Enum):
    ARCHIVED = "ARCHIVED"
    RESTORED = "RESTORED"


class Capability(str, Enum):
    REFRESH_TOKEN = "refresh_token"
    TEST_CONNECTION = "test_connection"
    RESTORE_FILE = "restore_file"
    WEBHOOKS = "webhooks"


# ═══════════════════════════════════════════════════════════════════════════════
# Connector inputs / outputs
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectorCredentials(BaseModel):
    """Decrypted view of an integration record handed to a connector."""

    access_token: str
    refresh_token: Optional[str] = None
    organization_id: str
    expires_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RestoreFileCommand(BaseModel):
    """Describes a previously archived item to put back at the provider."""

    external_id: str
    name: str
    original_path: Optional[str] = None
    original_metadata: Dict[str, Any] = Field(default_factory=dict)
    archived_at: Optional[datetime] = None
    action_type: str = "ARCHIVE_FILE"
    item_type: str = "file"


class WebhookRegistration(BaseModel):
    """Provider subscription descriptor kept in ``metadata.webhook``."""

    channel_id: Optional[str] = None
    subscription_id: Optional[str] = None
    resource_id: Optional[str] = None
    resource: Optional[str] = None
    expiration: Optional[str] = None
    app_level: bool = False


class TokenGrant(BaseModel):
    """Result of an authorization-code exchange."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scopes: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# API request / response bodies
# ═══════════════════════════════════════════════════════════════════════════════


class SourceRequest(BaseModel):
    source: str


class IntegrationOut(BaseModel):
    id: str
    source: ToolSource
    is_active: bool
    sync_status: SyncStatus
    scopes: List[str] = Field(default_factory=list)
    connected_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IntegrationStatusItem(BaseModel):
    source: ToolSource
    status: SyncStatus
    last_synced: Optional[datetime] = None
    error: Optional[str] = None


class IntegrationStatusSummary(BaseModel):
    total: int = 0
    syncing: int = 0
    error: int = 0
    idle: int = 0
    integrations: List[IntegrationStatusItem] = Field(default_factory=list)


class ActionResponse(BaseModel):
    success: bool = True
    message: str = ""
