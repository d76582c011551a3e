"""
ConnectorFactory — builds the connector for a source from stored credentials.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type, Union

import httpx

from connectors.base import BaseConnector
from connectors.dropbox import DropboxConnector
from connectors.exceptions import UnsupportedSourceError
from connectors.figma import FigmaConnector
from connectors.google import GoogleConnector
from connectors.jira import JiraConnector
from connectors.linear import LinearConnector
from connectors.microsoft import MicrosoftConnector
from connectors.notion import NotionConnector
from connectors.slack import SlackConnector
from utils.schemas import ConnectorCredentials, ToolSource

logger = logging.getLogger(__name__)

# ── All known connectors ─────────────────────────────────────────────────

_CONNECTORS: Dict[ToolSource, Type[BaseConnector]] = {
    ToolSource.GOOGLE: GoogleConnector,
    ToolSource.MICROSOFT: MicrosoftConnector,
    ToolSource.DROPBOX: DropboxConnector,
    ToolSource.SLACK: SlackConnector,
    ToolSource.FIGMA: FigmaConnector,
    ToolSource.LINEAR: LinearConnector,
    ToolSource.JIRA: JiraConnector,
    ToolSource.NOTION: NotionConnector,
}


class ConnectorFactory:
    """Maps a ``ToolSource`` onto its connector class.  No I/O happens here."""

    @staticmethod
    def create(
        source: Union[ToolSource, str],
        credentials: ConnectorCredentials,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> BaseConnector:
        resolved = source if isinstance(source, ToolSource) else ToolSource.parse(source)
        connector_cls = _CONNECTORS.get(resolved) if resolved else None
        if connector_cls is None:
            raise UnsupportedSourceError(f"Unsupported connector: {source}", source=str(source))
        logger.debug("Creating %s connector for org %s", resolved.value, credentials.organization_id)
        return connector_cls(credentials, transport=transport)

    @staticmethod
    def list_providers() -> List[Dict[str, object]]:
        """Return each provider with its declared capability set."""
        return [
            {
                "source": source.value,
                "display_name": cls.display_name,
                "capabilities": sorted(c.value for c in cls.capabilities),
            }
            for source, cls in _CONNECTORS.items()
        ]
