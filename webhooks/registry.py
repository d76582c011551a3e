"""
WebhookRegistry — source → handler lookup.
"""

from __future__ import annotations

from typing import Dict, Optional

from utils.schemas import ToolSource
from webhooks.base import WebhookHandler
from webhooks.dropbox import DropboxWebhookHandler
from webhooks.google import GoogleWebhookHandler
from webhooks.linear import LinearWebhookHandler
from webhooks.microsoft import MicrosoftWebhookHandler
from webhooks.notion import NotionWebhookHandler
from webhooks.slack import SlackWebhookHandler


class WebhookRegistry:
    _handlers: Dict[ToolSource, WebhookHandler] = {
        ToolSource.SLACK: SlackWebhookHandler(),
        ToolSource.GOOGLE: GoogleWebhookHandler(),
        ToolSource.MICROSOFT: MicrosoftWebhookHandler(),
        ToolSource.DROPBOX: DropboxWebhookHandler(),
        ToolSource.LINEAR: LinearWebhookHandler(),
        ToolSource.NOTION: NotionWebhookHandler(),
    }

    @classmethod
    def get_handler(cls, source: ToolSource) -> Optional[WebhookHandler]:
        return cls._handlers.get(source)

    @classmethod
    def has_handler(cls, source: ToolSource) -> bool:
        return source in cls._handlers
