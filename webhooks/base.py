"""
WebhookHandler — per-provider verification and handling of inbound
change notifications.

The route captures the request body exactly once into a
``RawWebhookRequest``; the same bytes are used for the signature check and
for JSON parsing, so a handler never sees a body that differs from the one
that was verified.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from connectors.exceptions import ConfigurationError
from connectors.metadata import parse_metadata
from database.helpers import get_active_integrations, record_activity
from database.models import IntegrationCredential
from utils.schemas import ToolSource

logger = logging.getLogger(__name__)


class RawWebhookRequest(BaseModel):
    body: bytes = b""
    headers: Dict[str, str] = Field(default_factory=dict)
    query_params: Dict[str, str] = Field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def json_body(self) -> Optional[Any]:
        """Parsed body, ``{}`` for an empty body, ``None`` if it is not JSON."""
        if not self.body.strip():
            return {}
        try:
            return json.loads(self.body)
        except ValueError:
            return None


class WebhookEvent(BaseModel):
    source: ToolSource
    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected.encode(), received.encode())


class WebhookHandler(ABC):
    """Base class for provider webhook handlers."""

    source: ToolSource

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def handshake(self, raw: RawWebhookRequest) -> Optional[str]:
        """
        Return the literal text to echo for a subscription handshake, or
        ``None`` when ``raw`` is an ordinary notification.
        """
        return None

    @abstractmethod
    def verify(self, raw: RawWebhookRequest) -> bool:
        """Authenticate the request against the configured shared secret."""

    def normalize(self, raw: RawWebhookRequest, payload: Dict[str, Any]) -> WebhookEvent:
        event = payload.get("event") if isinstance(payload.get("event"), dict) else None
        event_type = (
            payload.get("type")
            or (event or {}).get("type")
            or payload.get("changeType")
            or "unknown"
        )
        return WebhookEvent(source=self.source, event_type=str(event_type), payload=payload)

    @abstractmethod
    async def handle(self, event: WebhookEvent, session: AsyncSession) -> int:
        """Record the notification for matching integrations; return rows written."""

    # ── Helpers ─────────────────────────────────────────────────────────

    def _within_replay_window(self, timestamp: Optional[str]) -> bool:
        try:
            sent = int(timestamp or "")
        except ValueError:
            return False
        return abs(self._clock() - sent) <= config.webhook_replay_window_seconds

    async def _matching_integrations(
        self,
        session: AsyncSession,
        predicate: Callable[[Any], bool],
    ) -> List[IntegrationCredential]:
        """Active integrations of this source whose parsed metadata satisfies ``predicate``."""
        matched: List[IntegrationCredential] = []
        for row in await get_active_integrations(session, source=self.source):
            try:
                metadata = parse_metadata(self.source, row.metadata_ or {})
            except ConfigurationError as exc:
                logger.warning("Skipping integration %s for org %s: %s", row.id, row.organization_id, exc)
                continue
            if predicate(metadata):
                matched.append(row)
        return matched

    async def _record(
        self,
        session: AsyncSession,
        integrations: List[IntegrationCredential],
        action: str,
        details: Dict[str, Any],
    ) -> int:
        for integration in integrations:
            await record_activity(
                session,
                integration.organization_id,
                action,
                {"source": self.source.value, **details},
            )
        if not integrations:
            logger.debug("%s webhook %s matched no integration", self.source.value, action)
        return len(integrations)
