"""
Integration manager — everything between a stored ``tool_integrations`` row
and a live connector.

Route handlers call these functions; connectors themselves never touch the
database.  Each function takes the request's ``AsyncSession`` and leaves the
commit to the caller, except where a failure must be persisted before the
exception propagates (``refresh_integration_token``).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from connectors.base import BaseConnector
from connectors.encryption import decrypt_token, encrypt_token
from connectors.exceptions import ConnectorError, NotFoundError
from connectors.factory import ConnectorFactory
from database.helpers import _to_uuid, get_active_integrations, get_integration, record_activity
from database.models import ArchivedFile, IntegrationCredential
from utils.schemas import (
    ArchiveStatus,
    Capability,
    ConnectorCredentials,
    IntegrationOut,
    IntegrationStatusItem,
    IntegrationStatusSummary,
    RestoreFileCommand,
    SyncStatus,
    TokenGrant,
    ToolSource,
    WebhookRegistration,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Record ↔ connector ──────────────────────────────────────────────────


def build_connector(
    integration: IntegrationCredential,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseConnector:
    """Decrypt the stored tokens and hand them to the source's connector."""
    credentials = ConnectorCredentials(
        access_token=decrypt_token(integration.access_token) or "",
        refresh_token=decrypt_token(integration.refresh_token),
        organization_id=str(integration.organization_id),
        expires_at=integration.expires_at,
        metadata=dict(integration.metadata_ or {}),
    )
    return ConnectorFactory.create(integration.source, credentials, transport=transport)


def _write_back_tokens(integration: IntegrationCredential, connector: BaseConnector) -> None:
    creds = connector.credentials
    integration.access_token = encrypt_token(creds.access_token)
    if creds.refresh_token:
        integration.refresh_token = encrypt_token(creds.refresh_token)
    integration.expires_at = creds.expires_at


async def _require_integration(
    session: AsyncSession,
    organization_id: str,
    source: ToolSource,
    *,
    for_update: bool = False,
) -> IntegrationCredential:
    integration = await get_integration(session, organization_id, source, for_update=for_update)
    if integration is None:
        raise NotFoundError("Integration not found", source=source.value)
    return integration


def _to_out(integration: IntegrationCredential) -> IntegrationOut:
    return IntegrationOut(
        id=str(integration.id),
        source=integration.source,
        is_active=integration.is_active,
        sync_status=integration.sync_status,
        scopes=list(integration.scopes or []),
        connected_at=integration.connected_at,
        last_synced_at=integration.last_synced_at,
        last_error=integration.last_error,
        last_error_at=integration.last_error_at,
        expires_at=integration.expires_at,
        metadata=dict(integration.metadata_ or {}),
    )


# ── Operations ──────────────────────────────────────────────────────────


async def store_integration(
    session: AsyncSession,
    organization_id: str,
    user_id: str,
    source: ToolSource,
    grant: TokenGrant,
) -> IntegrationCredential:
    """
    Upsert the (organization, source) record after a successful code exchange.

    Reconnecting reactivates the existing row and clears any recorded error.
    """
    expires_at = _now() + timedelta(seconds=grant.expires_in) if grant.expires_in else None
    metadata = {k: v for k, v in grant.metadata.items() if v is not None}

    integration = await get_integration(session, organization_id, source)
    if integration is None:
        integration = IntegrationCredential(
            organization_id=_to_uuid(organization_id),
            source=source,
        )
        session.add(integration)

    integration.access_token = encrypt_token(grant.access_token)
    integration.refresh_token = encrypt_token(grant.refresh_token)
    integration.expires_at = expires_at
    integration.scopes = list(grant.scopes)
    integration.metadata_ = metadata
    integration.is_active = True
    integration.sync_status = SyncStatus.IDLE
    integration.last_error = None
    integration.last_error_at = None
    integration.connected_at = _now()
    await session.flush()

    await record_activity(
        session, organization_id, "integration.added", {"source": source.value}, user_id=user_id
    )
    logger.info("Stored %s integration for org %s", source.value, organization_id)
    return integration


async def list_integrations(session: AsyncSession, organization_id: str) -> List[IntegrationOut]:
    rows = await get_active_integrations(session, organization_id=organization_id)
    return [_to_out(row) for row in rows]


async def integration_status(session: AsyncSession, organization_id: str) -> IntegrationStatusSummary:
    """Active integrations with counts per sync status."""
    rows = await get_active_integrations(session, organization_id=organization_id)
    summary = IntegrationStatusSummary(total=len(rows))
    for row in rows:
        if row.sync_status == SyncStatus.SYNCING:
            summary.syncing += 1
        elif row.sync_status == SyncStatus.ERROR:
            summary.error += 1
        else:
            summary.idle += 1
        summary.integrations.append(
            IntegrationStatusItem(
                source=row.source,
                status=row.sync_status,
                last_synced=row.last_synced_at,
                error=row.last_error,
            )
        )
    return summary


async def refresh_integration_token(
    session: AsyncSession,
    organization_id: str,
    source: ToolSource,
    *,
    user_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> IntegrationCredential:
    """
    Refresh and persist the access token for one integration.

    The row is locked (``SELECT … FOR UPDATE``) so concurrent refreshes of
    the same record run one after another.  On failure the error is
    committed to ``last_error`` before the exception is re-raised.
    """
    integration = await _require_integration(session, organization_id, source, for_update=True)
    try:
        connector = build_connector(integration, transport=transport)
        await connector.refresh_token()
    except ConnectorError as exc:
        integration.last_error = exc.message
        integration.last_error_at = _now()
        await session.commit()
        logger.warning("Token refresh failed for %s/%s: %s", source.value, organization_id, exc)
        raise

    _write_back_tokens(integration, connector)
    if integration.expires_at is None:
        integration.expires_at = _now() + timedelta(seconds=config.default_token_ttl_seconds)
    integration.last_error = None
    integration.last_error_at = None
    await session.flush()
    await record_activity(
        session,
        organization_id,
        "integration.token_refreshed",
        {"source": source.value},
        user_id=user_id,
    )
    return integration


async def test_integration_connection(
    session: AsyncSession,
    organization_id: str,
    source: ToolSource,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    integration = await _require_integration(session, organization_id, source)
    connector = build_connector(integration, transport=transport)
    connected = await connector.test_connection()
    # test_connection may have refreshed a token that was about to expire.
    _write_back_tokens(integration, connector)
    await session.flush()
    logger.info("%s connection test for org %s: %s", source.value, organization_id, connected)
    return connected


async def register_integration_webhook(
    session: AsyncSession,
    organization_id: str,
    source: ToolSource,
    *,
    user_id: Optional[str] = None,
    callback_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[WebhookRegistration]:
    """Subscribe to provider change notifications and store the descriptor."""
    integration = await _require_integration(session, organization_id, source)
    if not integration.is_active:
        raise NotFoundError("Integration is not active", source=source.value)

    connector = build_connector(integration, transport=transport)
    url = callback_url or f"{config.webhook_callback_base}/api/v1/webhooks/{source.value.lower()}"
    registration = await connector.register_webhook(url)

    _write_back_tokens(integration, connector)
    metadata: Dict[str, Any] = dict(integration.metadata_ or {})
    if registration is not None:
        metadata["webhook"] = registration.model_dump(exclude_none=True)
    integration.metadata_ = metadata
    await session.flush()

    await record_activity(
        session,
        organization_id,
        "integration.webhook_registered",
        {"source": source.value, "callback_url": url},
        user_id=user_id,
    )
    return registration


async def disconnect_integration(
    session: AsyncSession,
    organization_id: str,
    source: ToolSource,
    *,
    user_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> IntegrationCredential:
    """
    Soft-delete an integration.

    Webhook unregistration is best effort: a failure is logged and the
    record is still deactivated.  Disconnecting an already inactive
    integration succeeds and changes nothing at the provider.
    """
    integration = await _require_integration(session, organization_id, source)
    metadata: Dict[str, Any] = dict(integration.metadata_ or {})

    if integration.is_active and metadata.get("webhook"):
        try:
            connector = build_connector(integration, transport=transport)
            if connector.supports(Capability.WEBHOOKS):
                await connector.unregister_webhook()
        except ConnectorError as exc:
            logger.error("Failed to unregister %s webhook for org %s: %s", source.value, organization_id, exc)

    metadata.pop("webhook", None)
    integration.metadata_ = metadata
    integration.is_active = False
    await session.flush()

    await record_activity(
        session, organization_id, "integration.removed", {"source": source.value}, user_id=user_id
    )
    logger.info("Disconnected %s for org %s", source.value, organization_id)
    return integration


async def restore_archived_file(
    session: AsyncSession,
    organization_id: str,
    archive_id: str,
    *,
    user_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ArchivedFile:
    """
    Put an archived item back at its provider and mark the archive RESTORED.

    Raises ``NotFoundError`` for an unknown archive, a missing integration,
    or an item the provider has already purged.
    """
    try:
        archive_uuid = uuid.UUID(str(archive_id))
    except ValueError as exc:
        raise NotFoundError("Archived file not found") from exc

    result = await session.execute(
        select(ArchivedFile).where(
            ArchivedFile.id == archive_uuid,
            ArchivedFile.organization_id == _to_uuid(organization_id),
        )
    )
    archive = result.scalar_one_or_none()
    if archive is None:
        raise NotFoundError("Archived file not found")

    integration = await get_integration(session, organization_id, archive.source)
    if integration is None or not integration.is_active:
        raise NotFoundError(f"Integration {archive.source.value} not found", source=archive.source.value)

    connector = build_connector(integration, transport=transport)
    await connector.restore_file(
        RestoreFileCommand(
            external_id=archive.external_id,
            name=archive.name,
            original_path=archive.original_path,
            original_metadata=dict(archive.metadata_ or {}),
            archived_at=archive.archived_at,
            action_type=archive.action_type,
        )
    )

    _write_back_tokens(integration, connector)
    archive.status = ArchiveStatus.RESTORED
    archive.restored_at = _now()
    await session.flush()

    await record_activity(
        session,
        organization_id,
        "archive.restored",
        {"source": archive.source.value, "archive_id": str(archive.id), "name": archive.name},
        user_id=user_id,
    )
    logger.info("Restored %s item %s for org %s", archive.source.value, archive.external_id, organization_id)
    return archive
