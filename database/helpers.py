"""
Database helper functions — lookups and the activity trail.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Activity, IntegrationCredential
from utils.schemas import ToolSource

logger = logging.getLogger(__name__)


def _to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


async def get_integration(
    session: AsyncSession,
    organization_id: str | uuid.UUID,
    source: ToolSource,
    *,
    for_update: bool = False,
) -> Optional[IntegrationCredential]:
    """Fetch the (organization, source) record regardless of ``is_active``."""
    stmt = select(IntegrationCredential).where(
        IntegrationCredential.organization_id == _to_uuid(organization_id),
        IntegrationCredential.source == source,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_integrations(
    session: AsyncSession,
    *,
    source: Optional[ToolSource] = None,
    organization_id: Optional[str | uuid.UUID] = None,
) -> List[IntegrationCredential]:
    stmt = select(IntegrationCredential).where(IntegrationCredential.is_active.is_(True))
    if source is not None:
        stmt = stmt.where(IntegrationCredential.source == source)
    if organization_id is not None:
        stmt = stmt.where(IntegrationCredential.organization_id == _to_uuid(organization_id))
    result = await session.execute(stmt.order_by(IntegrationCredential.connected_at))
    return list(result.scalars().all())


async def record_activity(
    session: AsyncSession,
    organization_id: str | uuid.UUID,
    action: str,
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[str | uuid.UUID] = None,
) -> Activity:
    """Append one row to the activity log (flushed, not committed)."""
    activity = Activity(
        organization_id=_to_uuid(organization_id),
        user_id=_to_uuid(user_id) if user_id else None,
        action=action,
        metadata_=metadata or {},
    )
    session.add(activity)
    await session.flush()
    logger.debug("Recorded activity %s for org %s", action, organization_id)
    return activity
