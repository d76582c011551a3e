"""
Archive routes.

Route prefix: /api/v1/archives
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_provider_transport
from auth.dependencies import db_session, get_current_user
from auth.models import AuthenticatedUser
from connectors.integration_manager import restore_archived_file
from utils.schemas import ActionResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["archives"])


@router.post("/archives/{archive_id}/restore", response_model=ActionResponse)
async def restore_archive(
    archive_id: str,
    session: AsyncSession = Depends(db_session),
    user: AuthenticatedUser = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
):
    """Put an archived item back at its provider.  Connector errors become JSON error bodies."""
    archive = await restore_archived_file(
        session, user.organization_id, archive_id, user_id=user.user_id, transport=transport
    )
    return ActionResponse(message=f"File restored to {archive.source.value}")
