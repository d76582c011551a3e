"""
Integration management routes — list, status, disconnect, refresh, test,
webhook registration.

Route prefix: /api/v1/integrations
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_provider_transport, parse_source
from auth.dependencies import db_session, get_current_user
from auth.models import AuthenticatedUser
from connectors import integration_manager
from connectors.factory import ConnectorFactory
from utils.schemas import ActionResponse, IntegrationOut, IntegrationStatusSummary, SourceRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])


@router.get("/integrations", response_model=List[IntegrationOut])
async def list_integrations(
    session: AsyncSession = Depends(db_session),
    user: AuthenticatedUser = Depends(get_current_user),
):
    return await integration_manager.list_integrations(session, user.organization_id)


@router.get("/integrations/providers")
async def list_providers() -> List[Dict[str, Any]]:
    """Supported providers and what each can do.  No auth required."""
    return ConnectorFactory.list_providers()


@router.get("/integrations/status", response_model=IntegrationStatusSummary)
async def integration_status(
    session: AsyncSession = Depends(db_session),
    user: AuthenticatedUser = Depends(get_current_user),
):
    return await integration_manager.integration_status(session, user.organization_id)


@router.post("/integrations/disconnect", response_model=ActionResponse)
async def disconnect(
    body: SourceRequest,
    session: AsyncSession = Depends(db_session),
    user: AuthenticatedUser = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
):
    source = parse_source(body.source)
    await integration_manager.disconnect_integration(
        session, user.organization_id, source, user_id=user.user_id, transport=transport
    )
    return ActionResponse(message=f"{source.value} disconnected successfully")


@router.post("/integrations/refresh-token", response_model=ActionResponse)
async def refresh_token(
    body: SourceRequest,
    session: AsyncSession = Depends(db_session),
    user: AuthenticatedUser = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
):
    source = parse_source(body.source)
    await integration_manager.refresh_integration_token(
        session, user.organization_id, source, user_id=user.user_id, transport=transport
    )
    return ActionResponse(message="Token refreshed successfully")


@router.post("/integrations/test")
async def test_connection(
    body: SourceRequest,
    session: AsyncSession = Depends(db_session),
    user: AuthenticatedUser = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
) -> Dict[str, Any]:
    source = parse_source(body.source)
    connected = await integration_manager.test_integration_connection(
        session, user.organization_id, source, transport=transport
    )
    return {"success": True, "is_connected": connected}


@router.post("/integrations/webhooks/register")
async def register_webhook(
    body: SourceRequest,
    session: AsyncSession = Depends(db_session),
    user: AuthenticatedUser = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
) -> Dict[str, Any]:
    source = parse_source(body.source)
    registration = await integration_manager.register_integration_webhook(
        session, user.organization_id, source, user_id=user.user_id, transport=transport
    )
    return {
        "success": True,
        "webhook": registration.model_dump(exclude_none=True) if registration else None,
    }
