"""
OAuth API routes — start the authorization-code flow and receive the callback.

Route prefix: /api/v1/oauth
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_provider_transport
from auth.dependencies import db_session, get_current_user
from auth.models import AuthenticatedUser
from config.settings import config
from connectors.exceptions import ConfigurationError, ConnectorError
from connectors.integration_manager import store_integration
from oauth.authorize import build_authorization_url
from oauth.config import get_oauth_config
from oauth.state import get_state_manager
from oauth.token_exchange import exchange_code
from utils.schemas import ToolSource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


def _settings_redirect(*, error: Optional[str] = None, success: Optional[str] = None) -> RedirectResponse:
    url = f"{config.app_url.rstrip('/')}/dashboard/settings?tab=integrations"
    if error is not None:
        url += f"&error={quote(error)}"
    if success is not None:
        url += f"&success={quote(success)}"
    return RedirectResponse(url)


@router.get("/oauth/{source}/authorize")
async def authorize(source: str, user: AuthenticatedUser = Depends(get_current_user)):
    """Redirect the browser to the provider's consent screen."""
    resolved = ToolSource.parse(source)
    if resolved is None:
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid source"})

    try:
        cfg = get_oauth_config(resolved)
    except ConfigurationError as exc:
        logger.error("OAuth authorization error for %s: %s", resolved.value, exc)
        return _settings_redirect(error=exc.message)

    state = await get_state_manager().create_state(resolved, user.organization_id, user.user_id)
    url = build_authorization_url(resolved, cfg, state)
    logger.info("Redirecting org %s to %s consent", user.organization_id, resolved.value)
    return RedirectResponse(url)


@router.get("/oauth/{source}/callback")
async def callback(
    source: str,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(db_session),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
):
    """Provider redirect target: verify state, exchange the code, store the integration."""
    if error:
        return _settings_redirect(error=error)
    if not code or not state:
        return _settings_redirect(error="Missing code or state")

    pending = await get_state_manager().verify_state(state)
    if pending is None:
        return _settings_redirect(error="Invalid or expired state")

    resolved = ToolSource.parse(source)
    if resolved is None or resolved != pending.source:
        return _settings_redirect(error="Source mismatch")

    try:
        cfg = get_oauth_config(resolved)
        grant = await exchange_code(resolved, code, cfg, transport=transport)
        await store_integration(session, pending.organization_id, pending.user_id, resolved, grant)
        await session.commit()
    except ConnectorError as exc:
        logger.error("OAuth callback error for %s: %s", resolved.value, exc)
        return _settings_redirect(error=exc.message)

    return _settings_redirect(success=f"{resolved.value} connected successfully")
