"""
Webhook receiver routes (unauthenticated; requests are verified per provider).

Route prefix: /api/v1/webhooks
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from utils.schemas import ToolSource
from webhooks.base import RawWebhookRequest
from webhooks.dispatch import dispatch_webhook_event
from webhooks.registry import WebhookRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.post("/webhooks/{source}")
async def receive_webhook(source: str, request: Request, background_tasks: BackgroundTasks):
    resolved = ToolSource.parse(source)
    if resolved is None:
        return _error(400, "Invalid source")

    handler = WebhookRegistry.get_handler(resolved)
    if handler is None:
        return _error(404, "No handler for this source")

    raw = RawWebhookRequest(
        body=await request.body(),
        headers={k.lower(): v for k, v in request.headers.items()},
        query_params=dict(request.query_params),
    )

    challenge = handler.handshake(raw)
    if challenge is not None:
        return PlainTextResponse(challenge)

    if not handler.verify(raw):
        logger.warning("Rejected %s webhook: invalid signature", resolved.value)
        return _error(401, "Invalid signature")

    payload = raw.json_body()
    if not isinstance(payload, dict):
        return _error(400, "Invalid JSON body")

    event = handler.normalize(raw, payload)
    background_tasks.add_task(dispatch_webhook_event, event)
    logger.info("Accepted %s webhook %s", resolved.value, event.event_type)
    return {"success": True}


@router.get("/webhooks/{source}")
async def webhook_challenge(source: str, request: Request):
    """Dropbox confirms a webhook URL by GETting it with ``?challenge=``."""
    challenge = request.query_params.get("challenge")
    if ToolSource.parse(source) == ToolSource.DROPBOX and challenge:
        return PlainTextResponse(challenge, headers={"X-Content-Type-Options": "nosniff"})
    return _error(405, "Method not allowed")
