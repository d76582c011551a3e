"""
Background processing of verified webhook events.

The HTTP response goes out before this runs, so failures here are logged
rather than returned to the provider.
"""

from __future__ import annotations

import logging

from database.session import async_session_factory, session_scope
from webhooks.base import WebhookEvent
from webhooks.registry import WebhookRegistry

logger = logging.getLogger(__name__)


async def dispatch_webhook_event(event: WebhookEvent) -> int:
    handler = WebhookRegistry.get_handler(event.source)
    if handler is None:
        logger.warning("No webhook handler for %s", event.source.value)
        return 0

    try:
        async with session_scope(async_session_factory) as session:
            written = await handler.handle(event, session)
    except Exception:
        logger.exception("Failed to process %s webhook %s", event.source.value, event.event_type)
        return 0

    logger.info(
        "Processed %s webhook %s (%d activity rows)", event.source.value, event.event_type, written
    )
    return written
