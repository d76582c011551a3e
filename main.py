"""
Workspace hygiene connector service — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.archives import router as archives_router
from api.integrations import router as integrations_router
from api.middleware import register_exception_handlers, register_middleware
from api.oauth import router as oauth_router
from api.webhooks import router as webhooks_router
from config.settings import config
from connectors.encryption import is_encryption_enabled
from database.session import create_tables
from oauth.state import get_state_manager

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "hpack"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Workspace Hygiene Connectors",
        version="1.0.0",
        description="OAuth, token lifecycle, webhooks and restore for third-party workspace tools.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(oauth_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")
    app.include_router(integrations_router, prefix="/api/v1")
    app.include_router(archives_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup():
        if config.database_auto_create:
            await create_tables()
        if not is_encryption_enabled():
            logger.warning("Integration tokens are stored without encryption.")
        get_state_manager().start_sweeper()
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await get_state_manager().stop_sweeper()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
