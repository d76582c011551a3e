"""
Shared fixtures: an in-memory SQLite database per test and an ASGI client
wired to it, with provider HTTP routed through ``httpx.MockTransport``.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "")

import uuid
from typing import Callable, Dict, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.jwt import create_token
from database.models import IntegrationCredential
from database.session import build_engine, create_tables
from utils.schemas import SyncStatus, ToolSource

ORG_ID = "11111111-1111-1111-1111-111111111111"
USER_ID = "22222222-2222-2222-2222-222222222222"


@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine("sqlite+aiosqlite://")
    await create_tables(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_token(USER_ID, ORG_ID)}"}


class ProviderStub:
    """Collects provider requests and answers them with a pluggable handler."""

    def __init__(self) -> None:
        self.requests = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            404, json={"error": "unexpected call"}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest_asyncio.fixture
async def client(session_factory, provider, monkeypatch):
    from api.dependencies import get_provider_transport
    from database.session import get_db_session, session_scope
    from main import create_app
    from oauth.state import InMemoryStateStore, OAuthStateManager, set_state_manager

    async def _override_db():
        async with session_scope(session_factory) as session:
            yield session

    monkeypatch.setattr("webhooks.dispatch.async_session_factory", session_factory)
    set_state_manager(OAuthStateManager(InMemoryStateStore()))

    app = create_app()
    app.dependency_overrides[get_db_session] = _override_db
    app.dependency_overrides[get_provider_transport] = lambda: provider.transport

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as http:
        yield http

    set_state_manager(None)


async def add_integration(
    session: AsyncSession,
    source: ToolSource,
    *,
    organization_id: str = ORG_ID,
    access_token: str = "access-token",
    refresh_token: Optional[str] = "refresh-token",
    metadata: Optional[dict] = None,
    is_active: bool = True,
    **fields,
) -> IntegrationCredential:
    integration = IntegrationCredential(
        id=uuid.uuid4(),
        organization_id=uuid.UUID(organization_id),
        source=source,
        access_token=access_token,
        refresh_token=refresh_token,
        scopes=[],
        metadata_=metadata or {},
        is_active=is_active,
        sync_status=fields.pop("sync_status", SyncStatus.IDLE),
        **fields,
    )
    session.add(integration)
    await session.commit()
    return integration
