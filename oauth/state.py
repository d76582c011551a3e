"""
OAuth CSRF state — single-use, short-lived tokens binding a callback to the
(source, organization, user) that started the flow.

Two stores are available, selected by ``config.oauth_state_backend``:

* ``memory`` — a lock-guarded dict; only correct for a single process.
* ``redis``  — ``SET … EX`` on create and ``GETDEL`` on verify, so a token
  is consumed at most once across every instance sharing the Redis.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import redis.asyncio as aioredis
from pydantic import BaseModel, ValidationError

from config.settings import config
from utils.schemas import ToolSource

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class PendingAuthState(BaseModel):
    state: str
    source: ToolSource
    organization_id: str
    user_id: str
    created_at: float


class PendingAuthStateStore(ABC):
    """Storage for pending states.  ``pop`` must be atomic."""

    @abstractmethod
    async def put(self, entry: PendingAuthState, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def pop(self, token: str) -> Optional[PendingAuthState]: ...

    @abstractmethod
    async def sweep(self, older_than: float) -> int: ...


class InMemoryStateStore(PendingAuthStateStore):
    def __init__(self) -> None:
        self._entries: Dict[str, PendingAuthState] = {}
        self._lock = threading.Lock()

    async def put(self, entry: PendingAuthState, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[entry.state] = entry

    async def pop(self, token: str) -> Optional[PendingAuthState]:
        with self._lock:
            return self._entries.pop(token, None)

    async def sweep(self, older_than: float) -> int:
        with self._lock:
            stale = [k for k, v in self._entries.items() if v.created_at < older_than]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


class RedisStateStore(PendingAuthStateStore):
    """Shared store; Redis key expiry does the sweeping."""

    _PREFIX = "oauth:state:"

    def __init__(self, client=None, url: Optional[str] = None) -> None:
        if client is None:
            client = aioredis.from_url(url or config.redis_url, decode_responses=True)
        self._client = client

    async def put(self, entry: PendingAuthState, ttl_seconds: int) -> None:
        await self._client.set(self._PREFIX + entry.state, entry.model_dump_json(), ex=ttl_seconds)

    async def pop(self, token: str) -> Optional[PendingAuthState]:
        raw = await self._client.getdel(self._PREFIX + token)
        if raw is None:
            return None
        try:
            return PendingAuthState.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable OAuth state %s: %s", token[:8], exc)
            return None

    async def sweep(self, older_than: float) -> int:
        return 0


class OAuthStateManager:
    def __init__(
        self,
        store: Optional[PendingAuthStateStore] = None,
        *,
        ttl_seconds: Optional[int] = None,
        clock: Clock = time.time,
    ) -> None:
        self.store = store if store is not None else InMemoryStateStore()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.oauth_state_ttl_seconds
        self._clock = clock
        self._sweeper: Optional[asyncio.Task] = None

    async def create_state(self, source: ToolSource, organization_id: str, user_id: str) -> str:
        """Issue a fresh 256-bit state token for an authorization request."""
        token = secrets.token_hex(32)
        entry = PendingAuthState(
            state=token,
            source=source,
            organization_id=str(organization_id),
            user_id=str(user_id),
            created_at=self._clock(),
        )
        await self.store.put(entry, self.ttl_seconds)
        return token

    async def verify_state(self, token: str) -> Optional[PendingAuthState]:
        """
        Consume ``token``.

        The entry is removed whether or not it is still fresh, so a second
        call with the same token always returns ``None``.
        """
        if not token:
            return None
        entry = await self.store.pop(token)
        if entry is None:
            return None
        if self._clock() - entry.created_at > self.ttl_seconds:
            logger.info("OAuth state for %s expired", entry.source.value)
            return None
        return entry

    async def sweep(self) -> int:
        removed = await self.store.sweep(self._clock() - self.ttl_seconds)
        if removed:
            logger.debug("Swept %d expired OAuth states", removed)
        return removed

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as exc:
                logger.error("OAuth state sweep failed: %s", exc)

    def start_sweeper(self, interval: Optional[float] = None) -> asyncio.Task:
        if self._sweeper is None or self._sweeper.done():
            period = interval if interval is not None else config.oauth_state_sweep_interval_seconds
            self._sweeper = asyncio.create_task(self._sweep_loop(period))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


_manager: Optional[OAuthStateManager] = None


def get_state_manager() -> OAuthStateManager:
    """Process-wide manager, built from ``config.oauth_state_backend`` on first use."""
    global _manager
    if _manager is None:
        if config.oauth_state_backend == "redis":
            _manager = OAuthStateManager(RedisStateStore())
        else:
            _manager = OAuthStateManager(InMemoryStateStore())
        logger.info("OAuth state backend: %s", config.oauth_state_backend)
    return _manager


def set_state_manager(manager: Optional[OAuthStateManager]) -> None:
    global _manager
    _manager = manager
