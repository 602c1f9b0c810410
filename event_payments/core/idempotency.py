"""
Keyed record store with per-entry TTL.

Backs the payment-intent lock, request-level payment deduplication and
webhook event deduplication. Two backends:
1. In-memory dict (single process, lazy expiry plus explicit sweep)
2. Redis (SET NX PX, shared across instances)
"""
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
import structlog

from event_payments.config import Settings

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]
Clock = Callable[[], float]


class IdempotencyStore(ABC):
    """Interface shared by the store backends. TTLs are in seconds."""

    @abstractmethod
    async def add(self, key: str, record: Record, ttl_seconds: float) -> bool:
        """Insert the record only if no live entry exists. Returns True if inserted."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Record]:
        ...

    @abstractmethod
    async def set(self, key: str, record: Record, ttl_seconds: float) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def sweep(self) -> int:
        """Remove expired entries and return how many were removed."""

    @abstractmethod
    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        return None


class InMemoryIdempotencyStore(IdempotencyStore):
    """
    Process-local store.

    Check-and-insert never awaits between the check and the write, so it is
    atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Record]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _live(self, key: str) -> Optional[Record]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, record = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return None
        return record

    async def add(self, key: str, record: Record, ttl_seconds: float) -> bool:
        if self._live(key) is not None:
            return False
        self._entries[key] = (self._clock() + ttl_seconds, dict(record))
        return True

    async def get(self, key: str) -> Optional[Record]:
        record = self._live(key)
        return dict(record) if record is not None else None

    async def set(self, key: str, record: Record, ttl_seconds: float) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, dict(record))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now > expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def ping(self) -> bool:
        return True


class RedisIdempotencyStore(IdempotencyStore):
    """Redis-backed store. Expiry is native, so sweeping is a no-op."""

    def __init__(self, redis_client: aioredis.Redis):
        self.redis_client = redis_client

    @staticmethod
    def _ttl_ms(ttl_seconds: float) -> int:
        return max(1, int(ttl_seconds * 1000))

    async def add(self, key: str, record: Record, ttl_seconds: float) -> bool:
        inserted = await self.redis_client.set(
            key, json.dumps(record), nx=True, px=self._ttl_ms(ttl_seconds)
        )
        return bool(inserted)

    async def get(self, key: str) -> Optional[Record]:
        raw = await self.redis_client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, record: Record, ttl_seconds: float) -> None:
        await self.redis_client.set(key, json.dumps(record), px=self._ttl_ms(ttl_seconds))

    async def delete(self, key: str) -> None:
        await self.redis_client.delete(key)

    async def sweep(self) -> int:
        return 0

    async def ping(self) -> bool:
        return bool(await self.redis_client.ping())

    async def close(self) -> None:
        await self.redis_client.aclose()


def build_store(settings: Settings, clock: Clock = time.time) -> IdempotencyStore:
    """
    Create the store configured by ``idempotency_backend``.

    Args:
        settings: Application settings
        clock: Time source for the in-memory backend

    Returns:
        IdempotencyStore: Configured backend
    """
    if settings.idempotency_backend == "redis":
        client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("idempotency_store_initialized", backend="redis")
        return RedisIdempotencyStore(client)

    logger.info("idempotency_store_initialized", backend="memory")
    return InMemoryIdempotencyStore(clock=clock)
