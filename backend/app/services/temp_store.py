"""Ephemeral scratch storage with a fixed time-to-live.

Two backends share one contract, ``put(data, ttl) -> id`` and
``get(id) -> TempLookup``:

- ``MemoryTempStore``: a dict in this process, lost on restart
- ``RedisTempStore``: Redis keys with native expiry, shared by all workers

An entry is expired from the instant ``now >= expires_at``. Redis keeps
expired envelopes for a grace period so callers can still tell "expired"
from "never existed".
"""

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Literal, Protocol

from pydantic import BaseModel
from redis import asyncio as aioredis

from app.core.config import settings
from app.core.ids import random_suffix

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp"
REDIS_KEY_PREFIX = "temp-storage:"
EXPIRED_GRACE_MS = 60 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_storage_id(now_ms: int) -> str:
    return f"{TEMP_ID_PREFIX}_{now_ms}_{random_suffix()}"


class TempLookup(BaseModel):
    status: Literal["ok", "expired", "missing"]
    data: Any = None


class TempStore(Protocol):
    async def put(self, data: Any, ttl_seconds: int) -> str: ...

    async def get(self, storage_id: str) -> TempLookup: ...

    async def delete(self, storage_id: str) -> bool: ...


class MemoryTempStore:
    """Process-local TempStore. Expired entries are swept on every put."""

    def __init__(self, clock: Callable[[], int] = _now_ms):
        self.clock = clock
        self._entries: dict[str, tuple[Any, int]] = {}

    async def put(self, data: Any, ttl_seconds: int) -> str:
        now = self.clock()
        storage_id = new_storage_id(now)
        self._entries[storage_id] = (data, now + ttl_seconds * 1000)
        self.cleanup_expired()
        return storage_id

    async def get(self, storage_id: str) -> TempLookup:
        entry = self._entries.get(storage_id)
        if entry is None:
            return TempLookup(status="missing")

        data, expires_at = entry
        if expires_at <= self.clock():
            del self._entries[storage_id]
            return TempLookup(status="expired")
        return TempLookup(status="ok", data=data)

    async def delete(self, storage_id: str) -> bool:
        return self._entries.pop(storage_id, None) is not None

    def cleanup_expired(self) -> int:
        now = self.clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept expired temp entries", extra={"count": len(expired)})
        return len(expired)

    async def ping(self) -> bool:
        return True


class RedisTempStore:
    """TempStore on Redis; survives restarts and is shared across instances."""

    def __init__(self, client: aioredis.Redis, clock: Callable[[], int] = _now_ms):
        self.client = client
        self.clock = clock

    @classmethod
    def from_url(cls, url: str) -> "RedisTempStore":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def put(self, data: Any, ttl_seconds: int) -> str:
        now = self.clock()
        storage_id = new_storage_id(now)
        envelope = json.dumps({"data": data, "expires_at": now + ttl_seconds * 1000})
        await self.client.set(
            REDIS_KEY_PREFIX + storage_id,
            envelope,
            px=ttl_seconds * 1000 + EXPIRED_GRACE_MS,
        )
        return storage_id

    async def get(self, storage_id: str) -> TempLookup:
        raw = await self.client.get(REDIS_KEY_PREFIX + storage_id)
        if raw is None:
            return TempLookup(status="missing")

        try:
            envelope = json.loads(raw)
            expires_at = int(envelope["expires_at"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Unreadable temp storage entry",
                extra={"storage_id": storage_id, "error": str(e)},
            )
            return TempLookup(status="missing")

        if expires_at <= self.clock():
            await self.client.delete(REDIS_KEY_PREFIX + storage_id)
            return TempLookup(status="expired")
        return TempLookup(status="ok", data=envelope.get("data"))

    async def delete(self, storage_id: str) -> bool:
        return bool(await self.client.delete(REDIS_KEY_PREFIX + storage_id))

    async def ping(self) -> bool:
        return bool(await self.client.ping())


_temp_store: MemoryTempStore | RedisTempStore | None = None


def get_temp_store() -> MemoryTempStore | RedisTempStore:
    """FastAPI dependency returning the configured process-wide TempStore."""
    global _temp_store
    if _temp_store is None:
        if settings.TEMP_STORAGE_BACKEND == "redis":
            _temp_store = RedisTempStore.from_url(settings.REDIS_URL)
        else:
            _temp_store = MemoryTempStore()
        logger.info("Temp storage backend ready", extra={"backend": settings.TEMP_STORAGE_BACKEND})
    return _temp_store
