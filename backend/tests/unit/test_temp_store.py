"""Unit tests for the TTL scratch stores."""

import json
from unittest.mock import AsyncMock

import pytest

from app.services.temp_store import (
    EXPIRED_GRACE_MS,
    REDIS_KEY_PREFIX,
    MemoryTempStore,
    RedisTempStore,
)


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


@pytest.mark.asyncio
class TestMemoryTempStore:
    """Test expiry semantics of the in-process store."""

    async def test_put_and_get(self):
        clock = FakeClock()
        store = MemoryTempStore(clock=clock)

        storage_id = await store.put({"draft": {"rating": 4}}, ttl_seconds=60)

        assert storage_id.startswith(f"temp_{clock.now_ms}_")
        lookup = await store.get(storage_id)
        assert lookup.status == "ok"
        assert lookup.data == {"draft": {"rating": 4}}

    async def test_expiry_boundary(self):
        clock = FakeClock()
        store = MemoryTempStore(clock=clock)
        storage_id = await store.put("payload", ttl_seconds=60)

        clock.now_ms += 60_000 - 1
        assert (await store.get(storage_id)).status == "ok"

        clock.now_ms += 1
        assert (await store.get(storage_id)).status == "expired"

    async def test_expired_entry_is_removed_after_read(self):
        clock = FakeClock()
        store = MemoryTempStore(clock=clock)
        storage_id = await store.put("payload", ttl_seconds=1)

        clock.now_ms += 5_000
        assert (await store.get(storage_id)).status == "expired"
        assert (await store.get(storage_id)).status == "missing"

    async def test_unknown_id(self):
        assert (await MemoryTempStore().get("temp_1_nothing")).status == "missing"

    async def test_put_sweeps_expired_entries(self):
        clock = FakeClock()
        store = MemoryTempStore(clock=clock)
        stale = await store.put("old", ttl_seconds=1)

        clock.now_ms += 2_000
        await store.put("new", ttl_seconds=60)

        assert (await store.get(stale)).status == "missing"

    async def test_delete(self):
        store = MemoryTempStore()
        storage_id = await store.put([1, 2, 3], ttl_seconds=60)

        assert await store.delete(storage_id) is True
        assert await store.delete(storage_id) is False


@pytest.mark.asyncio
class TestRedisTempStore:
    """Test the Redis backend against a mocked client."""

    async def test_put_sets_ttl_with_grace(self):
        client = AsyncMock()
        store = RedisTempStore(client, clock=FakeClock(1_000))

        storage_id = await store.put({"a": 1}, ttl_seconds=10)

        client.set.assert_awaited_once()
        key, envelope = client.set.call_args.args
        assert key == REDIS_KEY_PREFIX + storage_id
        assert json.loads(envelope) == {"data": {"a": 1}, "expires_at": 11_000}
        assert client.set.call_args.kwargs["px"] == 10_000 + EXPIRED_GRACE_MS

    async def test_get_live_entry(self):
        client = AsyncMock()
        client.get.return_value = json.dumps({"data": "hello", "expires_at": 5_000})
        store = RedisTempStore(client, clock=FakeClock(4_999))

        lookup = await store.get("temp_1_abc")

        assert lookup.status == "ok"
        assert lookup.data == "hello"

    async def test_get_expired_entry_in_grace_window(self):
        client = AsyncMock()
        client.get.return_value = json.dumps({"data": "hello", "expires_at": 5_000})
        store = RedisTempStore(client, clock=FakeClock(5_000))

        lookup = await store.get("temp_1_abc")

        assert lookup.status == "expired"
        client.delete.assert_awaited_once_with(REDIS_KEY_PREFIX + "temp_1_abc")

    async def test_get_missing_key(self):
        client = AsyncMock()
        client.get.return_value = None

        assert (await RedisTempStore(client).get("temp_1_abc")).status == "missing"

    async def test_unreadable_envelope_reads_as_missing(self):
        client = AsyncMock()
        client.get.return_value = "not json"

        assert (await RedisTempStore(client).get("temp_1_abc")).status == "missing"
