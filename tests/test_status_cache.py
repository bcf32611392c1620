"""
Tests for the Redis status cache key layout, with an in-memory Redis client
"""
import asyncio
import json
from datetime import datetime, timezone

from minefleet.models.domain import DeviceState, DeviceStatus, Reading, SiteState, SiteStatus, ThresholdSet
from minefleet.services.status_cache import RedisStatusCache

TS = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryRedis:
    """The subset of redis.asyncio.Redis the cache calls, with decoded strings"""

    def __init__(self):
        self.values = {}
        self.expiry = {}
        self.hashes = {}
        self.closed = False

    async def set(self, key, value, ex=None):
        self.values[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.values.pop(key, None) is not None
            self.expiry.pop(key, None)
        return removed

    async def hset(self, name, key, value):
        self.hashes.setdefault(name, {})[key] = value
        return 1

    async def hget(self, name, key):
        return self.hashes.get(name, {}).get(key)

    async def aclose(self):
        self.closed = True


def run(coro_factory):
    client = InMemoryRedis()
    cache = RedisStatusCache(client=client)

    async def scenario():
        return await coro_factory(cache)

    return client, asyncio.run(scenario())


class TestLayout:
    """Test where each kind of state is kept"""

    def test_site_status_key(self):
        status = SiteStatus("s1", SiteState.PARTIAL, True)

        async def scenario(cache):
            await cache.set_site_status(status)
            return await cache.get_site_status("s1")

        client, loaded = run(scenario)
        assert json.loads(client.values["site:s1:status"])["status"] == "partial"
        assert loaded == status.to_dict()

    def test_device_status_hash(self):
        status = DeviceStatus("s1", 2, DeviceState.ERROR, TS, "timeout")

        async def scenario(cache):
            await cache.set_device_status(status)
            return await cache.get_device_status("s1", 2)

        client, loaded = run(scenario)
        assert list(client.hashes["site:s1:device_status"]) == ["2"]
        assert loaded["errorMessage"] == "timeout"

    def test_last_reading_uses_wire_names(self):
        async def scenario(cache):
            await cache.set_last_reading("s1", Reading(1, TS, hash_rate=95.5, temperature=70.0))
            return await cache.get_last_reading("s1", 1), await cache.get_last_reading("s1", 9)

        client, (current, missing) = run(scenario)
        assert current == {"hashRate": 95.5, "temperature": 70.0, "timestamp": "2024-05-01T12:00:00Z"}
        assert missing is None
        assert "1" in client.hashes["site:s1:metrics"]


class TestThresholds:
    """Test the expiring threshold entries"""

    def test_round_trip_with_expiry(self):
        async def scenario(cache):
            await cache.set_thresholds("s1", 1, ThresholdSet(max_temperature=80.0), ex=3600)
            return await cache.get_thresholds("s1", 1)

        client, loaded = run(scenario)
        assert loaded == ThresholdSet(max_temperature=80.0)
        assert client.expiry["site:s1:thresholds:1"] == 3600

    def test_invalidate(self):
        async def scenario(cache):
            await cache.set_thresholds("s1", 1, ThresholdSet())
            await cache.invalidate_thresholds("s1", 1)
            return await cache.get_thresholds("s1", 1)

        client, loaded = run(scenario)
        assert loaded is None
        assert client.values == {}

    def test_aclose(self):
        async def scenario(cache):
            await cache.aclose()

        client, _ = run(scenario)
        assert client.closed
