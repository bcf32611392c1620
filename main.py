#!/usr/bin/env python3
import asyncio, sys
from config.logging_config import configure
from config.app_config import settings
from minefleet.orchestration import EdgeGateway, HubServer, load_devices
from minefleet.services import RedisStatusCache, SqlRecordStore

USAGE = "usage: main.py edge|hub"

async def run_edge():
    devices = load_devices(settings.DEVICES_FILE)
    gateway = EdgeGateway(
        devices,
        settings.site_url(),
        poll_interval=settings.POLL_INTERVAL,
        device_timeout=settings.DEVICE_TIMEOUT,
        reconnect_delay=settings.RECONNECT_DELAY,
        queue_size=settings.EVENT_QUEUE_SIZE,
    )
    await gateway.run_forever()

async def run_hub():
    store = SqlRecordStore(settings.DATABASE_URL)
    store.create_schema()
    cache = RedisStatusCache(settings.REDIS_URL)
    server = HubServer(
        store,
        cache,
        host=settings.HUB_HOST,
        port=settings.HUB_PORT,
        threshold_ttl=settings.THRESHOLD_CACHE_TTL,
    )
    try:
        await server.serve()
    finally:
        await cache.aclose()
        store.dispose()

async def async_main(role: str):
    configure()
    if role == "edge":
        await run_edge()
    else:
        await run_hub()

if __name__ == "__main__":
    if len(sys.argv) != 2 or sys.argv[1] not in ("edge", "hub"):
        sys.exit(USAGE)
    try:
        asyncio.run(async_main(sys.argv[1]))
    except KeyboardInterrupt:
        sys.exit("🌙  graceful shutdown")
