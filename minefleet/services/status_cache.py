# status_cache.py

import json
import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

import redis.asyncio as redis

from minefleet.models.domain import READING_FIELDS, DeviceStatus, Reading, SiteStatus, ThresholdSet
from minefleet.models.messages import format_timestamp


class RedisStatusCache:
    """
    Key-value mirror of live state for dashboards and the metrics query.

    Layout:
      site:<id>:status               -> JSON site status
      site:<id>:device_status        -> hash, device id -> JSON device status
      site:<id>:metrics              -> hash, device id -> JSON last reading
      site:<id>:thresholds:<device>  -> JSON threshold set, expiring
    """

    def __init__(self, url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None):
        self.client = client or redis.from_url(url, decode_responses=True)
        self.log = logging.getLogger(self.__class__.__name__)

    async def set_site_status(self, status: SiteStatus) -> None:
        await self.client.set(f"site:{status.site_id}:status", json.dumps(status.to_dict()))

    async def get_site_status(self, site_id: str) -> Optional[Dict[str, Any]]:
        return _loads(await self.client.get(f"site:{site_id}:status"))

    async def set_device_status(self, status: DeviceStatus) -> None:
        await self.client.hset(
            f"site:{status.site_id}:device_status",
            str(status.device_id),
            json.dumps(status.to_dict()),
        )

    async def get_device_status(self, site_id: str, device_id: int) -> Optional[Dict[str, Any]]:
        return _loads(await self.client.hget(f"site:{site_id}:device_status", str(device_id)))

    async def set_last_reading(self, site_id: str, reading: Reading) -> None:
        payload = {READING_FIELDS[k]: v for k, v in reading.measured().items()}
        payload["timestamp"] = format_timestamp(reading.timestamp)
        await self.client.hset(f"site:{site_id}:metrics", str(reading.device_id), json.dumps(payload))

    async def get_last_reading(self, site_id: str, device_id: int) -> Optional[Dict[str, Any]]:
        return _loads(await self.client.hget(f"site:{site_id}:metrics", str(device_id)))

    # ---- Thresholds ----
    async def set_thresholds(self, site_id: str, device_id: int,
                             thresholds: ThresholdSet, ex: int = 3600) -> None:
        await self.client.set(_threshold_key(site_id, device_id), json.dumps(asdict(thresholds)), ex=ex)

    async def get_thresholds(self, site_id: str, device_id: int) -> Optional[ThresholdSet]:
        row = _loads(await self.client.get(_threshold_key(site_id, device_id)))
        return ThresholdSet.from_row(row) if row is not None else None

    async def invalidate_thresholds(self, site_id: str, device_id: int) -> None:
        await self.client.delete(_threshold_key(site_id, device_id))

    async def aclose(self) -> None:
        await self.client.aclose()


def _threshold_key(site_id: str, device_id: int) -> str:
    return f"site:{site_id}:thresholds:{device_id}"


def _loads(value):
    if value is None:
        return None
    return json.loads(value)
