# alert_engine.py

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from minefleet.core.patterns.ttl_cache import TtlCache
from minefleet.models.domain import DEFAULT_THRESHOLDS, Alert, Reading, ThresholdSet
from minefleet.rules import ThresholdRule, ThresholdRuleFactory


class ThresholdProvider:
    """
    Per-device thresholds, looked up in order:
    in-process TTL cache, shared status cache, stored configuration, defaults.
    """

    def __init__(self,
                 record_store,
                 ttl: float = 3600,
                 clock: Callable[[], float] = time.monotonic,
                 shared_cache=None):
        self.record_store = record_store
        self.shared_cache = shared_cache
        self.ttl = ttl
        self.cache: TtlCache[ThresholdSet] = TtlCache(ttl, clock)
        self.log = logging.getLogger(self.__class__.__name__)

    async def get(self, site_id: str, device_id: int) -> ThresholdSet:
        key = (site_id, device_id)
        thresholds = self.cache.get(key)
        if thresholds is not None:
            return thresholds

        thresholds = await self._from_shared_cache(site_id, device_id)
        if thresholds is not None:
            self.cache.set(key, thresholds)
            return thresholds

        try:
            row = await self.record_store.get_device_configuration(site_id, device_id)
        except Exception as e:
            # Not cached, so the next reading retries the store
            self.log.error(f"Failed to load thresholds for {site_id}/{device_id}: {e}")
            return DEFAULT_THRESHOLDS

        thresholds = ThresholdSet.from_row(row) if row else DEFAULT_THRESHOLDS
        self.cache.set(key, thresholds)
        await self._to_shared_cache(site_id, device_id, thresholds)
        return thresholds

    async def invalidate(self, site_id: str, device_id: int) -> None:
        """Forget cached thresholds after the stored configuration changed."""
        self.cache.invalidate((site_id, device_id))
        if self.shared_cache is not None:
            try:
                await self.shared_cache.invalidate_thresholds(site_id, device_id)
            except Exception as e:
                self.log.error(f"Failed to invalidate cached thresholds for {site_id}/{device_id}: {e}")

    async def _from_shared_cache(self, site_id: str, device_id: int) -> Optional[ThresholdSet]:
        if self.shared_cache is None:
            return None
        try:
            return await self.shared_cache.get_thresholds(site_id, device_id)
        except Exception as e:
            self.log.warning(f"Threshold cache read failed for {site_id}/{device_id}: {e}")
            return None

    async def _to_shared_cache(self, site_id: str, device_id: int, thresholds: ThresholdSet):
        if self.shared_cache is None:
            return
        try:
            await self.shared_cache.set_thresholds(site_id, device_id, thresholds, ex=int(self.ttl))
        except Exception as e:
            self.log.warning(f"Threshold cache write failed for {site_id}/{device_id}: {e}")


class LogNotifier:
    """Delivers alerts to the application log."""

    def __init__(self):
        self.log = logging.getLogger(self.__class__.__name__)

    async def notify(self, alert: Alert) -> None:
        self.log.warning(
            f"🚨 [{alert.severity.value}] {alert.type} at site {alert.site_id}"
            f" device {alert.device_id}: {alert.message}"
        )


class AlertEngine:
    """
    Evaluates readings against thresholds and delivers alerts.

    Delivery (persist, then notify) happens off the ingestion path through
    one queue and one consumer task per site, so a site's alerts reach the
    store and the notifier in the order they were raised. ``drain`` waits
    until every queue is empty.
    """

    def __init__(self,
                 thresholds: ThresholdProvider,
                 record_store,
                 notifier=None,
                 rules: Optional[List[ThresholdRule]] = None):
        self.thresholds = thresholds
        self.record_store = record_store
        self.notifier = notifier or LogNotifier()
        self.rules = rules if rules is not None else ThresholdRuleFactory.create_rules()
        self.log = logging.getLogger(self.__class__.__name__)
        self._queues: Dict[str, asyncio.Queue] = {}
        self._workers: Dict[str, asyncio.Task] = {}

    async def evaluate_reading(self, site_id: str, reading: Reading) -> List[Alert]:
        """Check every rule; each breach raises exactly one alert."""
        thresholds = await self.thresholds.get(site_id, reading.device_id)
        alerts = []
        for rule in self.rules:
            alert = rule.evaluate(site_id, reading, thresholds)
            if alert is not None:
                alerts.append(self.raise_alert(alert))
        return alerts

    def raise_alert(self, alert: Alert) -> Alert:
        """Queue ``alert`` for delivery; must be called from the event loop."""
        queue = self._queues.get(alert.site_id)
        if queue is None:
            queue = self._queues[alert.site_id] = asyncio.Queue()
            self._workers[alert.site_id] = asyncio.create_task(
                self._process_alerts(queue), name=f"alerts-{alert.site_id}"
            )
        queue.put_nowait(alert)
        return alert

    async def _process_alerts(self, queue: asyncio.Queue):
        while True:
            alert = await queue.get()
            try:
                await self._deliver(alert)
            finally:
                queue.task_done()

    async def _deliver(self, alert: Alert):
        try:
            await self.record_store.append_alert(alert)
        except Exception as e:
            self.log.error(f"Failed to store {alert.type} alert for site {alert.site_id}: {e}")
        try:
            await self.notifier.notify(alert)
        except Exception as e:
            self.log.error(f"Failed to notify {alert.type} alert for site {alert.site_id}: {e}")

    async def drain(self):
        """Wait until every queued alert has been delivered."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def close(self):
        """Deliver what is queued, then stop the per-site workers."""
        await self.drain()
        for worker in self._workers.values():
            worker.cancel()
        await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._queues.clear()
        self._workers.clear()
