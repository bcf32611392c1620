# status_aggregator.py

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from minefleet.models.domain import (
    Alert,
    DeviceState,
    DeviceStatus,
    Reading,
    Severity,
    SiteState,
    SiteStatus,
    utcnow,
)
from minefleet.models.messages import StatusEntry


# Device error type -> alert severity
ERROR_SEVERITY: Dict[str, Severity] = {
    "connection_failed": Severity.HIGH,
    "command_failed": Severity.HIGH,
}
DEFAULT_ERROR_SEVERITY = Severity.MEDIUM


def derive_site_state(states: Iterable[DeviceState]) -> SiteState:
    """online when every device is online, offline when every one is offline, else partial."""
    states = list(states)
    if not states or all(s == DeviceState.OFFLINE for s in states):
        return SiteState.OFFLINE
    if all(s == DeviceState.ONLINE for s in states):
        return SiteState.ONLINE
    return SiteState.PARTIAL


class StatusAggregator:
    """
    The hub's authoritative view of device and site health.

    Updates for one site are serialized by a per-site lock; different sites
    never wait on each other. Every change is mirrored to the status cache,
    and site-level changes to the record store.
    """

    def __init__(self, alert_engine, record_store, status_cache):
        self.alert_engine = alert_engine
        self.record_store = record_store
        self.status_cache = status_cache
        self.log = logging.getLogger(self.__class__.__name__)

        self._devices: Dict[str, Dict[int, DeviceStatus]] = defaultdict(dict)
        self._connected: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ---- Event application ----
    async def apply_reading(self, site_id: str, reading: Reading) -> DeviceStatus:
        """A fresh reading marks the device online and clears its error."""
        async with self._locks[site_id]:
            status = self._device(site_id, reading.device_id)
            status.status = DeviceState.ONLINE
            status.last_seen = utcnow()
            status.error_message = None
            await self._mirror_device(status)
            return replace(status)

    async def apply_error(self, site_id: str, device_id: int, error_type: str,
                          message: str, timestamp: Optional[datetime] = None) -> DeviceStatus:
        """Mark the device in error and raise a device_error alert."""
        async with self._locks[site_id]:
            status = self._device(site_id, device_id)
            status.status = DeviceState.ERROR
            status.last_seen = utcnow()
            status.error_message = message
            await self._mirror_device(status)
            snapshot = replace(status)

        self.alert_engine.raise_alert(Alert(
            site_id=site_id,
            device_id=device_id,
            type="device_error",
            severity=ERROR_SEVERITY.get(error_type, DEFAULT_ERROR_SEVERITY),
            message=message,
            timestamp=timestamp or utcnow(),
        ))
        return snapshot

    async def apply_status_batch(self, site_id: str, entries: Iterable[StatusEntry]) -> SiteStatus:
        """Overwrite listed devices from a snapshot, then persist the derived site status."""
        newly_failed = []
        async with self._locks[site_id]:
            for entry in entries:
                status = self._device(site_id, entry.device_id)
                if entry.status == DeviceState.ERROR and status.status != DeviceState.ERROR:
                    newly_failed.append(entry)
                status.status = entry.status
                status.last_seen = entry.last_seen
                status.error_message = entry.error_message
                await self._mirror_device(status)
            site_status = self._site_status(site_id)
            await self._mirror_site(site_status)

        for entry in newly_failed:
            self.alert_engine.raise_alert(Alert(
                site_id=site_id,
                device_id=entry.device_id,
                type="device_error",
                severity=DEFAULT_ERROR_SEVERITY,
                message=entry.error_message or f"Device {entry.device_id} reported error status",
            ))
        return site_status

    async def mark_site_online(self, site_id: str) -> SiteStatus:
        """The site has a live channel again; status derives from its devices."""
        async with self._locks[site_id]:
            self._connected.add(site_id)
            site_status = self._site_status(site_id)
            await self._mirror_site(site_status)
            return site_status

    async def mark_site_offline(self, site_id: str) -> SiteStatus:
        """Channel gone: the site reads offline until a channel registers again."""
        async with self._locks[site_id]:
            self._connected.discard(site_id)
            site_status = self._site_status(site_id)
            await self._mirror_site(site_status)

        self.log.warning(f"Site {site_id} marked offline")
        self.alert_engine.raise_alert(Alert(
            site_id=site_id,
            device_id=None,
            type="site_offline",
            severity=Severity.HIGH,
            message=f"Site {site_id} disconnected",
        ))
        return site_status

    # ---- Queries ----
    def get_device_status(self, site_id: str, device_id: int) -> Optional[DeviceStatus]:
        status = self._devices.get(site_id, {}).get(device_id)
        return replace(status) if status else None

    def get_site_status(self, site_id: str) -> SiteStatus:
        return self._site_status(site_id)

    def known_devices(self, site_id: str) -> Set[int]:
        return set(self._devices.get(site_id, {}))

    # ---- Internals ----
    def _device(self, site_id: str, device_id: int) -> DeviceStatus:
        devices = self._devices[site_id]
        status = devices.get(device_id)
        if status is None:
            status = devices[device_id] = DeviceStatus(site_id, device_id, DeviceState.OFFLINE)
        return status

    def _site_status(self, site_id: str) -> SiteStatus:
        devices = tuple(replace(d) for d in self._devices.get(site_id, {}).values())
        connected = site_id in self._connected
        state = derive_site_state(d.status for d in devices) if connected else SiteState.OFFLINE
        return SiteStatus(site_id=site_id, status=state, connected=connected, devices=devices)

    async def _mirror_device(self, status: DeviceStatus):
        try:
            await self.status_cache.set_device_status(status)
        except Exception as e:
            self.log.error(f"Failed to cache status of device {status.device_id}: {e}")

    async def _mirror_site(self, site_status: SiteStatus):
        try:
            await self.status_cache.set_site_status(site_status)
        except Exception as e:
            self.log.error(f"Failed to cache status of site {site_status.site_id}: {e}")
        try:
            await self.record_store.update_site_status(site_status.site_id, site_status.status, utcnow())
        except Exception as e:
            self.log.error(f"Failed to persist status of site {site_status.site_id}: {e}")
