# connection_registry.py

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from minefleet.core.exceptions import SiteNotConnected


SiteCallback = Callable[[str], Awaitable[Any]]


class ConnectionRegistry:
    """
    site id -> live channel, at most one per site.

    A channel is anything with ``async send(str)``. A newer registration
    supersedes the older one; unregistering with a stale channel is a no-op,
    so a superseded connection closing late never removes its successor.
    """

    def __init__(self,
                 on_register: Optional[SiteCallback] = None,
                 on_unregister: Optional[SiteCallback] = None):
        self._channels: Dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self.on_register = on_register
        self.on_unregister = on_unregister
        self.log = logging.getLogger(self.__class__.__name__)

    async def register(self, site_id: str, channel) -> Optional[Any]:
        """Bind ``channel`` to the site; returns the channel it replaced, if any."""
        async with self._lock:
            previous = self._channels.get(site_id)
            self._channels[site_id] = channel

        if previous is not None and previous is not channel:
            self.log.warning(f"Site {site_id} reconnected, superseding previous channel")
        else:
            previous = None
        self.log.info(f"🔌 Site {site_id} connected ({len(self._channels)} sites online)")

        if self.on_register:
            await self.on_register(site_id)
        return previous

    async def unregister(self, site_id: str, channel=None) -> bool:
        """Remove the site's channel; with ``channel`` given, only if it is still current."""
        async with self._lock:
            current = self._channels.get(site_id)
            if current is None or (channel is not None and current is not channel):
                return False
            del self._channels[site_id]

        self.log.info(f"Site {site_id} disconnected")
        if self.on_unregister:
            await self.on_unregister(site_id)
        return True

    def lookup(self, site_id: str):
        channel = self._channels.get(site_id)
        if channel is None:
            raise SiteNotConnected(site_id)
        return channel

    def is_connected(self, site_id: str) -> bool:
        return site_id in self._channels

    def connected_sites(self) -> List[str]:
        return sorted(self._channels)
