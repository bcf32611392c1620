import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import List, Optional, Set, Union

from minefleet.core.exceptions import ConfigurationError
from minefleet.core.patterns.event_bus import AsyncEventBus
from minefleet.models.domain import Device
from minefleet.protocols.protocol_factory import ProtocolFactory
from minefleet.services.command_executor import CommandExecutor
from minefleet.services.device_poller import ClientFactory, DevicePoller
from minefleet.services.edge_uplink import EdgeUplink
from .state_machine import LifecycleState, LifecycleStateMachine


def load_devices(path: Union[str, Path]) -> List[Device]:
    """Read the site's device inventory from a JSON list of device rows."""
    try:
        rows = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read device inventory {path}: {e}") from e
    if not isinstance(rows, list):
        raise ConfigurationError(f"Device inventory {path} must be a JSON list")

    try:
        devices = [Device.from_row(row) for row in rows]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid device entry in {path}: {e}") from e

    ids = [d.device_id for d in devices]
    if len(ids) != len(set(ids)):
        raise ConfigurationError(f"Duplicate device ids in {path}")
    return devices


class EdgeGateway:
    """Wires poller, executor and uplink for one site and runs them until stopped"""

    def __init__(self,
                 devices: List[Device],
                 hub_url: str,
                 poll_interval: float = 30.0,
                 device_timeout: float = 5.0,
                 reconnect_delay: float = 5.0,
                 queue_size: int = 256,
                 client_factory: ClientFactory = ProtocolFactory.for_device,
                 **uplink_options):
        self.poll_interval = poll_interval
        self.bus = AsyncEventBus(queue_size)
        self.poller = DevicePoller(devices, self.bus, client_factory, device_timeout)
        self.executor = CommandExecutor(devices, self.bus, client_factory, device_timeout)
        self.uplink = EdgeUplink(
            hub_url,
            self.bus,
            self.executor,
            self.poller.status_snapshot,
            reconnect_delay,
            **uplink_options,
        )
        self.state_machine = LifecycleStateMachine("edge")
        self.logger = logging.getLogger(self.__class__.__name__)

        self._tasks: List[asyncio.Task] = []
        self._cycles: Set[asyncio.Task] = set()
        self._stopped = asyncio.Event()
        self._stopping: Optional[asyncio.Task] = None

    async def start(self):
        """Start the uplink and the poll schedule"""
        self.state_machine.transition_to(LifecycleState.STARTING)
        self.logger.info(f"🚀 Starting edge gateway with {len(self.poller.devices)} devices")
        self._tasks = [
            asyncio.create_task(self.uplink.run(), name="uplink"),
            asyncio.create_task(self._poll_loop(), name="poll-loop"),
        ]
        self.state_machine.transition_to(LifecycleState.OPERATIONAL)

    async def _poll_loop(self):
        # A slow cycle never delays the next one; each cycle is its own task
        while self.state_machine.is_running:
            cycle = asyncio.create_task(self.poller.poll_cycle())
            self._cycles.add(cycle)
            cycle.add_done_callback(self._cycles.discard)
            await asyncio.sleep(self.poll_interval)

    async def stop(self):
        """Stop scheduling cycles and close the uplink; in-flight reads are not awaited"""
        if not self.state_machine.transition_to(LifecycleState.STOPPING):
            return
        await self.uplink.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self.state_machine.transition_to(LifecycleState.SHUTDOWN)
        self.logger.info("Edge gateway stopped")
        self._stopped.set()

    def request_stop(self) -> asyncio.Task:
        """Schedule ``stop`` from a signal handler; repeated requests share one task"""
        if self._stopping is None:
            self._stopping = asyncio.ensure_future(self.stop())
        return self._stopping

    async def run_forever(self, install_signal_handlers: bool = True):
        """Start, then block until SIGINT/SIGTERM or ``stop``"""
        await self.start()
        if install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.request_stop)
        await self._stopped.wait()
