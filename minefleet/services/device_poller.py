# device_poller.py

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, Iterable, List, Union

from minefleet.core.exceptions import TransportFailure
from minefleet.core.patterns.event_bus import AsyncEventBus
from minefleet.mapping import register_map
from minefleet.models.domain import Device, DeviceState, Reading, utcnow
from minefleet.models.messages import ErrorMessage, ReadingMessage, StatusEntry, StatusMessage
from minefleet.protocols.base_protocol_client import BaseProtocolClient
from minefleet.protocols.protocol_factory import ProtocolFactory


ClientFactory = Callable[[Device, float], BaseProtocolClient]
PollResult = Union[ReadingMessage, ErrorMessage]

MAX_TRACKED_ERRORS = 10


class DevicePoller:
    """
    Reads every configured device once per cycle and publishes one event per
    device: a ``ReadingMessage`` on success, an ``ErrorMessage`` otherwise.

    Devices are polled concurrently and each read is bounded by ``timeout``,
    so one dead device never delays the others. The poller also owns the
    per-device bookkeeping the status snapshot is built from.
    """

    def __init__(self,
                 devices: Iterable[Device],
                 bus: AsyncEventBus,
                 client_factory: ClientFactory = ProtocolFactory.for_device,
                 timeout: float = 5.0):
        self.devices: Dict[int, Device] = {d.device_id: d for d in devices}
        self.bus = bus
        self.client_factory = client_factory
        self.timeout = timeout
        self.log = logging.getLogger(self.__class__.__name__)

        self.last_readings: Dict[int, Reading] = {}
        self.connection_status: Dict[int, bool] = {}
        self.device_errors: Dict[int, Deque[str]] = {}
        self.last_seen: Dict[int, datetime] = {}

    async def poll_cycle(self) -> List[PollResult]:
        """Poll all devices concurrently; returns the events published."""
        self.log.debug(f"Polling {len(self.devices)} devices")
        return list(await asyncio.gather(*(self.poll_device(d) for d in self.devices.values())))

    async def poll_device(self, device: Device) -> PollResult:
        """Read one device and publish the outcome."""
        try:
            reading = await asyncio.wait_for(self._read_device(device), timeout=self.timeout)
        except asyncio.TimeoutError:
            event = self._record_failure(device, "timeout", f"No response within {self.timeout}s")
        except TransportFailure as e:
            event = self._record_failure(device, e.error_type, str(e))
        except Exception as e:
            self.log.exception(f"Unexpected error polling device {device.device_id}")
            event = self._record_failure(device, "read_failed", str(e))
        else:
            event = self._record_success(reading)

        self.bus.publish(event)
        return event

    async def _read_device(self, device: Device) -> Reading:
        values = {}
        async with self.client_factory(device, self.timeout) as client:
            for quantity, attr in register_map.polled_quantities(device.kind):
                spec = register_map.lookup(device.kind, quantity)
                registers = await client.read_registers(spec.address, spec.count)
                values[attr] = register_map.decode(spec, registers)
        return Reading(device_id=device.device_id, timestamp=utcnow(), **values)

    def _record_success(self, reading: Reading) -> ReadingMessage:
        device_id = reading.device_id
        self.last_readings[device_id] = reading
        self.connection_status[device_id] = True
        self.last_seen[device_id] = reading.timestamp
        self.device_errors.pop(device_id, None)
        self.log.debug(f"Device {device_id} read: {reading.measured()}")
        return ReadingMessage(reading)

    def _record_failure(self, device: Device, error_type: str, message: str) -> ErrorMessage:
        device_id = device.device_id
        self.connection_status[device_id] = False
        errors = self.device_errors.setdefault(device_id, deque(maxlen=MAX_TRACKED_ERRORS))
        errors.append(message)
        self.log.warning(f"⚠️ Device {device_id} ({device.host}) {error_type}: {message}")
        return ErrorMessage(
            device_id=device_id,
            error_type=error_type,
            message=message,
            data={"host": device.host, "port": device.port},
        )

    def status_snapshot(self) -> StatusMessage:
        """Summarize every configured device for the hub."""
        entries = []
        for device_id in self.devices:
            errors = self.device_errors.get(device_id)
            if errors:
                status = DeviceState.ERROR
            elif self.connection_status.get(device_id):
                status = DeviceState.ONLINE
            else:
                status = DeviceState.OFFLINE
            entries.append(StatusEntry(
                device_id=device_id,
                status=status,
                last_seen=self.last_seen.get(device_id),
                error_message="; ".join(errors) if errors else None,
            ))
        return StatusMessage(tuple(entries))
