# command_executor.py

import asyncio
import logging
from typing import Dict, Iterable, List, Tuple, Union

from minefleet.core.exceptions import DeviceNotFound, TransportFailure, UnsupportedOperation
from minefleet.core.patterns.event_bus import AsyncEventBus
from minefleet.mapping import register_map
from minefleet.mapping.register_map import Quantity, RegisterSpec
from minefleet.models.domain import Command, CommandType, Device
from minefleet.models.messages import CommandCompleteMessage, CommandErrorMessage
from minefleet.protocols.protocol_factory import ProtocolFactory
from minefleet.services.device_poller import ClientFactory


CommandResult = Union[CommandCompleteMessage, CommandErrorMessage]

# updateConfig parameter name -> control register it is written to
CONFIG_PARAMETERS: Tuple[Tuple[str, Quantity], ...] = (
    ("frequency", Quantity.FREQUENCY_SET),
    ("fanSpeed", Quantity.FAN_SPEED_SET),
    ("powerLimit", Quantity.POWER_LIMIT),
)


class CommandExecutor:
    """
    Translates hub commands into register writes on a local device.

    ``execute`` raises ``DeviceNotFound`` or ``UnsupportedOperation`` before
    any connection is opened. Once the writes start, the outcome is published
    on the bus as ``commandComplete`` or ``commandError`` instead of raised.
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

    def plan(self, command: Command) -> Tuple[Device, List[Tuple[RegisterSpec, float]]]:
        """Resolve the device and the registers a command writes."""
        device = self.devices.get(command.device_id)
        if device is None:
            raise DeviceNotFound(command.device_id)

        try:
            command_type = CommandType(command.command_type)
        except ValueError:
            raise UnsupportedOperation(f"Unknown command type: {command.command_type}")

        if command_type == CommandType.RESTART:
            writes = [(register_map.lookup(device.kind, Quantity.RESTART), register_map.RESTART_TRIGGER)]
        elif command_type == CommandType.SHUTDOWN:
            writes = [(register_map.lookup(device.kind, Quantity.SHUTDOWN), register_map.SHUTDOWN_TRIGGER)]
        else:
            writes = []
            for name, quantity in CONFIG_PARAMETERS:
                value = command.parameters.get(name)
                if value is not None:
                    writes.append((register_map.lookup(device.kind, quantity), value))
        return device, writes

    async def execute(self, command: Command) -> CommandResult:
        """Run a command; returns the outcome event it published."""
        device, writes = self.plan(command)
        self.log.info(f"🔧 Executing {command.command_type} on device {device.device_id} ({command.command_id})")

        try:
            await asyncio.wait_for(self._write(device, writes), timeout=self.timeout)
        except asyncio.TimeoutError:
            event = self._failed(command, f"No response within {self.timeout}s")
        except (TransportFailure, ValueError, TypeError) as e:
            event = self._failed(command, str(e))
        else:
            self.log.info(f"✅ Command {command.command_type} completed on device {device.device_id}")
            event = CommandCompleteMessage(
                device_id=command.device_id,
                command_id=command.command_id,
                command=command.describe(),
            )

        self.bus.publish(event)
        return event

    async def _write(self, device: Device, writes: List[Tuple[RegisterSpec, float]]):
        # A value that does not encode fails the command before anything is written
        encoded = [(spec.address, register_map.encode(spec, value)) for spec, value in writes]
        async with self.client_factory(device, self.timeout) as client:
            for address, words in encoded:
                await client.write_registers(address, words)

    def _failed(self, command: Command, error: str) -> CommandErrorMessage:
        self.log.error(f"❌ Command {command.command_type} failed on device {command.device_id}: {error}")
        return CommandErrorMessage(
            device_id=command.device_id,
            command_id=command.command_id,
            command=command.describe(),
            error=error,
        )
