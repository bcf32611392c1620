# edge_uplink.py

import asyncio
import logging
from typing import Any, Callable, Optional, Set

import websockets

from minefleet.core.exceptions import DeviceNotFound, MalformedMessage, UnsupportedOperation
from minefleet.core.patterns.event_bus import AsyncEventBus
from minefleet.core.patterns.state_machine import StateMachine, UplinkState
from minefleet.models.domain import Command
from minefleet.models.messages import (
    CommandErrorMessage,
    CommandMessage,
    StatusMessage,
    decode,
    encode,
)
from minefleet.services.command_executor import CommandExecutor


class EdgeUplink:
    """
    The edge gateway's persistent channel to the cloud hub.

    - Sends a status snapshot every time a connection is established
    - Forwards bus events in publish order while connected; an event whose
      send failed goes out first on the next connection
    - Runs inbound commands as independent tasks
    - Reconnects after a fixed delay, forever, until ``stop`` is called
    """

    def __init__(self,
                 url: str,
                 bus: AsyncEventBus,
                 executor: CommandExecutor,
                 snapshot: Callable[[], StatusMessage],
                 reconnect_delay: float = 5.0,
                 connect: Callable[[str], Any] = websockets.connect,
                 sleep: Callable[[float], Any] = asyncio.sleep):
        self.url = url
        self.bus = bus
        self.executor = executor
        self.snapshot = snapshot
        self.reconnect_delay = reconnect_delay
        self._connect = connect
        self._sleep = sleep

        self.state_machine = StateMachine()
        self.reconnect_attempts = 0
        self.log = logging.getLogger(self.__class__.__name__)

        self._running = False
        self._websocket = None
        # Taken off the bus but not yet delivered to the hub
        self._unsent: Optional[Any] = None
        self._command_tasks: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self.state_machine.state == UplinkState.CONNECTED

    async def run(self):
        """Connect, serve the session, and reconnect until stopped."""
        self._running = True
        while self._running:
            self.state_machine.transition(UplinkState.CONNECTING)
            try:
                async with self._connect(self.url) as websocket:
                    self._websocket = websocket
                    self.state_machine.transition(UplinkState.CONNECTED)
                    self.log.info(f"✅ Connected to cloud hub at {self.url}")
                    await self._session(websocket)
                self.log.warning("Disconnected from cloud hub")
            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
                self.log.warning(f"⚠️ Cloud connection lost: {e}")
            except Exception:
                self.log.exception("Unexpected uplink failure")
            finally:
                self._websocket = None

            if not self._running:
                break
            self.state_machine.transition(UplinkState.RECONNECTING)
            self.log.info(f"🔄 Reconnecting in {self.reconnect_delay}s")
            await self._sleep(self.reconnect_delay)
            self.reconnect_attempts += 1

        self.state_machine.transition(UplinkState.SHUTDOWN)

    async def stop(self):
        """Stop reconnecting and close the live connection, if any."""
        self._running = False
        self.state_machine.transition(UplinkState.SHUTDOWN)
        if self._websocket is not None:
            await self._websocket.close()

    async def _session(self, websocket):
        await websocket.send(encode(self.snapshot()))

        receive = asyncio.create_task(self._receive_commands(websocket))
        forward = asyncio.create_task(self._forward_events(websocket))
        done, pending = await asyncio.wait({receive, forward}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            task.result()

    async def _forward_events(self, websocket):
        while True:
            if self._unsent is None:
                self._unsent = await self.bus.next_event()
            await websocket.send(encode(self._unsent))
            self._unsent = None

    async def _receive_commands(self, websocket):
        async for raw in websocket:
            try:
                message = decode(raw)
            except MalformedMessage as e:
                self.log.warning(f"Dropping malformed message from hub: {e}")
                continue

            if not isinstance(message, CommandMessage):
                self.log.warning(f"Ignoring unexpected {message.TYPE} message from hub")
                continue

            self.log.info(f"📥 Received command: {message.command.command_type} "
                          f"for device {message.command.device_id}")
            task = asyncio.create_task(self._run_command(message.command))
            self._command_tasks.add(task)
            task.add_done_callback(self._command_tasks.discard)

    async def _run_command(self, command: Command):
        try:
            await self.executor.execute(command)
        except (DeviceNotFound, UnsupportedOperation) as e:
            self.log.error(f"❌ Rejected command {command.command_id}: {e}")
            self.bus.publish(CommandErrorMessage(
                device_id=command.device_id,
                command_id=command.command_id,
                command=command.describe(),
                error=str(e),
            ))
