import asyncio
import logging
import re
import signal
from typing import Any, AsyncIterable, Awaitable, Callable, Dict, Optional, Type

import websockets

from minefleet.core.exceptions import ConfigurationError, MalformedMessage
from minefleet.models.domain import Alert
from minefleet.models.messages import (
    MESSAGE_TYPES,
    CommandCompleteMessage,
    CommandErrorMessage,
    CommandMessage,
    ErrorMessage,
    ReadingMessage,
    StatusMessage,
    WireMessage,
    decode,
)
from minefleet.services.alert_engine import AlertEngine, ThresholdProvider
from minefleet.services.command_dispatcher import CommandDispatcher
from minefleet.services.connection_registry import ConnectionRegistry
from minefleet.services.hub_service import HubService
from minefleet.services.status_aggregator import ERROR_SEVERITY, StatusAggregator
from .state_machine import LifecycleState, LifecycleStateMachine


SITE_PATH = re.compile(r"^/sites/([A-Za-z0-9_.\-]+)/?$")

Handler = Callable[[str, Any], Awaitable[None]]


class HubServer:
    """
    Cloud hub: accepts one WebSocket channel per site at ``/sites/<site_id>``
    and routes every inbound message to the aggregator, alert engine and stores.

    Messages from one site are handled strictly in arrival order; sites are
    served concurrently by the server's per-connection tasks.
    """

    def __init__(self,
                 record_store,
                 status_cache,
                 host: str = "0.0.0.0",
                 port: int = 8080,
                 threshold_ttl: float = 3600,
                 notifier=None):
        self.host = host
        self.port = port
        self.record_store = record_store
        self.status_cache = status_cache

        thresholds = ThresholdProvider(record_store, threshold_ttl, shared_cache=status_cache)
        self.alert_engine = AlertEngine(thresholds, record_store, notifier)
        self.aggregator = StatusAggregator(self.alert_engine, record_store, status_cache)
        self.registry = ConnectionRegistry(
            on_register=self.aggregator.mark_site_online,
            on_unregister=self.aggregator.mark_site_offline,
        )
        self.dispatcher = CommandDispatcher(self.registry, record_store, self.aggregator.known_devices)
        self.service = HubService(self.aggregator, self.dispatcher, record_store, status_cache)

        self.state_machine = LifecycleStateMachine("hub")
        self.logger = logging.getLogger(self.__class__.__name__)
        self._stopped = asyncio.Event()

        self._handlers: Dict[Type, Handler] = {
            ReadingMessage: self._on_reading,
            ErrorMessage: self._on_error,
            StatusMessage: self._on_status,
            CommandCompleteMessage: self._on_command_outcome,
            CommandErrorMessage: self._on_command_outcome,
            CommandMessage: self._on_unexpected_command,
        }
        missing = [tag for tag, cls in MESSAGE_TYPES.items() if cls not in self._handlers]
        if missing:
            raise ConfigurationError(f"No hub handler for message types: {', '.join(missing)}")

    # ---- Site channel lifecycle ----
    async def handle_site(self, site_id: str, channel, frames: Optional[AsyncIterable] = None):
        """Serve one site channel until it closes."""
        previous = await self.registry.register(site_id, channel)
        if previous is not None and hasattr(previous, "close"):
            await previous.close()
        try:
            async for raw in (frames if frames is not None else channel):
                await self.process_site_message(site_id, raw)
        except websockets.exceptions.ConnectionClosed as e:
            self.logger.warning(f"Site {site_id} channel closed: {e}")
        finally:
            await self.registry.unregister(site_id, channel)

    async def process_site_message(self, site_id: str, raw) -> Optional[WireMessage]:
        """Decode and apply one frame; bad frames are dropped, the channel stays open."""
        try:
            message = decode(raw)
        except MalformedMessage as e:
            self.logger.warning(f"Dropping malformed message from site {site_id}: {e}")
            return None

        try:
            await self._handlers[type(message)](site_id, message)
        except Exception:
            self.logger.exception(f"Error processing {message.TYPE} message from site {site_id}")
        return message

    # ---- Handlers ----
    async def _on_reading(self, site_id: str, message: ReadingMessage):
        reading = message.reading
        await self.aggregator.apply_reading(site_id, reading)
        await self.alert_engine.evaluate_reading(site_id, reading)
        await self.record_store.append_reading(site_id, reading)
        await self.status_cache.set_last_reading(site_id, reading)

    async def _on_error(self, site_id: str, message: ErrorMessage):
        self.logger.warning(f"Device error at site {site_id} device {message.device_id}: "
                            f"{message.error_type}: {message.message}")
        await self.aggregator.apply_error(
            site_id, message.device_id, message.error_type, message.message, message.timestamp
        )
        await self.record_store.append_device_error(
            site_id, message.device_id, message.error_type, message.message, message.timestamp, message.data
        )

    async def _on_status(self, site_id: str, message: StatusMessage):
        site_status = await self.aggregator.apply_status_batch(site_id, message.entries)
        self.logger.info(f"📊 Site {site_id} status: {site_status.status.value} "
                         f"({len(message.entries)} devices reported)")

    async def _on_command_outcome(self, site_id: str, message):
        await self.dispatcher.reconcile(site_id, message)
        if isinstance(message, CommandErrorMessage):
            self.alert_engine.raise_alert(Alert(
                site_id=site_id,
                device_id=message.device_id,
                type="command_failed",
                severity=ERROR_SEVERITY["command_failed"],
                message=message.error,
                timestamp=message.timestamp,
            ))

    async def _on_unexpected_command(self, site_id: str, message: CommandMessage):
        self.logger.warning(f"Ignoring command message sent by site {site_id}")

    # ---- WebSocket server ----
    async def _ws_handler(self, websocket):
        path = websocket.request.path
        match = SITE_PATH.match(path)
        if not match:
            self.logger.warning(f"Rejecting connection on unknown path {path}")
            await websocket.close(code=1008, reason="unknown site path")
            return
        await self.handle_site(match.group(1), websocket)

    async def serve(self, install_signal_handlers: bool = True):
        """Accept site connections until SIGINT/SIGTERM or ``stop``"""
        self.state_machine.transition_to(LifecycleState.STARTING)
        async with websockets.serve(self._ws_handler, self.host, self.port):
            self.state_machine.transition_to(LifecycleState.OPERATIONAL)
            self.logger.info(f"🚀 Hub listening on ws://{self.host}:{self.port}/sites/<site_id>")
            if install_signal_handlers:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, self.stop)
            await self._stopped.wait()
            self.state_machine.transition_to(LifecycleState.STOPPING)

        await self.alert_engine.close()
        self.state_machine.transition_to(LifecycleState.SHUTDOWN)
        self.logger.info("Hub stopped")

    def stop(self):
        self._stopped.set()
