# command_dispatcher.py

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Dict, Optional, Set, Union

from minefleet.core.exceptions import DeviceNotFound, TransportFailure, UnsupportedOperation
from minefleet.models.domain import Command, CommandLog, CommandLogStatus, CommandType, utcnow
from minefleet.models.messages import CommandCompleteMessage, CommandErrorMessage, CommandMessage, encode
from minefleet.services.connection_registry import ConnectionRegistry


class CommandDispatcher:
    """Routes operator commands to the owning site's live channel and logs them."""

    def __init__(self,
                 registry: ConnectionRegistry,
                 record_store,
                 known_devices: Optional[Callable[[str], Set[int]]] = None):
        self.registry = registry
        self.record_store = record_store
        self.known_devices = known_devices
        self.log = logging.getLogger(self.__class__.__name__)
        # command id -> set once its log entry has been written (or has failed to be)
        self._logging: Dict[str, asyncio.Event] = {}

    async def dispatch(self, site_id: str, command: Command) -> CommandLog:
        """
        Send ``command`` to the site and record it as sent.

        A store failure after the frame went out is logged, not raised: the
        command is already on its way and the caller gets the entry anyway.

        Raises:
            UnsupportedOperation: unknown command type or malformed parameters
            SiteNotConnected: the site has no live channel
            DeviceNotFound: the site reported its devices and this is not one of them
            TransportFailure: the channel refused the frame
        """
        self._validate(command)
        channel = self.registry.lookup(site_id)

        known = self.known_devices(site_id) if self.known_devices else set()
        if known and command.device_id not in known:
            raise DeviceNotFound(command.device_id)

        command = replace(command, site_id=site_id)
        entry = CommandLog(
            command_id=command.command_id,
            site_id=site_id,
            device_id=command.device_id,
            command_type=command.command_type,
            parameters=dict(command.parameters),
            status=CommandLogStatus.SENT,
            timestamp=utcnow(),
        )

        written = self._logging[command.command_id] = asyncio.Event()
        try:
            try:
                await channel.send(encode(CommandMessage(command)))
            except Exception as e:
                raise TransportFailure(f"Failed to send command to site {site_id}: {e}") from e

            self.log.info(f"📤 Sent {command.command_type} to site {site_id} device {command.device_id}"
                          f" ({command.command_id})")
            try:
                await self.record_store.append_command_log(entry)
            except Exception as e:
                self.log.error(f"Command {command.command_id} sent but not logged: {e}")
        finally:
            written.set()
            self._logging.pop(command.command_id, None)
        return entry

    async def reconcile(self, site_id: str,
                        outcome: Union[CommandCompleteMessage, CommandErrorMessage]) -> bool:
        """Close the log entry a command outcome refers to; False when none matches."""
        written = self._logging.get(outcome.command_id)
        if written is not None:
            # The edge answered before the sent entry reached the store
            await written.wait()

        if isinstance(outcome, CommandErrorMessage):
            status, error = CommandLogStatus.FAILED, outcome.error
            self.log.error(f"❌ Command {outcome.command_id} failed at site {site_id}: {outcome.error}")
        else:
            status, error = CommandLogStatus.COMPLETED, None
            self.log.info(f"✅ Command {outcome.command_id} completed at site {site_id}")

        updated = await self.record_store.update_command_log_status(outcome.command_id, status, error)
        if not updated:
            self.log.warning(f"No command log entry for {outcome.command_id} from site {site_id}")
        return updated

    def _validate(self, command: Command):
        try:
            CommandType(command.command_type)
        except ValueError:
            raise UnsupportedOperation(f"Unknown command type: {command.command_type}")
        if not isinstance(command.parameters, dict):
            raise UnsupportedOperation("Command parameters must be an object")
