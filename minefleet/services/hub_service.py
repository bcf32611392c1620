# hub_service.py

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from minefleet.core.exceptions import MinefleetError, UnsupportedOperation
from minefleet.models.domain import READING_FIELDS, Command
from minefleet.models.messages import format_timestamp
from minefleet.services.command_dispatcher import CommandDispatcher
from minefleet.services.status_aggregator import StatusAggregator


class HubService:
    """
    Operations the HTTP routing layer calls into.

    Results are plain dicts ready for JSON; domain errors propagate to the
    caller except from ``dispatch_command``, which reports them in its ack.
    """

    def __init__(self,
                 aggregator: StatusAggregator,
                 dispatcher: CommandDispatcher,
                 record_store,
                 status_cache):
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.record_store = record_store
        self.status_cache = status_cache
        self.log = logging.getLogger(self.__class__.__name__)

    def get_site_status(self, site_id: str) -> Dict[str, Any]:
        """Current derived status of a site and all of its known devices."""
        return self.aggregator.get_site_status(site_id).to_dict()

    async def dispatch_command(self, site_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send an operator command to a site.

        Args:
            site_id: Target site
            request: {"type", "deviceId", "parameters"?}

        Returns:
            Dict: {"success": True, "commandId"} or {"success": False, "error", "errorType"}
        """
        try:
            command = _command_from_request(request)
            entry = await self.dispatcher.dispatch(site_id, command)
        except MinefleetError as e:
            self.log.warning(f"Command for site {site_id} rejected: {e}")
            return {"success": False, "error": str(e), "errorType": e.__class__.__name__}
        return {"success": True, "commandId": entry.command_id}

    async def get_device_metrics(self, site_id: str, device_id: int,
                                 start: datetime, end: datetime) -> Dict[str, Any]:
        """Last cached reading plus stored readings in [start, end]."""
        current = await self.status_cache.get_last_reading(site_id, device_id)
        readings = await self.record_store.query_readings(site_id, device_id, start, end)
        historical = []
        for reading in readings:
            row = {READING_FIELDS[k]: v for k, v in reading.measured().items()}
            row["timestamp"] = format_timestamp(reading.timestamp)
            historical.append(row)
        return {"current": current, "historical": historical}

    async def collect_billing(self, site_id: str, start: datetime, end: datetime) -> Dict[str, Any]:
        """Sum the energy a site reported in the period and record it."""
        if end < start:
            raise ValueError("billing period ends before it starts")
        energy = await self.record_store.sum_energy(site_id, start, end)
        record = await self.record_store.append_billing(site_id, start, end, energy)
        self.log.info(f"💰 Billing for site {site_id}: {energy} kWh")
        return record


def _command_from_request(request: Dict[str, Any]) -> Command:
    if not isinstance(request, dict):
        raise UnsupportedOperation("Command request must be an object")
    command_type = request.get("type")
    device_id = request.get("deviceId")
    parameters: Optional[Dict[str, Any]] = request.get("parameters") or {}
    if not isinstance(command_type, str):
        raise UnsupportedOperation(f"Invalid command type: {command_type!r}")
    if isinstance(device_id, bool) or not isinstance(device_id, int):
        raise UnsupportedOperation(f"Invalid deviceId: {device_id!r}")
    if not isinstance(parameters, dict):
        raise UnsupportedOperation("Command parameters must be an object")
    return Command(command_type=command_type, device_id=device_id, parameters=parameters)
