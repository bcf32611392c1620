"""Edge and hub services."""

# Edge
from .device_poller import DevicePoller
from .command_executor import CommandExecutor
from .edge_uplink import EdgeUplink

# Hub
from .connection_registry import ConnectionRegistry
from .alert_engine import AlertEngine, ThresholdProvider, LogNotifier
from .status_aggregator import StatusAggregator, derive_site_state
from .command_dispatcher import CommandDispatcher
from .hub_service import HubService

# Stores
from .record_store import SqlRecordStore
from .status_cache import RedisStatusCache

__all__ = [
    'DevicePoller',
    'CommandExecutor',
    'EdgeUplink',
    'ConnectionRegistry',
    'AlertEngine',
    'ThresholdProvider',
    'LogNotifier',
    'StatusAggregator',
    'derive_site_state',
    'CommandDispatcher',
    'HubService',
    'SqlRecordStore',
    'RedisStatusCache'
]
