# minefleet/orchestration/__init__.py
"""Process wiring and lifecycle for the edge gateway and the cloud hub."""

from .state_machine import LifecycleStateMachine, LifecycleState
from .edge_gateway import EdgeGateway, load_devices
from .hub_server import HubServer

__all__ = [
    'LifecycleStateMachine',
    'LifecycleState',
    'EdgeGateway',
    'load_devices',
    'HubServer'
]
