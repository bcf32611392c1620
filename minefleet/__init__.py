"""Mining Fleet Telemetry & Control - Main Package"""

__version__ = '1.0.0'
__author__ = 'Your Team'
__description__ = 'Edge Modbus polling and cloud aggregation for remote mining sites'

# Core patterns - most fundamental
from .core import StateMachine, AsyncEventBus, TtlCache

# Models - domain objects
from .models import Device, Reading, Command, Alert

# Protocols
from .protocols import ProtocolFactory

# Rules
from .rules import ThresholdRuleFactory

# Orchestration
from .orchestration import EdgeGateway, HubServer

__all__ = [
    # Core
    'StateMachine',
    'AsyncEventBus',
    'TtlCache',

    # Models
    'Device',
    'Reading',
    'Command',
    'Alert',

    # Factories
    'ProtocolFactory',
    'ThresholdRuleFactory',

    # Orchestration
    'EdgeGateway',
    'HubServer'
]
