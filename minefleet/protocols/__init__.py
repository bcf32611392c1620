"""Protocol client implementations."""

from .base_protocol_client import (
    BaseProtocolClient,
    ProtocolType,
    ProtocolClientConfig,
    ConnectionState
)

from .modbus_client import ModbusTcpClient
from .protocol_factory import ProtocolFactory

__all__ = [
    # Base classes
    'BaseProtocolClient',
    'ProtocolType',
    'ProtocolClientConfig',
    'ConnectionState',

    # Implementations
    'ModbusTcpClient',

    # Factory
    'ProtocolFactory'
]
