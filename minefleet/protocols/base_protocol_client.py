"""
Industrial Protocol Client Framework
Base abstract class and interfaces for register-based device clients
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence
import logging
from enum import Enum

from minefleet.core.exceptions import TransportFailure


class ProtocolType(Enum):
    """Enumeration of supported protocol types."""
    MODBUS_TCP = "modbus_tcp"


class ConnectionState(Enum):
    """Connection state enumeration."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ProtocolClientConfig:
    """Configuration class for protocol clients."""

    def __init__(self,
                 protocol_type: ProtocolType,
                 host: str,
                 port: int = 502,
                 unit_id: int = 1,
                 timeout: float = 5.0,
                 metadata: Dict[str, Any] = None):
        self.protocol_type = protocol_type
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.timeout = timeout
        self.metadata = metadata or {}


class BaseProtocolClient(ABC):
    """
    Abstract base class for register-based device clients.

    One instance talks to one device for the duration of one operation
    (a poll or a command): connect, read/write registers, close. Every
    transport-level problem surfaces as ``TransportFailure``.
    Uses the async context manager protocol for proper resource management.
    """

    def __init__(self, config: ProtocolClientConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self.connection_state = ConnectionState.DISCONNECTED

    # Context manager protocol
    async def __aenter__(self):
        """Async context manager entry."""
        self.connection_state = ConnectionState.CONNECTING
        try:
            await self._connect()
        except Exception as e:
            self.connection_state = ConnectionState.ERROR
            await self._cleanup()
            raise TransportFailure(
                f"connect to {self.config.host}:{self.config.port} failed: {e}",
                error_type="connection_failed",
            ) from e
        self.connection_state = ConnectionState.CONNECTED
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self._cleanup()
        return False

    # Abstract methods that subclasses must implement (Strategy pattern)
    @abstractmethod
    async def _connect(self):
        """Establish connection to the device."""
        pass

    @abstractmethod
    async def _disconnect(self):
        """Disconnect from the device."""
        pass

    @abstractmethod
    async def read_registers(self, address: int, count: int) -> List[int]:
        """Read ``count`` holding registers starting at ``address``."""
        pass

    @abstractmethod
    async def write_registers(self, address: int, values: Sequence[int]) -> None:
        """Write holding registers starting at ``address``."""
        pass

    async def _cleanup(self):
        """Cleanup resources."""
        try:
            await self._disconnect()
        except Exception as e:
            self.logger.error(f"Error during cleanup: {e}")
        finally:
            self.connection_state = ConnectionState.DISCONNECTED

