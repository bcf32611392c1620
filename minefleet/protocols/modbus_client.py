"""
Modbus/TCP Protocol Client Implementation
Holding-register access to a single device through pymodbus' asyncio client
"""

from typing import List, Optional, Sequence

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from minefleet.core.exceptions import TransportFailure
from minefleet.protocols.base_protocol_client import (
    BaseProtocolClient,
    ProtocolClientConfig,
    ProtocolType,
)


class ModbusTcpClient(BaseProtocolClient):
    """
    Modbus/TCP client for one device.

    - Function code 3 for reads (holding registers)
    - Function code 6 for single-word writes, 16 for multi-word writes
    - The device is addressed by its unit id
    """

    def __init__(self, config: ProtocolClientConfig):
        if config.protocol_type != ProtocolType.MODBUS_TCP:
            raise ValueError("Config must be for Modbus/TCP protocol")

        super().__init__(config)
        self.client: Optional[AsyncModbusTcpClient] = None

    async def _connect(self):
        """Establish connection to the Modbus server on the device."""
        self.logger.debug(f"Connecting to Modbus device at {self.config.host}:{self.config.port}")
        self.client = AsyncModbusTcpClient(
            self.config.host,
            port=self.config.port,
            timeout=self.config.timeout,
            retries=0,
        )
        connected = await self.client.connect()
        if not connected:
            raise TransportFailure(
                f"Modbus connection failed to {self.config.host}:{self.config.port}"
            )

    async def _disconnect(self):
        """Close the Modbus socket."""
        if self.client:
            self.client.close()
        self.client = None

    async def read_registers(self, address: int, count: int) -> List[int]:
        """Read holding registers (function code 3)."""
        self._require_connection()
        try:
            result = await self.client.read_holding_registers(
                address, count=count, device_id=self.config.unit_id
            )
        except ModbusException as e:
            raise TransportFailure(
                f"read of register {address} failed: {e}", error_type="read_failed"
            ) from e

        if result.isError():
            raise TransportFailure(
                f"read of register {address} failed: {result}", error_type="read_failed"
            )
        if not result.registers or len(result.registers) < count:
            raise TransportFailure(
                f"read of register {address} returned no data", error_type="read_failed"
            )
        return list(result.registers)

    async def write_registers(self, address: int, values: Sequence[int]) -> None:
        """Write one (function code 6) or several (function code 16) registers."""
        self._require_connection()
        try:
            if len(values) == 1:
                result = await self.client.write_register(
                    address, values[0], device_id=self.config.unit_id
                )
            else:
                result = await self.client.write_registers(
                    address, list(values), device_id=self.config.unit_id
                )
        except ModbusException as e:
            raise TransportFailure(
                f"write of register {address} failed: {e}", error_type="write_failed"
            ) from e

        if result.isError():
            raise TransportFailure(
                f"write of register {address} failed: {result}", error_type="write_failed"
            )

    def _require_connection(self):
        if not self.client or not self.client.connected:
            raise TransportFailure(
                f"Modbus client is not connected to {self.config.host}:{self.config.port}"
            )
