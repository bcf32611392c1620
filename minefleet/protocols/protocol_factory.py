from minefleet.models.domain import Device
from minefleet.protocols.modbus_client import ModbusTcpClient
from minefleet.protocols.base_protocol_client import (
    BaseProtocolClient,
    ProtocolClientConfig,
    ProtocolType,
)


class ProtocolFactory:

    _registry = {
        ProtocolType.MODBUS_TCP: ModbusTcpClient,
        # Add other protocol clients as needed
    }

    @classmethod
    def create(cls, protocol_type: ProtocolType, config: ProtocolClientConfig) -> BaseProtocolClient:
        """
        Create a protocol client.

        Args:
            protocol_type: Protocol to speak
            config: Connection parameters

        Returns:
            BaseProtocolClient: Unconnected client instance
        """
        handler = cls._registry.get(protocol_type)
        if not handler:
            raise ValueError(f"No handler registered for protocol: {protocol_type}")
        return handler(config)

    @classmethod
    def for_device(cls, device: Device, timeout: float) -> BaseProtocolClient:
        """Build a Modbus/TCP client addressed at ``device``."""
        config = ProtocolClientConfig(
            protocol_type=ProtocolType.MODBUS_TCP,
            host=device.host,
            port=device.port,
            unit_id=device.modbus_unit,
            timeout=timeout,
            metadata={"device_id": device.device_id, "kind": device.kind.value},
        )
        return cls.create(config.protocol_type, config)
