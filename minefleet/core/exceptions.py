"""
Centralised exception definitions for the mining-fleet edge/hub system.
All custom exceptions should inherit from MinefleetError.
"""


class MinefleetError(Exception):
    """Base class for every custom exception thrown by this project."""


class ConfigurationError(MinefleetError):
    """Raised when configuration files or environment variables are invalid."""


class DeviceNotFound(MinefleetError):
    """Raised when a command or lookup names a device the site does not have."""

    def __init__(self, device_id):
        super().__init__(f"Unknown device ID: {device_id}")
        self.device_id = device_id


class SiteNotConnected(MinefleetError):
    """Raised when a site has no live channel registered with the hub."""

    def __init__(self, site_id: str):
        super().__init__(f"Site {site_id} not connected")
        self.site_id = site_id


class UnsupportedOperation(MinefleetError):
    """Unknown command type, or a quantity the device kind does not define."""


class TransportFailure(MinefleetError):
    """Connection, read or write failure towards a device or the cloud hub."""

    def __init__(self, message: str, error_type: str = "transport_failed"):
        super().__init__(message)
        self.error_type = error_type


class MalformedMessage(MinefleetError):
    """Wire payload that cannot be parsed into a known message."""
