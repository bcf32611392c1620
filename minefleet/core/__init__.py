# minefleet/core/__init__.py
"""Core infrastructure components for the mining-fleet edge and hub."""

# Import order: most fundamental to most specific

from .exceptions import (
    MinefleetError,
    ConfigurationError,
    DeviceNotFound,
    SiteNotConnected,
    UnsupportedOperation,
    TransportFailure,
    MalformedMessage,
)

from .patterns.state_machine import StateMachine, UplinkState
from .patterns.event_bus import AsyncEventBus
from .patterns.ttl_cache import TtlCache


__all__ = [
    "StateMachine",
    "UplinkState",
    "AsyncEventBus",
    "TtlCache",
    "MinefleetError",
    "ConfigurationError",
    "DeviceNotFound",
    "SiteNotConnected",
    "UnsupportedOperation",
    "TransportFailure",
    "MalformedMessage",
]
