"""Register-to-value mapping for Modbus devices."""

from .register_map import (
    Quantity,
    RegisterSpec,
    REGISTER_TABLE,
    POLLED_QUANTITIES,
    RESTART_TRIGGER,
    SHUTDOWN_TRIGGER,
    lookup,
    polled_quantities,
    decode,
    encode,
)

__all__ = [
    'Quantity',
    'RegisterSpec',
    'REGISTER_TABLE',
    'POLLED_QUANTITIES',
    'RESTART_TRIGGER',
    'SHUTDOWN_TRIGGER',
    'lookup',
    'polled_quantities',
    'decode',
    'encode',
]
