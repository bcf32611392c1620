"""
Register Map
Table-driven translation between logical quantities and Modbus holding
registers, per device kind.

Adding a firmware revision or a new device kind means adding rows to
``REGISTER_TABLE`` (and, for polled values, ``POLLED_QUANTITIES``); the
lookup and codec below never change.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from minefleet.core.exceptions import UnsupportedOperation
from minefleet.models.domain import DeviceKind


class Quantity(str, Enum):
    """Logical quantities a device may expose."""
    HASH_RATE     = "hash_rate"
    TEMPERATURE   = "temperature"
    FAN_SPEED     = "fan_speed"
    POWER         = "power"
    ENERGY        = "energy"
    HEAT          = "heat"
    ERROR_STATUS  = "error_status"
    CONTROL_MODE  = "control_mode"
    FREQUENCY_SET = "frequency_set"
    FAN_SPEED_SET = "fan_speed_set"
    POWER_LIMIT   = "power_limit"
    RESTART       = "restart"
    SHUTDOWN      = "shutdown"


@dataclass(frozen=True, slots=True)
class RegisterSpec:
    """Where a quantity lives and how its raw words turn into a value."""
    address: int
    count: int = 1            # 1 = 16-bit, 2 = 32-bit (high word first)
    scale: float = 1.0        # engineering value = raw * scale
    signed: bool = False

    @property
    def bits(self) -> int:
        return 16 * self.count


# H60S control board
_H60S: Dict[Quantity, RegisterSpec] = {
    # Status registers
    Quantity.HASH_RATE:     RegisterSpec(1000, count=2, scale=0.001),   # GH/s raw -> TH/s
    Quantity.TEMPERATURE:   RegisterSpec(1002, signed=True),            # Celsius
    Quantity.FAN_SPEED:     RegisterSpec(1003),                         # RPM
    Quantity.POWER:         RegisterSpec(1004),                         # W
    Quantity.ERROR_STATUS:  RegisterSpec(1005),                         # bit field

    # Control registers
    Quantity.CONTROL_MODE:  RegisterSpec(2000),
    Quantity.FREQUENCY_SET: RegisterSpec(2001),                         # MHz
    Quantity.FAN_SPEED_SET: RegisterSpec(2002),
    Quantity.POWER_LIMIT:   RegisterSpec(2003),                         # W
    Quantity.RESTART:       RegisterSpec(2004),
    Quantity.SHUTDOWN:      RegisterSpec(2005),
}

_ENERGY_METER: Dict[Quantity, RegisterSpec] = {
    Quantity.POWER:  RegisterSpec(3000, count=2),                       # W
    Quantity.ENERGY: RegisterSpec(3002, count=2, scale=0.1),            # kWh
}

_HEAT_METER: Dict[Quantity, RegisterSpec] = {
    Quantity.TEMPERATURE: RegisterSpec(4000, signed=True, scale=0.1),   # Celsius, supply line
    Quantity.HEAT:        RegisterSpec(4002, count=2, scale=0.1),       # kWh
}

REGISTER_TABLE: Dict[DeviceKind, Dict[Quantity, RegisterSpec]] = {
    DeviceKind.CONTROL_BOARD: _H60S,
    DeviceKind.ENERGY_METER:  _ENERGY_METER,
    DeviceKind.HEAT_METER:    _HEAT_METER,
}

# What each poll cycle reads, and the Reading attribute each value lands in
POLLED_QUANTITIES: Dict[DeviceKind, Tuple[Tuple[Quantity, str], ...]] = {
    DeviceKind.CONTROL_BOARD: (
        (Quantity.HASH_RATE,   "hash_rate"),
        (Quantity.TEMPERATURE, "temperature"),
        (Quantity.FAN_SPEED,   "fan_speed"),
        (Quantity.POWER,       "power_consumption"),
    ),
    DeviceKind.ENERGY_METER: (
        (Quantity.POWER,  "power_consumption"),
        (Quantity.ENERGY, "energy_reading"),
    ),
    DeviceKind.HEAT_METER: (
        (Quantity.TEMPERATURE, "temperature"),
        (Quantity.HEAT,        "heat_meter_reading"),
    ),
}

RESTART_TRIGGER = 1
SHUTDOWN_TRIGGER = 1


def lookup(kind: DeviceKind, quantity) -> RegisterSpec:
    """Return the register spec for ``quantity`` on ``kind`` or fail."""
    try:
        quantity = Quantity(quantity)
    except ValueError:
        raise UnsupportedOperation(f"Unknown quantity: {quantity!r}")
    spec = REGISTER_TABLE.get(kind, {}).get(quantity)
    if spec is None:
        raise UnsupportedOperation(f"{quantity.value} is not defined for {getattr(kind, 'value', kind)}")
    return spec


def polled_quantities(kind: DeviceKind) -> Tuple[Tuple[Quantity, str], ...]:
    return POLLED_QUANTITIES.get(kind, ())


def decode(spec: RegisterSpec, registers: Sequence[int]) -> float:
    """Combine raw 16-bit words into an engineering value."""
    if len(registers) < spec.count:
        raise ValueError(f"expected {spec.count} registers at {spec.address}, got {len(registers)}")

    raw = 0
    for word in registers[:spec.count]:
        raw = (raw << 16) | (word & 0xFFFF)

    # Handle negative values (two's complement)
    if spec.signed and raw >= 1 << (spec.bits - 1):
        raw -= 1 << spec.bits

    value = raw * spec.scale
    return round(value, 6) if spec.scale != 1.0 else float(value)


def encode(spec: RegisterSpec, value: float) -> List[int]:
    """Inverse of ``decode``; raises ValueError when the value does not fit."""
    raw = int(round(value / spec.scale))
    if spec.signed:
        low, high = -(1 << (spec.bits - 1)), (1 << (spec.bits - 1)) - 1
    else:
        low, high = 0, (1 << spec.bits) - 1
    if not low <= raw <= high:
        raise ValueError(f"value {value} out of range for register {spec.address}")

    raw &= (1 << spec.bits) - 1
    words = []
    for _ in range(spec.count):
        words.insert(0, raw & 0xFFFF)
        raw >>= 16
    return words
