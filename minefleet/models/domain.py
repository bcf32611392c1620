from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import uuid


###############################################################################
# 1. ENUMERATIONS -------------------------------------------------------------
###############################################################################

class DeviceKind(str, Enum):
    CONTROL_BOARD = "control_board"
    ENERGY_METER  = "energy_meter"
    HEAT_METER    = "heat_meter"


class DeviceState(str, Enum):
    ONLINE  = "online"
    OFFLINE = "offline"
    ERROR   = "error"


class SiteState(str, Enum):
    ONLINE  = "online"
    OFFLINE = "offline"
    PARTIAL = "partial"


class CommandType(str, Enum):
    RESTART       = "restart"
    UPDATE_CONFIG = "updateConfig"
    SHUTDOWN      = "shutdown"


class Severity(str, Enum):
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"


class CommandLogStatus(str, Enum):
    SENT      = "sent"
    COMPLETED = "completed"
    FAILED    = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


###############################################################################
# 2. SITE & DEVICE ------------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class Device:
    """A Modbus-addressable unit configured on an edge gateway."""
    device_id: int
    kind: DeviceKind
    host: str
    port: int = 502
    unit_id: Optional[int] = None     # defaults to device_id
    miner_count: int = 0              # control boards only, informational
    name: Optional[str] = None

    @property
    def modbus_unit(self) -> int:
        return self.unit_id if self.unit_id is not None else self.device_id

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Device":
        return cls(
            device_id   = int(row["id"]),
            kind        = DeviceKind(row["kind"]),
            host        = row.get("ip") or row["host"],
            port        = int(row.get("port", 502)),
            unit_id     = row.get("unit_id"),
            miner_count = int(row.get("minerCount", row.get("miner_count", 0))),
            name        = row.get("name"),
        )


###############################################################################
# 3. TELEMETRY ----------------------------------------------------------------
###############################################################################

# Reading attribute -> wire field name
READING_FIELDS: Dict[str, str] = {
    "hash_rate":          "hashRate",
    "temperature":        "temperature",
    "fan_speed":          "fanSpeed",
    "power_consumption":  "powerConsumption",
    "energy_reading":     "energyReading",
    "heat_meter_reading": "heatMeterReading",
}


@dataclass(frozen=True, slots=True)
class Reading:
    """Immutable, partial measurement snapshot of one device."""
    device_id: int
    timestamp: datetime
    site_id: Optional[str] = None
    hash_rate: Optional[float] = None
    temperature: Optional[float] = None
    fan_speed: Optional[float] = None
    power_consumption: Optional[float] = None
    energy_reading: Optional[float] = None
    heat_meter_reading: Optional[float] = None

    def measured(self) -> Dict[str, float]:
        """Only the fields that were actually measured."""
        values = {}
        for attr in READING_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                values[attr] = value
        return values


@dataclass(slots=True)
class DeviceStatus:
    """Latest known state of one device; overwritten in place."""
    site_id: str
    device_id: int
    status: DeviceState
    last_seen: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "siteId": self.site_id,
            "deviceId": self.device_id,
            "status": self.status.value,
            "lastSeen": self.last_seen.isoformat() if self.last_seen else None,
            "errorMessage": self.error_message,
        }


@dataclass(frozen=True, slots=True)
class SiteStatus:
    """Derived view; never stored independently of its devices."""
    site_id: str
    status: SiteState
    connected: bool
    devices: Tuple[DeviceStatus, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "siteId": self.site_id,
            "status": self.status.value,
            "connected": self.connected,
            "devices": [d.to_dict() for d in self.devices],
        }


###############################################################################
# 4. ALERTS & THRESHOLDS ------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class Alert:
    site_id: str
    device_id: Optional[int]
    type: str
    severity: Severity
    value: Optional[float] = None
    message: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class ThresholdSet:
    max_temperature: float = 85.0
    min_hash_rate: float = 50.0
    max_power: float = 3500.0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ThresholdSet":
        defaults = cls()
        return cls(
            max_temperature = _or_default(row.get("max_temperature"), defaults.max_temperature),
            min_hash_rate   = _or_default(row.get("min_hash_rate"), defaults.min_hash_rate),
            max_power       = _or_default(row.get("max_power"), defaults.max_power),
        )


DEFAULT_THRESHOLDS = ThresholdSet()


###############################################################################
# 5. COMMANDS -----------------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class Command:
    """Operator request; the type stays a raw string until validated."""
    command_type: str
    device_id: int
    site_id: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    command_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def describe(self) -> Dict[str, Any]:
        return {"type": self.command_type, "parameters": dict(self.parameters)}


@dataclass(frozen=True, slots=True)
class CommandLog:
    command_id: str
    site_id: str
    device_id: int
    command_type: str
    parameters: Dict[str, Any]
    status: CommandLogStatus
    timestamp: datetime
    error: Optional[str] = None


###############################################################################
# 6. HELPERS ------------------------------------------------------------------
###############################################################################

def _or_default(value: Any, default: float) -> float:
    return default if value is None else float(value)
