"""
Site <-> hub wire messages.

Every frame is a JSON object ``{"type": <tag>, "data": <payload>}``. The set
of message kinds is closed: each kind is a dataclass registered in
``MESSAGE_TYPES`` under its tag, and ``decode`` refuses anything else with
``MalformedMessage``.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union

from minefleet.core.exceptions import MalformedMessage
from minefleet.models.domain import (
    READING_FIELDS,
    Command,
    DeviceState,
    Reading,
    utcnow,
)


# --------------------------------------------------------------------------- #
#  Messages
# --------------------------------------------------------------------------- #

@dataclass(frozen=True, slots=True)
class ReadingMessage:
    TYPE: ClassVar[str] = "reading"
    reading: Reading

    def to_payload(self) -> Dict[str, Any]:
        return {
            "deviceId": self.reading.device_id,
            "timestamp": format_timestamp(self.reading.timestamp),
            "data": {READING_FIELDS[k]: v for k, v in self.reading.measured().items()},
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ReadingMessage":
        values = _require_dict(data.get("data", {}), "data")
        fields = {}
        for attr, wire_name in READING_FIELDS.items():
            value = values.get(wire_name)
            if value is not None:
                fields[attr] = _number(value, wire_name)
        return cls(Reading(
            device_id=_device_id(data),
            timestamp=parse_timestamp(data.get("timestamp")),
            **fields,
        ))


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    TYPE: ClassVar[str] = "error"
    device_id: int
    error_type: str
    message: str
    timestamp: datetime = field(default_factory=utcnow)
    data: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "deviceId": self.device_id,
            "errorType": self.error_type,
            "message": self.message,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ErrorMessage":
        extra = data.get("data")
        return cls(
            device_id=_device_id(data),
            error_type=_string(data.get("errorType", "unknown"), "errorType"),
            message=_string(data.get("message", ""), "message"),
            timestamp=parse_timestamp(data.get("timestamp")),
            data=_require_dict(extra, "data") if extra is not None else None,
        )


@dataclass(frozen=True, slots=True)
class StatusEntry:
    device_id: int
    status: DeviceState
    last_seen: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "deviceId": self.device_id,
            "status": self.status.value,
            "lastSeen": format_timestamp(self.last_seen) if self.last_seen else None,
        }
        if self.error_message is not None:
            payload["errorMessage"] = self.error_message
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "StatusEntry":
        data = _require_dict(data, "status entry")
        try:
            status = DeviceState(data.get("status"))
        except ValueError:
            raise MalformedMessage(f"invalid device status: {data.get('status')!r}")
        last_seen = data.get("lastSeen")
        error_message = data.get("errorMessage")
        return cls(
            device_id=_device_id(data),
            status=status,
            last_seen=parse_timestamp(last_seen) if last_seen else None,
            error_message=_string(error_message, "errorMessage") if error_message is not None else None,
        )


@dataclass(frozen=True, slots=True)
class StatusMessage:
    TYPE: ClassVar[str] = "status"
    entries: Tuple[StatusEntry, ...]

    def to_payload(self) -> list:
        return [entry.to_payload() for entry in self.entries]

    @classmethod
    def from_payload(cls, data: Any) -> "StatusMessage":
        if not isinstance(data, list):
            raise MalformedMessage("status payload must be a list")
        return cls(tuple(StatusEntry.from_payload(item) for item in data))


@dataclass(frozen=True, slots=True)
class CommandMessage:
    TYPE: ClassVar[str] = "command"
    command: Command

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "type": self.command.command_type,
            "deviceId": self.command.device_id,
            "commandId": self.command.command_id,
        }
        if self.command.parameters:
            payload["parameters"] = dict(self.command.parameters)
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CommandMessage":
        parameters = data.get("parameters") or {}
        command_id = data.get("commandId")
        kwargs = {}
        if command_id is not None:
            kwargs["command_id"] = _string(command_id, "commandId")
        return cls(Command(
            command_type=_string(data.get("type"), "type"),
            device_id=_device_id(data),
            parameters=_require_dict(parameters, "parameters"),
            **kwargs,
        ))


@dataclass(frozen=True, slots=True)
class CommandCompleteMessage:
    TYPE: ClassVar[str] = "commandComplete"
    device_id: int
    command_id: str
    command: Dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "commandId": self.command_id,
            "command": self.command,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CommandCompleteMessage":
        return cls(
            device_id=_device_id(data),
            command_id=_string(data.get("commandId"), "commandId"),
            command=_require_dict(data.get("command", {}), "command"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass(frozen=True, slots=True)
class CommandErrorMessage:
    TYPE: ClassVar[str] = "commandError"
    device_id: int
    command_id: str
    command: Dict[str, Any]
    error: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "commandId": self.command_id,
            "command": self.command,
            "error": self.error,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CommandErrorMessage":
        return cls(
            device_id=_device_id(data),
            command_id=_string(data.get("commandId"), "commandId"),
            command=_require_dict(data.get("command", {}), "command"),
            error=_string(data.get("error", ""), "error"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


WireMessage = Union[
    ReadingMessage,
    ErrorMessage,
    StatusMessage,
    CommandMessage,
    CommandCompleteMessage,
    CommandErrorMessage,
]

MESSAGE_TYPES: Dict[str, Type] = {
    cls.TYPE: cls for cls in (
        ReadingMessage,
        ErrorMessage,
        StatusMessage,
        CommandMessage,
        CommandCompleteMessage,
        CommandErrorMessage,
    )
}


# --------------------------------------------------------------------------- #
#  Codec
# --------------------------------------------------------------------------- #

def encode(message: WireMessage) -> str:
    return json.dumps({"type": message.TYPE, "data": message.to_payload()})


def decode(raw: Union[str, bytes]) -> WireMessage:
    """Parse one frame; anything unexpected becomes ``MalformedMessage``."""
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        frame = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessage(f"unparseable frame: {e}") from e

    if not isinstance(frame, dict):
        raise MalformedMessage("frame must be a JSON object")
    message_cls = MESSAGE_TYPES.get(frame.get("type"))
    if message_cls is None:
        raise MalformedMessage(f"unknown message type: {frame.get('type')!r}")

    data = frame.get("data")
    if message_cls is not StatusMessage:
        data = _require_dict(data, "data")
    try:
        return message_cls.from_payload(data)
    except MalformedMessage:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedMessage(f"invalid {message_cls.TYPE} payload: {e}") from e


def format_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str) or not value:
        raise MalformedMessage(f"invalid timestamp: {value!r}")
    try:
        ts = datetime.fromisoformat(value[:-1] + "+00:00" if value.endswith("Z") else value)
    except ValueError as e:
        raise MalformedMessage(f"invalid timestamp: {value!r}") from e
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


# --------------------------------------------------------------------------- #
#  Field validators
# --------------------------------------------------------------------------- #

def _require_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedMessage(f"{what} must be an object")
    return value


def _device_id(data: Dict[str, Any]) -> int:
    value = data.get("deviceId")
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedMessage(f"invalid deviceId: {value!r}")
    return value


def _number(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedMessage(f"{what} must be numeric, got {value!r}")
    return value


def _string(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise MalformedMessage(f"{what} must be a string, got {value!r}")
    return value
