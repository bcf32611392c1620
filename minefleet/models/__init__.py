"""Data models, domain objects and wire messages."""

from .domain import (
    Alert,
    Command,
    CommandLog,
    CommandLogStatus,
    CommandType,
    Device,
    DeviceKind,
    DeviceState,
    DeviceStatus,
    Reading,
    Severity,
    SiteState,
    SiteStatus,
    ThresholdSet,
    DEFAULT_THRESHOLDS,
)

from .messages import (
    CommandCompleteMessage,
    CommandErrorMessage,
    CommandMessage,
    ErrorMessage,
    ReadingMessage,
    StatusEntry,
    StatusMessage,
    WireMessage,
    MESSAGE_TYPES,
    decode,
    encode,
)

__all__ = [
    # Domain models
    'Alert',
    'Command',
    'CommandLog',
    'CommandLogStatus',
    'CommandType',
    'Device',
    'DeviceKind',
    'DeviceState',
    'DeviceStatus',
    'Reading',
    'Severity',
    'SiteState',
    'SiteStatus',
    'ThresholdSet',
    'DEFAULT_THRESHOLDS',

    # Wire messages
    'CommandCompleteMessage',
    'CommandErrorMessage',
    'CommandMessage',
    'ErrorMessage',
    'ReadingMessage',
    'StatusEntry',
    'StatusMessage',
    'WireMessage',
    'MESSAGE_TYPES',
    'decode',
    'encode',
]
