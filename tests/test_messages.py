"""
Unit tests for the site <-> hub wire messages
"""
import json
from datetime import datetime, timezone

import pytest

from minefleet.core.exceptions import MalformedMessage
from minefleet.models.domain import Command, DeviceState, Reading
from minefleet.models.messages import (
    CommandCompleteMessage,
    CommandErrorMessage,
    CommandMessage,
    ErrorMessage,
    ReadingMessage,
    StatusEntry,
    StatusMessage,
    decode,
    encode,
)

TS = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestEncode:
    """Test frame layout"""

    def test_reading_frame(self):
        """Test a reading carries only measured fields in camelCase"""
        frame = json.loads(encode(ReadingMessage(Reading(1, TS, hash_rate=100.0, temperature=65.0))))
        assert frame == {
            "type": "reading",
            "data": {
                "deviceId": 1,
                "timestamp": "2024-05-01T12:00:00Z",
                "data": {"hashRate": 100.0, "temperature": 65.0},
            },
        }

    def test_status_frame_is_list(self):
        """Test status payload is an ordered list"""
        message = StatusMessage((
            StatusEntry(1, DeviceState.ONLINE, TS),
            StatusEntry(2, DeviceState.ERROR, None, "refused"),
        ))
        frame = json.loads(encode(message))
        assert frame["type"] == "status"
        assert [e["deviceId"] for e in frame["data"]] == [1, 2]
        assert frame["data"][1]["errorMessage"] == "refused"
        assert frame["data"][1]["lastSeen"] is None

    def test_command_frame(self):
        """Test hub -> site command layout"""
        command = Command("updateConfig", 2, parameters={"frequency": 600}, command_id="abc")
        frame = json.loads(encode(CommandMessage(command)))
        assert frame["data"] == {
            "type": "updateConfig",
            "deviceId": 2,
            "commandId": "abc",
            "parameters": {"frequency": 600},
        }


class TestDecode:
    """Test parsing and validation of inbound frames"""

    def test_reading(self):
        """Test a reading frame decodes to a Reading"""
        raw = json.dumps({"type": "reading", "data": {
            "deviceId": 1, "timestamp": "2024-05-01T12:00:00Z", "data": {"temperature": 90}}})
        message = decode(raw)
        assert isinstance(message, ReadingMessage)
        assert message.reading.temperature == 90
        assert message.reading.hash_rate is None
        assert message.reading.timestamp == TS

    def test_error(self):
        """Test an error frame decodes"""
        raw = json.dumps({"type": "error", "data": {
            "deviceId": 3, "errorType": "timeout", "message": "no response",
            "timestamp": "2024-05-01T12:00:00+00:00"}})
        message = decode(raw)
        assert isinstance(message, ErrorMessage)
        assert message.error_type == "timeout"
        assert message.device_id == 3

    def test_status(self):
        """Test status batches decode in order"""
        raw = json.dumps({"type": "status", "data": [
            {"deviceId": 1, "status": "online", "lastSeen": "2024-05-01T12:00:00Z"},
            {"deviceId": 2, "status": "offline", "lastSeen": None},
        ]})
        message = decode(raw)
        assert [(e.device_id, e.status) for e in message.entries] == [
            (1, DeviceState.ONLINE), (2, DeviceState.OFFLINE)]

    def test_command_without_id_gets_one(self):
        """Test a command without commandId is given a fresh id"""
        raw = json.dumps({"type": "command", "data": {"type": "restart", "deviceId": 1}})
        message = decode(raw)
        assert isinstance(message, CommandMessage)
        assert message.command.command_type == "restart"
        assert message.command.command_id

    def test_command_outcomes(self):
        """Test commandComplete and commandError decode"""
        complete = CommandCompleteMessage(1, "abc", {"type": "restart", "parameters": {}}, TS)
        failed = CommandErrorMessage(1, "def", {"type": "shutdown", "parameters": {}}, "busy", TS)
        assert decode(encode(complete)) == complete
        assert decode(encode(failed)).error == "busy"

    def test_bytes_frame(self):
        """Test binary frames are accepted"""
        raw = json.dumps({"type": "command", "data": {"type": "restart", "deviceId": 1}}).encode()
        assert isinstance(decode(raw), CommandMessage)

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        json.dumps({"type": "telemetry", "data": {}}),
        json.dumps({"type": "reading", "data": "x"}),
        json.dumps({"type": "reading", "data": {"deviceId": "1", "timestamp": "2024-05-01T12:00:00Z"}}),
        json.dumps({"type": "reading", "data": {"deviceId": True, "timestamp": "2024-05-01T12:00:00Z"}}),
        json.dumps({"type": "reading", "data": {"deviceId": 1, "timestamp": "yesterday"}}),
        json.dumps({"type": "reading", "data": {"deviceId": 1, "timestamp": "2024-05-01T12:00:00Z",
                                                "data": {"temperature": "hot"}}}),
        json.dumps({"type": "status", "data": {"deviceId": 1}}),
        json.dumps({"type": "status", "data": [{"deviceId": 1, "status": "sleeping"}]}),
        json.dumps({"type": "command", "data": {"deviceId": 1}}),
        json.dumps({"type": "command", "data": {"type": "restart", "deviceId": 1, "parameters": [1]}}),
    ])
    def test_malformed(self, raw):
        """Test every malformed frame raises MalformedMessage"""
        with pytest.raises(MalformedMessage):
            decode(raw)
