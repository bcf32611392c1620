"""
Unit tests for the edge device poller
"""
import asyncio
import time

from minefleet.core.patterns.event_bus import AsyncEventBus
from minefleet.models.domain import DeviceState
from minefleet.models.messages import ErrorMessage, ReadingMessage
from minefleet.services.device_poller import DevicePoller

BOARD_REGISTERS = {1000: 0x0001, 1001: 0x86A0, 1002: 65, 1003: 3000, 1004: 3200}


def drain(bus):
    events = []
    while bus.get_queue_size():
        events.append(bus._event_queue.get_nowait())
    return events


class TestPollCycle:
    """Test one poll cycle over several devices"""

    def test_reads_and_decodes_every_device(self, devices, network):
        """Test each device yields one decoded reading"""
        network.load(1, BOARD_REGISTERS)
        network.load(10, {3000: 0, 3001: 1500, 3002: 0, 3003: 12345})
        network.load(20, {4000: 450, 4002: 1, 4003: 0})

        async def scenario():
            bus = AsyncEventBus()
            poller = DevicePoller(devices, bus, network.factory, timeout=1.0)
            events = await poller.poll_cycle()
            return events, drain(bus), poller

        events, published, poller = asyncio.run(scenario())
        assert len(events) == 4
        assert sorted(e.reading.device_id for e in published) == [1, 2, 10, 20]

        board = events[0].reading
        assert isinstance(events[0], ReadingMessage)
        assert board.hash_rate == 100.0
        assert board.temperature == 65.0
        assert board.fan_speed == 3000.0
        assert board.power_consumption == 3200.0
        assert board.timestamp.tzinfo is not None

        meter = poller.last_readings[10]
        assert meter.power_consumption == 1500.0
        assert meter.energy_reading == 1234.5
        assert meter.hash_rate is None

        heat = poller.last_readings[20]
        assert heat.temperature == 45.0
        assert heat.heat_meter_reading == 6553.6

    def test_connection_failure_becomes_error_event(self, devices, network):
        """Test an unreachable device emits an error instead of a reading"""
        network.unreachable.add(2)

        async def scenario():
            poller = DevicePoller(devices, AsyncEventBus(), network.factory, timeout=1.0)
            return await poller.poll_cycle(), poller

        events, poller = asyncio.run(scenario())
        error = events[1]
        assert isinstance(error, ErrorMessage)
        assert error.device_id == 2
        assert error.error_type == "connection_failed"
        assert "refused" in error.message
        assert isinstance(events[0], ReadingMessage)
        assert poller.connection_status[2] is False

    def test_read_failure(self, devices, network):
        """Test a failing register read emits read_failed"""
        network.read_errors.add(10)

        async def scenario():
            poller = DevicePoller(devices, AsyncEventBus(), network.factory, timeout=1.0)
            return await poller.poll_cycle()

        events = asyncio.run(scenario())
        assert events[2].error_type == "read_failed"

    def test_hanging_device_does_not_delay_others(self, devices, network):
        """Test a hung device times out while the others complete"""
        network.hanging.add(1)

        async def scenario():
            poller = DevicePoller(devices, AsyncEventBus(), network.factory, timeout=0.1)
            started = time.monotonic()
            events = await poller.poll_cycle()
            return events, time.monotonic() - started

        events, elapsed = asyncio.run(scenario())
        assert elapsed < 2.0
        assert events[0].error_type == "timeout"
        assert all(isinstance(e, ReadingMessage) for e in events[1:])


class TestStatusSnapshot:
    """Test the snapshot sent to the hub on connect"""

    def test_snapshot_before_any_poll(self, devices, network):
        """Test unpolled devices report offline"""
        poller = DevicePoller(devices, AsyncEventBus(), network.factory)
        snapshot = poller.status_snapshot()
        assert [e.device_id for e in snapshot.entries] == [1, 2, 10, 20]
        assert all(e.status == DeviceState.OFFLINE for e in snapshot.entries)

    def test_snapshot_reflects_errors_and_recovery(self, devices, network):
        """Test accumulated errors show until a successful read clears them"""
        network.unreachable.add(2)

        async def scenario():
            poller = DevicePoller(devices, AsyncEventBus(), network.factory, timeout=1.0)
            await poller.poll_cycle()
            await poller.poll_cycle()
            failed = poller.status_snapshot()
            network.unreachable.clear()
            await poller.poll_cycle()
            return failed, poller.status_snapshot()

        failed, recovered = asyncio.run(scenario())
        entry = failed.entries[1]
        assert entry.status == DeviceState.ERROR
        assert entry.error_message.count("refused") == 2
        assert failed.entries[0].status == DeviceState.ONLINE
        assert failed.entries[0].last_seen is not None

        assert recovered.entries[1].status == DeviceState.ONLINE
        assert recovered.entries[1].error_message is None
