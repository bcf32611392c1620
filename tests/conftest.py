"""
Shared fixtures and in-memory fakes for stores, channels and Modbus devices
"""
import asyncio
from collections import defaultdict
from dataclasses import replace

import pytest

from minefleet.core.exceptions import TransportFailure
from minefleet.models.domain import Device, DeviceKind
from minefleet.models.messages import decode


class FakeModbusNetwork:
    """Register banks per device id plus switches for failure modes"""

    def __init__(self):
        self.registers = defaultdict(dict)
        self.unreachable = set()
        self.hanging = set()
        self.read_errors = set()
        self.write_errors = set()
        self.writes = []
        self.connections = []

    def load(self, device_id, values):
        """values: {address: word}"""
        self.registers[device_id].update(values)

    def factory(self, device, timeout):
        return FakeModbusClient(self, device)


class FakeModbusClient:

    def __init__(self, network, device):
        self.network = network
        self.device = device

    async def __aenter__(self):
        device_id = self.device.device_id
        self.network.connections.append(device_id)
        if device_id in self.network.unreachable:
            raise TransportFailure(
                f"connect to {self.device.host}:{self.device.port} failed: refused",
                error_type="connection_failed",
            )
        if device_id in self.network.hanging:
            await asyncio.sleep(3600)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def read_registers(self, address, count):
        if self.device.device_id in self.network.read_errors:
            raise TransportFailure(f"read of register {address} failed: illegal address",
                                   error_type="read_failed")
        bank = self.network.registers[self.device.device_id]
        return [bank.get(address + i, 0) for i in range(count)]

    async def write_registers(self, address, values):
        if self.device.device_id in self.network.write_errors:
            raise TransportFailure(f"write of register {address} failed: slave busy",
                                   error_type="write_failed")
        self.network.writes.append((self.device.device_id, address, list(values)))


class FakeRecordStore:
    """Same coroutine surface as SqlRecordStore, backed by lists and dicts"""

    def __init__(self):
        self.readings = []
        self.alerts = []
        self.command_logs = {}
        self.device_errors = []
        self.billing = []
        self.site_statuses = {}
        self.configurations = {}
        self.fail_alerts = False
        self.fail_configuration = False
        self.configuration_lookups = 0

    async def append_reading(self, site_id, reading):
        self.readings.append((site_id, reading))

    async def query_readings(self, site_id, device_id, start, end):
        return [
            r for s, r in self.readings
            if s == site_id and r.device_id == device_id and start <= r.timestamp <= end
        ]

    async def sum_energy(self, site_id, start, end):
        return float(sum(
            r.energy_reading for s, r in self.readings
            if s == site_id and r.energy_reading is not None and start <= r.timestamp <= end
        ))

    async def append_alert(self, alert):
        if self.fail_alerts:
            raise ConnectionError("alert table unavailable")
        self.alerts.append(alert)

    async def append_device_error(self, site_id, device_id, error_type, message, timestamp, data=None):
        self.device_errors.append((site_id, device_id, error_type, message))

    async def append_command_log(self, entry):
        self.command_logs[entry.command_id] = entry

    async def update_command_log_status(self, command_id, status, error=None):
        entry = self.command_logs.get(command_id)
        if entry is None:
            return False
        self.command_logs[command_id] = replace(entry, status=status, error=error)
        return True

    async def update_site_status(self, site_id, status, last_seen=None):
        self.site_statuses[site_id] = status

    async def get_device_configuration(self, site_id, device_id):
        self.configuration_lookups += 1
        if self.fail_configuration:
            raise ConnectionError("database unavailable")
        return self.configurations.get((site_id, device_id))

    async def append_billing(self, site_id, start, end, energy_consumed):
        record = {"siteId": site_id, "energyConsumed": energy_consumed}
        self.billing.append(record)
        return record


class FakeStatusCache:

    def __init__(self):
        self.device_statuses = {}
        self.site_statuses = {}
        self.last_readings = {}
        self.thresholds = {}
        self.threshold_expiry = {}

    async def set_device_status(self, status):
        self.device_statuses[(status.site_id, status.device_id)] = status.to_dict()

    async def set_site_status(self, status):
        self.site_statuses[status.site_id] = status.to_dict()

    async def set_last_reading(self, site_id, reading):
        self.last_readings[(site_id, reading.device_id)] = reading.measured()

    async def get_last_reading(self, site_id, device_id):
        return self.last_readings.get((site_id, device_id))

    async def set_thresholds(self, site_id, device_id, thresholds, ex=3600):
        self.thresholds[(site_id, device_id)] = thresholds
        self.threshold_expiry[(site_id, device_id)] = ex

    async def get_thresholds(self, site_id, device_id):
        return self.thresholds.get((site_id, device_id))

    async def invalidate_thresholds(self, site_id, device_id):
        self.thresholds.pop((site_id, device_id), None)


class FakeChannel:
    """Stands in for a site's WebSocket connection"""

    def __init__(self, fail=False):
        self.sent = []
        self.closed = False
        self.fail = fail

    async def send(self, message):
        if self.fail:
            raise ConnectionResetError("channel reset")
        self.sent.append(message)

    async def close(self):
        self.closed = True

    @property
    def messages(self):
        return [decode(raw) for raw in self.sent]


class FakeHubConnection:
    """Client side of a hub WebSocket; queue None to simulate a remote close"""

    def __init__(self):
        self.sent = []
        self.inbound = asyncio.Queue()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def send(self, message):
        self.sent.append(message)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self.inbound.get()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def close(self):
        self.inbound.put_nowait(None)

    @property
    def messages(self):
        return [decode(raw) for raw in self.sent]


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not reached in time"
        await asyncio.sleep(0.005)




@pytest.fixture
def devices():
    return [
        Device(1, DeviceKind.CONTROL_BOARD, "192.168.1.101", miner_count=4),
        Device(2, DeviceKind.CONTROL_BOARD, "192.168.1.102", miner_count=4),
        Device(10, DeviceKind.ENERGY_METER, "192.168.1.201"),
        Device(20, DeviceKind.HEAT_METER, "192.168.1.210"),
    ]


@pytest.fixture
def network():
    return FakeModbusNetwork()


@pytest.fixture
def store():
    return FakeRecordStore()


@pytest.fixture
def cache():
    return FakeStatusCache()
