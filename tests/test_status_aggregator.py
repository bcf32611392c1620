"""
Unit tests for the hub status aggregator
"""
import asyncio
from datetime import datetime, timezone

import pytest

from minefleet.models.domain import DeviceState, Reading, Severity, SiteState, utcnow
from minefleet.models.messages import StatusEntry
from minefleet.services.alert_engine import AlertEngine, ThresholdProvider
from minefleet.services.status_aggregator import StatusAggregator, derive_site_state

TS = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_aggregator(store, cache):
    engine = AlertEngine(ThresholdProvider(store), store)
    return StatusAggregator(engine, store, cache), engine


def batch(*pairs):
    return [StatusEntry(device_id, DeviceState(status), TS) for device_id, status in pairs]


class TestDeriveSiteState:
    """Test the site status rule"""

    @pytest.mark.parametrize("states,expected", [
        ([], SiteState.OFFLINE),
        (["online", "online"], SiteState.ONLINE),
        (["offline", "offline"], SiteState.OFFLINE),
        (["online", "offline"], SiteState.PARTIAL),
        (["online", "error"], SiteState.PARTIAL),
        (["error", "error"], SiteState.PARTIAL),
        (["offline", "error"], SiteState.PARTIAL),
    ])
    def test_rule(self, states, expected):
        """Test online iff all online, offline iff all offline"""
        assert derive_site_state(DeviceState(s) for s in states) == expected


class TestDeviceTransitions:
    """Test per-device state changes"""

    def test_reading_marks_online(self, store, cache):
        """Test a reading sets online and last_seen"""
        async def scenario():
            aggregator, _ = make_aggregator(store, cache)
            before = utcnow()
            status = await aggregator.apply_reading("s1", Reading(1, TS, temperature=60))
            return status, before

        status, before = asyncio.run(scenario())
        assert status.status == DeviceState.ONLINE
        assert status.last_seen >= before
        assert cache.device_statuses[("s1", 1)]["status"] == "online"

    def test_error_is_immediate_and_alerts(self, store, cache):
        """Test an error event flips the device and raises a device_error alert"""
        async def scenario():
            aggregator, engine = make_aggregator(store, cache)
            await aggregator.apply_reading("s1", Reading(1, TS))
            await aggregator.apply_error("s1", 1, "connection_failed", "refused")
            status = aggregator.get_device_status("s1", 1)
            await engine.drain()
            return status

        status = asyncio.run(scenario())
        assert status.status == DeviceState.ERROR
        assert status.error_message == "refused"
        assert [(a.type, a.severity) for a in store.alerts] == [("device_error", Severity.HIGH)]

    def test_unknown_error_type_defaults_to_medium(self, store, cache):
        """Test the severity table default"""
        async def scenario():
            aggregator, engine = make_aggregator(store, cache)
            await aggregator.apply_error("s1", 3, "read_failed", "illegal address")
            await engine.drain()

        asyncio.run(scenario())
        assert store.alerts[0].severity == Severity.MEDIUM

    def test_reading_clears_error(self, store, cache):
        """Test a later reading clears the error state"""
        async def scenario():
            aggregator, engine = make_aggregator(store, cache)
            await aggregator.apply_error("s1", 1, "timeout", "no response")
            await aggregator.apply_reading("s1", Reading(1, TS))
            await engine.drain()
            return aggregator.get_device_status("s1", 1)

        status = asyncio.run(scenario())
        assert status.status == DeviceState.ONLINE
        assert status.error_message is None


class TestSiteStatus:
    """Test batches and channel liveness"""

    def test_partial_batch(self, store, cache):
        """Test [online, offline] yields partial and is persisted"""
        async def scenario():
            aggregator, _ = make_aggregator(store, cache)
            await aggregator.mark_site_online("s1")
            return await aggregator.apply_status_batch("s1", batch((1, "online"), (2, "offline")))

        site = asyncio.run(scenario())
        assert site.status == SiteState.PARTIAL
        assert store.site_statuses["s1"] == SiteState.PARTIAL
        assert cache.site_statuses["s1"]["status"] == "partial"

    def test_all_online_batch(self, store, cache):
        """Test every device online yields online"""
        async def scenario():
            aggregator, _ = make_aggregator(store, cache)
            await aggregator.mark_site_online("s1")
            return await aggregator.apply_status_batch("s1", batch((1, "online"), (2, "online")))

        assert asyncio.run(scenario()).status == SiteState.ONLINE

    def test_site_state_covers_devices_outside_the_batch(self, store, cache):
        """Test a device left in error by an earlier event keeps an all-online batch partial"""
        async def scenario():
            aggregator, _ = make_aggregator(store, cache)
            await aggregator.mark_site_online("s1")
            await aggregator.apply_error("s1", 3, "timeout", "no response")
            narrow = await aggregator.apply_status_batch("s1", batch((1, "online"), (2, "online")))
            full = await aggregator.apply_status_batch("s1", batch((1, "online"), (2, "online"), (3, "online")))
            return narrow.status, full.status

        assert asyncio.run(scenario()) == (SiteState.PARTIAL, SiteState.ONLINE)

    def test_batch_overwrites_listed_devices_only(self, store, cache):
        """Test unlisted devices keep their state"""
        async def scenario():
            aggregator, _ = make_aggregator(store, cache)
            await aggregator.mark_site_online("s1")
            await aggregator.apply_reading("s1", Reading(3, TS))
            await aggregator.apply_status_batch("s1", batch((1, "offline")))
            return aggregator

        aggregator = asyncio.run(scenario())
        assert aggregator.get_device_status("s1", 3).status == DeviceState.ONLINE
        assert aggregator.get_device_status("s1", 1).status == DeviceState.OFFLINE
        assert aggregator.known_devices("s1") == {1, 3}

    def test_batch_error_alerts_only_on_transition(self, store, cache):
        """Test a repeated error entry does not raise a second alert"""
        async def scenario():
            aggregator, engine = make_aggregator(store, cache)
            await aggregator.apply_status_batch("s1", batch((1, "error")))
            await aggregator.apply_status_batch("s1", batch((1, "error")))
            await engine.drain()

        asyncio.run(scenario())
        assert [a.type for a in store.alerts] == ["device_error"]

    def test_disconnect_forces_offline_with_one_alert(self, store, cache):
        """Test a lost channel reads offline and raises one high site_offline alert"""
        async def scenario():
            aggregator, engine = make_aggregator(store, cache)
            await aggregator.mark_site_online("s1")
            await aggregator.apply_status_batch("s1", batch((1, "online"), (2, "online")))
            site = await aggregator.mark_site_offline("s1")
            await engine.drain()
            return aggregator, site

        aggregator, site = asyncio.run(scenario())
        assert site.status == SiteState.OFFLINE
        assert not site.connected
        assert aggregator.get_site_status("s1").status == SiteState.OFFLINE
        offline_alerts = [a for a in store.alerts if a.type == "site_offline"]
        assert len(offline_alerts) == 1
        assert offline_alerts[0].severity == Severity.HIGH
        assert store.site_statuses["s1"] == SiteState.OFFLINE

    def test_offline_until_channel_returns(self, store, cache):
        """Test data arriving for a disconnected site does not bring it back online"""
        async def scenario():
            aggregator, _ = make_aggregator(store, cache)
            await aggregator.mark_site_offline("s1")
            await aggregator.apply_status_batch("s1", batch((1, "online")))
            disconnected = aggregator.get_site_status("s1").status
            await aggregator.mark_site_online("s1")
            return disconnected, aggregator.get_site_status("s1").status

        disconnected, reconnected = asyncio.run(scenario())
        assert disconnected == SiteState.OFFLINE
        assert reconnected == SiteState.ONLINE

    def test_cache_failure_does_not_break_updates(self, store, cache):
        """Test a failing status cache is logged, not raised"""
        async def broken(status):
            raise ConnectionError("redis down")

        cache.set_device_status = broken

        async def scenario():
            aggregator, _ = make_aggregator(store, cache)
            return await aggregator.apply_reading("s1", Reading(1, TS))

        assert asyncio.run(scenario()).status == DeviceState.ONLINE
